"""Calendar-day resolution for streak bookkeeping.

A "day" is always a canonical ``YYYY-MM-DD`` string in the user's IANA
timezone. Day differences are computed from date components, never from
instant subtraction, so DST transitions cannot shift a boundary.
"""

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

CANONICAL_DATE_FORMAT = "%Y-%m-%d"

Clock = Callable[[], datetime]


class InvalidTimezoneError(ValueError):
    """Raised when a timezone name is not a known IANA zone."""

    def __init__(self, timezone: str):
        self.timezone = timezone
        super().__init__(f"Unknown timezone: {timezone!r}")


def utcnow() -> datetime:
    return datetime.now(UTC)


@lru_cache(maxsize=256)
def _zone(timezone: str) -> ZoneInfo:
    if not timezone or not isinstance(timezone, str):
        raise InvalidTimezoneError(str(timezone))
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezoneError(timezone) from e


def validate_timezone(timezone: str) -> str:
    """Return the zone name unchanged if it resolves, else raise."""
    _zone(timezone)
    return timezone


def resolve_date(instant: datetime, timezone: str) -> str:
    """Local calendar date of ``instant`` in ``timezone`` as ``YYYY-MM-DD``.

    Raises:
        ValueError: ``instant`` is naive (no tzinfo).
        InvalidTimezoneError: ``timezone`` is not a known IANA zone.
    """
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError("resolve_date requires a timezone-aware instant")
    return instant.astimezone(_zone(timezone)).strftime(CANONICAL_DATE_FORMAT)


def parse_date(day: str) -> date:
    return date.fromisoformat(day)


def days_between(a: str, b: str) -> int:
    """Signed calendar days from ``b`` to ``a`` (``a - b``).

    >>> days_between("2026-01-14", "2026-01-12")
    2
    """
    return (parse_date(a) - parse_date(b)).days


def shift_date(day: str, days: int) -> str:
    return (parse_date(day) + timedelta(days=days)).isoformat()


def today_in(timezone: str, now: Clock = utcnow) -> str:
    return resolve_date(now(), timezone)


def yesterday_in(timezone: str, now: Clock = utcnow) -> str:
    return shift_date(today_in(timezone, now), -1)
