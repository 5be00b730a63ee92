"""Wide Event context for canonical request log lines.

A request-scoped dict that services enrich as a request flows through the
streak engine (current streak, freeze flags, retry counts). The middleware in
core.telemetry initializes it at request start and emits it once at the end.

Usage:
    from core.wide_event import set_wide_event_fields

    set_wide_event_fields(streak_subject="overall", current_streak=6)
    set_wide_event_nested("freeze", earned=True, available=1)
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any]] = ContextVar("wide_event")


def init_wide_event() -> dict[str, Any]:
    """Start a fresh wide event for the current async context."""
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """Return the current wide event, or an empty dict outside a request."""
    try:
        return _wide_event.get()
    except LookupError:
        return {}


def set_wide_event_fields(**kwargs: Any) -> None:
    """Merge fields into the current wide event.

    No-op outside a request context (tests without the fixture, scripts).
    """
    if _is_active():
        get_wide_event().update(kwargs)


def set_wide_event_nested(category: str, **kwargs: Any) -> None:
    """Merge fields under a nested category, e.g. ``{"freeze": {...}}``."""
    if not _is_active():
        return
    event = get_wide_event()
    event.setdefault(category, {}).update(kwargs)


def clear_wide_event() -> None:
    """Detach the wide event once it has been emitted."""
    _wide_event.set({})


def _is_active() -> bool:
    try:
        _wide_event.get()
    except LookupError:
        return False
    return True
