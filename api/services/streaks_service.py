"""Streak service: the public streak operations.

Every write runs load -> decide -> persist -> append inside one database
transaction, with the streak row locked (SELECT ... FOR UPDATE). Concurrent
calls for the same user × subject therefore serialize at the store; lock
timeouts, deadlocks and lost creation races are retried with backoff.

The service is constructed once per process with a session maker (see
main.lifespan) and holds no other state.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.clock import (
    Clock,
    InvalidTimezoneError,
    days_between,
    today_in,
    utcnow,
    validate_timezone,
    yesterday_in,
)
from core.config import Settings, get_settings
from core.logger import get_logger
from core.telemetry import add_custom_attribute, track_operation
from core.wide_event import set_wide_event_fields, set_wide_event_nested
from models import OVERALL_SUBJECT, ActivityType
from repositories.activity_repository import ActivityRepository
from repositories.streak_repository import StreakRepository
from schemas import (
    ActivityLogEntry,
    ActivityOutcome,
    AllStreaksStatus,
    FreezeResult,
    QuizSubmissionOutcome,
    StreakRecord,
    StreakStatus,
)
from services.streak_engine import (
    BRIDGEABLE_GAP,
    decide,
    project_status,
)
from services.streak_errors import (
    StoreUnavailableError,
    StreakConflictError,
    StreakValidationError,
)

logger = get_logger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATEs that mean "lost a race, try again"
_CONFLICT_SQLSTATES = frozenset(
    {
        "40001",  # serialization_failure
        "40P01",  # deadlock_detected
        "55P03",  # lock_not_available (lock_timeout)
        "23505",  # unique_violation (concurrent first insert)
    }
)

MAX_USER_ID_LENGTH = 255

FREEZE_APPLIED = "Freeze applied successfully"
NO_STREAK_TO_PROTECT = "No streak to protect yet"
NO_FREEZE_AVAILABLE = "No freeze days available"
ALREADY_ACTIVE_TODAY = "Already active today, no need for freeze"
NO_MISSED_DAYS = "No missed days to cover"
STREAK_ALREADY_LOST = "Streak already lost, a freeze covers only one missed day"


def _sqlstate(exc: DBAPIError) -> str | None:
    # The asyncpg adapter exposes the code itself or via the wrapped driver error
    for err in (exc.orig, getattr(exc.orig, "__cause__", None)):
        code = getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)
        if code:
            return code
    return None


def translate_store_error(exc: BaseException) -> BaseException:
    """Map a driver/SQLAlchemy failure onto the streak error taxonomy.

    Errors that are neither conflicts nor connectivity problems (constraint
    violations other than a duplicate key, programming errors) are returned
    unchanged so they surface as bugs.
    """
    if isinstance(exc, DBAPIError):
        if _sqlstate(exc) in _CONFLICT_SQLSTATES:
            return StreakConflictError(str(exc.orig))
        if exc.connection_invalidated or isinstance(exc, InterfaceError):
            return StoreUnavailableError("Streak store connection lost")
        if isinstance(exc, OperationalError) and _sqlstate(exc) is None:
            return StoreUnavailableError("Streak store unavailable")
        return exc
    if isinstance(exc, (OSError, TimeoutError)):
        return StoreUnavailableError(f"Streak store unreachable: {exc}")
    return exc


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "streak.conflict.retry",
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else None,
    )
    set_wide_event_fields(streak_conflict_retries=retry_state.attempt_number)


class StreakService:
    """Facade over the streak engine and store."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        settings: Settings | None = None,
        now: Clock = utcnow,
    ) -> None:
        self._session_maker = session_maker
        self._settings = settings or get_settings()
        self._now = now

    # =========================================================================
    # Validation
    # =========================================================================

    def _user_id(self, user_id: str) -> str:
        if not isinstance(user_id, str) or not user_id.strip():
            raise StreakValidationError("user_id", "user_id is required")
        user_id = user_id.strip().lower()
        if len(user_id) > MAX_USER_ID_LENGTH:
            raise StreakValidationError("user_id", "user_id is too long")
        return user_id

    def _subject(self, subject: str) -> str:
        normalized = subject.strip().lower() if isinstance(subject, str) else ""
        if normalized != OVERALL_SUBJECT and normalized not in self._settings.subjects:
            raise StreakValidationError("subject", f"Invalid subject: {subject!r}")
        return normalized

    def _activity_type(self, activity_type: ActivityType | str) -> ActivityType:
        try:
            return ActivityType(activity_type)
        except ValueError:
            raise StreakValidationError(
                "activity_type", f"Unsupported activity type: {activity_type!r}"
            ) from None

    def _timezone(self, timezone: str | None) -> str | None:
        """Validate a caller-supplied zone; None defers to the saved zone."""
        if not timezone:
            return None
        try:
            return validate_timezone(timezone)
        except InvalidTimezoneError as e:
            raise StreakValidationError("timezone", str(e)) from e

    def _zone_for(self, requested: str | None, saved: StreakRecord | None) -> str:
        """The caller's zone, else the user's saved zone, else the default."""
        if requested:
            return requested
        if saved is not None and saved.timezone:
            return saved.timezone
        return self._settings.default_timezone

    async def _resolve_zone(
        self,
        streaks: StreakRepository,
        user_id: str,
        subject: str,
        record: StreakRecord | None,
        requested: str | None,
    ) -> str:
        if requested:
            return requested
        if record is None and subject != OVERALL_SUBJECT:
            # Every row carries the user's zone; a new subject takes the overall one
            record = await streaks.get(user_id, OVERALL_SUBJECT)
        return self._zone_for(None, record)

    # =========================================================================
    # Transactions
    # =========================================================================

    async def _transaction(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    return await work(session)
        except (DBAPIError, OSError, TimeoutError) as e:
            translated = translate_store_error(e)
            if translated is e:
                raise
            raise translated from e

    async def _write(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``work`` in a transaction, retrying bounded times on conflict."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(StreakConflictError),
            stop=stop_after_attempt(self._settings.streak_max_retries),
            wait=wait_exponential_jitter(initial=0.05, max=1.0),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._transaction(work)
        raise AssertionError("unreachable")  # pragma: no cover

    # =========================================================================
    # Operations
    # =========================================================================

    @track_operation("streak_record_activity")
    async def record_activity(
        self,
        user_id: str,
        subject: str,
        activity_type: ActivityType | str,
        timezone: str | None = None,
    ) -> ActivityOutcome:
        """Record a qualifying activity and advance the streak.

        Same-day repeats leave the streak untouched and are not logged. Without
        ``timezone`` the day is resolved in the zone saved for the user.

        Raises:
            StreakValidationError: Bad user id, subject, activity type or zone
            StreakConflictError: Still conflicting after the retry budget
            StoreUnavailableError: The store could not be reached
        """
        user_id = self._user_id(user_id)
        subject = self._subject(subject)
        kind = self._activity_type(activity_type)
        timezone = self._timezone(timezone)

        async def work(session: AsyncSession) -> ActivityOutcome:
            streaks = StreakRepository(session)
            previous = await streaks.get_for_update(user_id, subject)
            zone = await self._resolve_zone(
                streaks, user_id, subject, previous, timezone
            )
            today = today_in(zone, self._now)
            decision = decide(previous, today, subject, zone, user_id)

            if not decision.changed:
                return ActivityOutcome(
                    streak=decision.next,
                    freeze_earned=False,
                    freeze_consumed=False,
                    is_new_day=False,
                )

            saved = await streaks.save(decision.next, create=previous is None)
            await ActivityRepository(session).append(
                user_id=user_id,
                subject=subject,
                activity_date=today,
                activity_type=kind,
            )
            return ActivityOutcome(
                streak=saved,
                freeze_earned=decision.freeze_earned,
                freeze_consumed=decision.freeze_consumed,
                reset=decision.reset,
                is_new_day=True,
            )

        outcome = await self._write(work)

        add_custom_attribute("streak.subject", subject)
        set_wide_event_fields(
            user_id=user_id,
            streak_subject=subject,
            current_streak=outcome.streak.current_streak,
            streak_new_day=outcome.is_new_day,
        )
        if outcome.is_new_day:
            logger.info(
                "streak.activity.recorded",
                user_id=user_id,
                subject=subject,
                activity_type=kind.value,
                date=outcome.streak.last_activity_date,
                current_streak=outcome.streak.current_streak,
            )
        if outcome.reset:
            logger.info(
                "streak.reset",
                user_id=user_id,
                subject=subject,
                longest_streak=outcome.streak.longest_streak,
            )
        if outcome.freeze_consumed:
            logger.info(
                "streak.freeze.consumed",
                user_id=user_id,
                freeze_days=outcome.streak.freeze_days,
            )
            set_wide_event_nested(
                "freeze", consumed=True, available=outcome.streak.freeze_days
            )
        if outcome.freeze_earned:
            logger.info(
                "streak.freeze.earned",
                user_id=user_id,
                freeze_days=outcome.streak.freeze_days,
                at_streak=outcome.streak.current_streak,
            )
            set_wide_event_fields(freeze_earned=True)

        return outcome

    async def record_quiz_submission(
        self,
        user_id: str,
        subject: str,
        timezone: str | None = None,
    ) -> QuizSubmissionOutcome:
        """Advance the subject streak and the overall streak for a quiz."""
        if isinstance(subject, str) and subject.strip().lower() == OVERALL_SUBJECT:
            raise StreakValidationError(
                "subject", "A quiz submission needs a concrete subject"
            )
        subject_outcome = await self.record_activity(
            user_id, subject, ActivityType.QUIZ_SUBMIT, timezone
        )
        overall_outcome = await self.record_activity(
            user_id, OVERALL_SUBJECT, ActivityType.QUIZ_SUBMIT, timezone
        )
        return QuizSubmissionOutcome(subject=subject_outcome, overall=overall_outcome)

    async def get_streak_status(
        self,
        user_id: str,
        timezone: str | None = None,
        subject: str = OVERALL_SUBJECT,
    ) -> StreakStatus:
        """Read-only status of one streak. Never writes."""
        user_id = self._user_id(user_id)
        subject = self._subject(subject)
        timezone = self._timezone(timezone)

        async def work(session: AsyncSession) -> StreakStatus:
            streaks = StreakRepository(session)
            record = await streaks.get(user_id, subject)
            zone = await self._resolve_zone(streaks, user_id, subject, record, timezone)
            return project_status(record, today_in(zone, self._now))

        return await self._transaction(work)

    async def get_all_streak_statuses(
        self,
        user_id: str,
        timezone: str | None = None,
    ) -> AllStreaksStatus:
        """Overall status plus one status per configured subject."""
        user_id = self._user_id(user_id)
        timezone = self._timezone(timezone)

        async def work(session: AsyncSession) -> AllStreaksStatus:
            records = {
                record.subject: record
                for record in await StreakRepository(session).list_by_user(user_id)
            }
            saved = records.get(OVERALL_SUBJECT) or next(iter(records.values()), None)
            today = today_in(self._zone_for(timezone, saved), self._now)
            return AllStreaksStatus(
                overall_streak=project_status(records.get(OVERALL_SUBJECT), today),
                streaks={
                    subject: project_status(records.get(subject), today)
                    for subject in self._settings.subjects
                },
            )

        return await self._transaction(work)

    @track_operation("streak_use_freeze")
    async def use_freeze(
        self, user_id: str, timezone: str | None = None
    ) -> FreezeResult:
        """Spend a freeze to cover yesterday before the overall streak is lost.

        Refusals are returned as ``success=False`` with a message; nothing is
        written in that case.
        """
        user_id = self._user_id(user_id)
        timezone = self._timezone(timezone)

        async def work(session: AsyncSession) -> FreezeResult:
            streaks = StreakRepository(session)
            streak = await streaks.get_for_update(user_id, OVERALL_SUBJECT)

            def refuse(message: str) -> FreezeResult:
                return FreezeResult(success=False, message=message, streak=streak)

            if streak is None or streak.last_activity_date is None:
                return refuse(NO_STREAK_TO_PROTECT)
            if streak.freeze_days <= 0:
                return refuse(NO_FREEZE_AVAILABLE)

            zone = self._zone_for(timezone, streak)
            today = today_in(zone, self._now)
            yesterday = yesterday_in(zone, self._now)
            gap = days_between(today, streak.last_activity_date)
            if gap <= 0:
                return refuse(ALREADY_ACTIVE_TODAY)
            if gap == 1:
                return refuse(NO_MISSED_DAYS)
            if gap > BRIDGEABLE_GAP:
                return refuse(STREAK_ALREADY_LOST)

            saved = await streaks.save(
                streak.model_copy(
                    update={
                        "freeze_days": streak.freeze_days - 1,
                        "freeze_days_used": streak.freeze_days_used + 1,
                        "last_activity_date": yesterday,
                        "last_freeze_used_date": today,
                    }
                ),
                create=False,
            )
            return FreezeResult(success=True, message=FREEZE_APPLIED, streak=saved)

        result = await self._write(work)

        set_wide_event_fields(user_id=user_id, freeze_used=result.success)
        if result.success:
            logger.info(
                "streak.freeze.manual_used",
                user_id=user_id,
                freeze_days=result.streak.freeze_days if result.streak else 0,
            )
        else:
            logger.info(
                "streak.freeze.refused", user_id=user_id, reason=result.message
            )
        return result

    async def update_timezone(self, user_id: str, timezone: str) -> int:
        """Change the zone on all of a user's streaks; counters are untouched.

        Returns the number of streak rows updated. Users without any streak
        get no rows; records are only created by activity.
        """
        user_id = self._user_id(user_id)
        if not timezone:
            raise StreakValidationError("timezone", "Timezone is required")
        timezone = self._timezone(timezone)

        async def work(session: AsyncSession) -> int:
            return await StreakRepository(session).update_timezone(user_id, timezone)

        updated = await self._write(work)
        logger.info(
            "streak.timezone.updated",
            user_id=user_id,
            timezone=timezone,
            streaks_updated=updated,
        )
        return updated

    async def list_activity(
        self,
        user_id: str,
        *,
        limit: int = 50,
        cursor: int | None = None,
    ) -> list[ActivityLogEntry]:
        """Audit export of a user's activity log, newest first."""
        user_id = self._user_id(user_id)
        if limit < 1:
            raise StreakValidationError("limit", "limit must be positive")

        async def work(session: AsyncSession) -> list[ActivityLogEntry]:
            rows = await ActivityRepository(session).get_by_user(
                user_id, limit=limit, cursor=cursor
            )
            return [ActivityLogEntry.model_validate(row) for row in rows]

        return await self._transaction(work)
