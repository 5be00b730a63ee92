"""Repository for streak records (one row per user × subject)."""

from collections.abc import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import UserStreak, streak_key, utcnow
from repositories.utils import insert_if_absent, log_slow_query
from schemas import StreakRecord
from services.streak_errors import StreakConflictError

# Columns written from a StreakRecord; identity columns are never rewritten
_MUTABLE_FIELDS = (
    "current_streak",
    "longest_streak",
    "last_activity_date",
    "freeze_days",
    "freeze_days_used",
    "timezone",
    "streak_start_date",
    "last_freeze_earned_at",
    "last_freeze_used_date",
)


def to_record(row: UserStreak) -> StreakRecord:
    """Convert an ORM row to the typed domain record."""
    return StreakRecord.model_validate(row)


class StreakRepository:
    """Keyed storage for StreakRecord.

    Does NOT commit. The caller owns the transaction, which is what makes
    get_for_update() + save() an atomic read-modify-write.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("get_streak")
    async def get(self, user_id: str, subject: str) -> StreakRecord | None:
        row = await self.db.get(UserStreak, streak_key(user_id, subject))
        return to_record(row) if row is not None else None

    @log_slow_query("get_streak_for_update")
    async def get_for_update(self, user_id: str, subject: str) -> StreakRecord | None:
        """Load a streak and hold its row lock until the transaction ends.

        Returns None when no row exists yet; a concurrent first insert for the
        same key is caught by save(create=True).
        """
        result = await self.db.execute(
            select(UserStreak)
            .where(UserStreak.id == streak_key(user_id, subject))
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        return to_record(row) if row is not None else None

    @log_slow_query("list_streaks_by_user")
    async def list_by_user(self, user_id: str) -> Sequence[StreakRecord]:
        result = await self.db.execute(
            select(UserStreak)
            .where(UserStreak.user_id == user_id)
            .order_by(UserStreak.subject)
        )
        return [to_record(row) for row in result.scalars().all()]

    @log_slow_query("save_streak")
    async def save(self, record: StreakRecord, *, create: bool) -> StreakRecord:
        """Persist ``record`` and return it with the new updated_at.

        Args:
            create: True when the caller saw no existing row. If another
                writer created the row in the meantime, StreakConflictError is
                raised so the whole read-modify-write is retried.
        """
        now = utcnow()
        values = {field: getattr(record, field) for field in _MUTABLE_FIELDS}
        values["updated_at"] = now

        if create:
            inserted = await insert_if_absent(
                self.db,
                UserStreak,
                {
                    "id": streak_key(record.user_id, record.subject),
                    "user_id": record.user_id,
                    "subject": record.subject,
                    "created_at": now,
                    **values,
                },
                index_elements=["id"],
            )
            if not inserted:
                raise StreakConflictError(
                    f"Streak {record.user_id}/{record.subject} was created concurrently"
                )
        else:
            await self.db.execute(
                update(UserStreak)
                .where(UserStreak.id == streak_key(record.user_id, record.subject))
                .values(**values)
            )

        return record.model_copy(update={"updated_at": now})

    @log_slow_query("update_streak_timezone")
    async def update_timezone(self, user_id: str, timezone: str) -> int:
        """Set the timezone on every streak of a user. Returns rows updated."""
        result = await self.db.execute(
            update(UserStreak)
            .where(UserStreak.user_id == user_id)
            .values(timezone=timezone, updated_at=utcnow())
        )
        return result.rowcount or 0
