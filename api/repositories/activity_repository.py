"""Repository for the append-only streak activity log."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityType, StreakActivity
from repositories.utils import log_slow_query


class ActivityRepository:
    """Append-only audit log of activities that advanced a streak.

    The decision engine never reads from here.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("append_activity")
    async def append(
        self,
        user_id: str,
        subject: str,
        activity_date: str,
        activity_type: ActivityType,
    ) -> StreakActivity:
        """Append a new activity entry."""
        activity = StreakActivity(
            user_id=user_id,
            subject=subject,
            activity_date=activity_date,
            activity_type=activity_type,
        )
        self.db.add(activity)
        await self.db.flush()
        return activity

    @log_slow_query("get_activities_by_user")
    async def get_by_user(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        cursor: int | None = None,
    ) -> Sequence[StreakActivity]:
        """Get activities for a user, most recent first.

        Args:
            user_id: The user's ID
            limit: Maximum number of activities to return
            cursor: Activity ID to start after (for pagination).
                    Pass the last activity's ID from previous page.
        """
        query = (
            select(StreakActivity)
            .where(StreakActivity.user_id == user_id)
            .order_by(StreakActivity.id.desc())
        )
        if cursor:
            query = query.where(StreakActivity.id < cursor)
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

