"""StreakService against a real PostgreSQL store.

Covers what the mocked unit tests cannot: row locking under concurrent
calls, lazy creation races and the activity log contents.
"""

import asyncio
from datetime import UTC, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings
from models import ActivityType, StreakActivity
from repositories.streak_repository import StreakRepository
from services.streaks_service import StreakService
from tests.factories import FROZEN_NOW, FROZEN_TODAY

pytestmark = pytest.mark.integration


@pytest.fixture
def service(
    session_maker: async_sessionmaker[AsyncSession], test_settings: Settings
) -> StreakService:
    return StreakService(session_maker, settings=test_settings, now=lambda: FROZEN_NOW)


async def _activity_count(
    session_maker: async_sessionmaker[AsyncSession], user_id: str
) -> int:
    async with session_maker() as session:
        result = await session.execute(
            select(func.count())
            .select_from(StreakActivity)
            .where(StreakActivity.user_id == user_id)
        )
        return result.scalar_one()


class TestConcurrentActivity:
    async def test_simultaneous_first_activities_count_once(
        self, service: StreakService, session_maker
    ):
        outcomes = await asyncio.gather(
            *(
                service.record_activity("racer", "overall", ActivityType.QUIZ_SUBMIT)
                for _ in range(5)
            )
        )

        assert sum(o.is_new_day for o in outcomes) == 1
        status = await service.get_streak_status("racer", "Europe/London")
        assert status.current_streak == 1
        assert await _activity_count(session_maker, "racer") == 1

    async def test_simultaneous_next_day_activities_increment_once(
        self,
        service: StreakService,
        session_maker,
        test_settings: Settings,
    ):
        yesterday = StreakService(
            session_maker,
            settings=test_settings,
            now=lambda: FROZEN_NOW.replace(day=FROZEN_NOW.day - 1),
        )
        await yesterday.record_activity("steady", "biology", ActivityType.LOGIN)

        await asyncio.gather(
            *(
                service.record_activity("steady", "biology", ActivityType.LOGIN)
                for _ in range(4)
            )
        )

        status = await service.get_streak_status("steady", "UTC", "biology")
        assert status.current_streak == 2
        assert status.last_activity_date == FROZEN_TODAY
        assert await _activity_count(session_maker, "steady") == 2


class TestFreezeFlow:
    async def test_manual_freeze_then_activity_continues_streak(
        self, session_maker, test_settings: Settings
    ):
        def service_on(day: int) -> StreakService:
            return StreakService(
                session_maker,
                settings=test_settings,
                now=lambda: FROZEN_NOW.replace(day=day),
            )

        # Five consecutive days earn a freeze
        for day in range(1, 6):
            await service_on(day).record_activity("saver", "overall", "login")

        # Day 6 missed; on day 7 the user spends the freeze before acting
        result = await service_on(7).use_freeze("saver")
        assert result.success is True
        assert result.streak.last_activity_date == "2026-01-06"

        outcome = await service_on(7).record_activity("saver", "overall", "login")
        assert outcome.streak.current_streak == 6
        assert outcome.streak.freeze_days == 0
        assert outcome.streak.freeze_days_used == 1


class TestTimezone:
    async def test_update_timezone_touches_only_existing_rows(
        self, service: StreakService
    ):
        assert await service.update_timezone("nomad", "Asia/Tokyo") == 0

        await service.record_quiz_submission("nomad", "physics", "Europe/London")
        updated = await service.update_timezone("nomad", "Asia/Tokyo")

        assert updated == 2
        statuses = await service.get_all_streak_statuses("nomad", "Asia/Tokyo")
        assert statuses.overall_streak.current_streak == 1
        assert statuses.streaks["physics"].current_streak == 1

    async def test_saved_zone_drives_later_calls_and_keeps_counters(
        self, session_maker, test_settings: Settings
    ):
        # 12:00 UTC on Jan 6 is already Jan 7 in Auckland
        service = StreakService(
            session_maker,
            settings=test_settings,
            now=lambda: datetime(2026, 1, 6, 12, 0, tzinfo=UTC),
        )
        recorded = await service.record_activity(
            "kiwi", "overall", "login", "Europe/London"
        )

        assert await service.update_timezone("kiwi", "Pacific/Auckland") == 1

        async with session_maker() as session:
            stored = await StreakRepository(session).get("kiwi", "overall")
        assert stored.timezone == "Pacific/Auckland"
        assert stored.current_streak == recorded.streak.current_streak
        assert stored.longest_streak == recorded.streak.longest_streak
        assert stored.freeze_days == recorded.streak.freeze_days
        assert stored.last_activity_date == recorded.streak.last_activity_date

        overall = await service.record_activity("kiwi", "overall", "login")
        subject = await service.record_activity("kiwi", "biology", "login")

        assert overall.is_new_day is True
        assert overall.streak.last_activity_date == "2026-01-07"
        assert overall.streak.current_streak == 2
        assert overall.streak.timezone == "Pacific/Auckland"
        assert subject.streak.last_activity_date == "2026-01-07"
        assert subject.streak.timezone == "Pacific/Auckland"
        status = await service.get_streak_status("kiwi")
        assert status.last_activity_date == "2026-01-07"
        assert status.days_until_streak_loss == 1
