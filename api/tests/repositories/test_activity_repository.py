"""Tests for ActivityRepository."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

# Mark all tests in this module as integration tests (database required)
pytestmark = pytest.mark.integration

from models import ActivityType
from repositories.activity_repository import ActivityRepository
from tests.factories import StreakActivityFactory, create_async


class TestActivityRepositoryAppend:
    async def test_append_assigns_id(self, db_session: AsyncSession):
        repo = ActivityRepository(db_session)

        activity = await repo.append(
            user_id="user_a",
            subject="biology",
            activity_date="2026-01-14",
            activity_type=ActivityType.LOGIN,
        )

        assert activity.id is not None
        assert activity.created_at is not None
        assert activity.activity_type == ActivityType.LOGIN


class TestActivityRepositoryGetByUser:
    async def test_returns_newest_first(self, db_session: AsyncSession):
        older = await create_async(
            StreakActivityFactory,
            db_session,
            user_id="user_b",
            activity_date="2026-01-12",
        )
        newer = await create_async(
            StreakActivityFactory,
            db_session,
            user_id="user_b",
            activity_date="2026-01-13",
        )
        await create_async(StreakActivityFactory, db_session, user_id="user_c")

        result = await ActivityRepository(db_session).get_by_user("user_b")

        assert [a.id for a in result] == [newer.id, older.id]

    async def test_paginates_with_cursor(self, db_session: AsyncSession):
        created = [
            await create_async(StreakActivityFactory, db_session, user_id="user_d")
            for _ in range(5)
        ]
        repo = ActivityRepository(db_session)

        first_page = await repo.get_by_user("user_d", limit=2)
        second_page = await repo.get_by_user(
            "user_d", limit=2, cursor=first_page[-1].id
        )

        assert [a.id for a in first_page] == [created[4].id, created[3].id]
        assert [a.id for a in second_page] == [created[2].id, created[1].id]
