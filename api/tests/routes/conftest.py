"""Route test configuration: mocked StreakService, no rate limiting."""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from tests.factories import TEST_USER_ID


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting so route handlers can be called directly."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield


@pytest.fixture
def streak_service() -> MagicMock:
    service = MagicMock()
    service.record_activity = AsyncMock()
    service.get_streak_status = AsyncMock()
    service.get_all_streak_statuses = AsyncMock()
    service.use_freeze = AsyncMock()
    service.update_timezone = AsyncMock(return_value=1)
    service.list_activity = AsyncMock(return_value=[])
    return service


@pytest.fixture
def app(streak_service: MagicMock) -> Generator[FastAPI]:
    """The real app with the streak service swapped for a mock.

    ASGITransport does not run the lifespan, so no database is opened.
    """
    from main import app as fastapi_app
    from routes.streak_routes import get_streak_service

    fastapi_app.dependency_overrides[get_streak_service] = lambda: streak_service
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Client without the gateway identity header."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def authenticated_client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Client carrying the header the auth gateway sets."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"x-authenticated-user-id": TEST_USER_ID},
    ) as ac:
        yield ac
