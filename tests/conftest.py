"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. The calendar is the in-memory provider
and Redis is mocked, so no test touches the network.
"""
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from bizagent.config import Settings
from bizagent.database import Base
from bizagent.integrations.in_memory_calendar import InMemoryCalendarProvider
from bizagent.models import TimeSlot  # noqa: F401 - registers the table
from bizagent.services.calendar_context import build_calendar_context
from bizagent.utils.throttle import NoThrottle

TZ = ZoneInfo("Europe/Bratislava")

# Wednesday morning; next Monday is 2025-06-09
NOW = datetime(2025, 6, 4, 9, 0, tzinfo=TZ)


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def settings():
    """Settings with no throttle delay and no Google credentials."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        calendar_throttle_policy="none",
        calendar_organizer_email="office@biz-agent.sk",
        google_client_id="",
        google_client_secret="",
        google_refresh_token="",
    )


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def provider():
    return InMemoryCalendarProvider()


@pytest.fixture
def ctx(db, provider, settings, clock):
    """Calendar services wired to the test database and in-memory calendar."""
    return build_calendar_context(db, provider=provider, settings=settings, throttle=NoThrottle(), clock=clock)


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    with patch("bizagent.utils.redis_client.get_redis") as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.ping = AsyncMock(return_value=True)
        slot_lock = AsyncMock()
        slot_lock.acquire = AsyncMock(return_value=True)
        slot_lock.release = AsyncMock()
        redis_mock.lock = MagicMock(return_value=slot_lock)
        mock.return_value = redis_mock
        yield redis_mock
