"""Pytest configuration and fixtures"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sessionhub.config import Settings
from sessionhub.db import models  # noqa: F401
from sessionhub.db.database import Base, create_session_factory
from sessionhub.main import build_components, create_app
from sessionhub.services.email_notifications import EmailNotificationService
from sessionhub.services.event_dispatcher import EventDispatcher

# In-memory database shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

RECEIVER_BASE_URL = "https://automation.test"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any local .env file"""
    values = {
        "database_url": TEST_DATABASE_URL,
        "app_env": "test",
        "automation_enabled": False,
        "automation_webhook_url": None,
        "automation_base_url": None,
        "automation_api_key": None,
        "enable_email_notifications": False,
        "enable_payments": False,
        "log_format": "text",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def automation_settings() -> Settings:
    return make_settings(automation_base_url=RECEIVER_BASE_URL, automation_api_key="test-secret")


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a test engine with all tables"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def email_service() -> MagicMock:
    """Email double that reports every send as delivered"""
    service = MagicMock(spec=EmailNotificationService)
    service.is_configured.return_value = True
    service.send_email = AsyncMock(return_value=True)
    service.send_booking_invite = AsyncMock(return_value=True)
    return service


@pytest_asyncio.fixture
async def app(settings, session_factory, email_service):
    """App with components wired to the test database; the lifespan does not run"""
    app = create_app(settings)
    dispatcher = EventDispatcher(settings)
    build_components(app, settings, session_factory, dispatcher=dispatcher, email_service=email_service)
    yield app
    app.state.scheduler.stop()
    await dispatcher.aclose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client over the ASGI app"""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
