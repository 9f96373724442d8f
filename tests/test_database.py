"""Tests for database initialization"""

import pytest
from sqlalchemy import select

from sessionhub.db.database import close_db, init_db
from sessionhub.db.models import Booking
from tests.conftest import TEST_DATABASE_URL, make_settings


@pytest.mark.asyncio
async def test_init_db_without_url_runs_without_store():
    settings = make_settings(database_url=None)

    assert await init_db(settings) is None
    assert any("database_url not set" in warning for warning in settings.validate_configuration()["warnings"])


@pytest.mark.asyncio
async def test_blank_url_is_unset():
    settings = make_settings(database_url="  ")

    assert settings.database_url is None
    assert await init_db(settings) is None


@pytest.mark.asyncio
async def test_init_db_creates_tables():
    result = await init_db(make_settings(database_url=TEST_DATABASE_URL))

    assert result is not None
    engine, session_factory = result
    async with session_factory() as session:
        result = await session.execute(select(Booking))
        assert result.scalars().all() == []
    await close_db(engine)
