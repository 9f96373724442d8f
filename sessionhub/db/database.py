"""Database connection and session management"""

import logging
from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from sessionhub.config import Settings

logger = logging.getLogger(__name__)

# Create declarative base
Base = declarative_base()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database"""
    url = str(settings.database_url)
    kwargs = {"echo": False, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        kwargs.update(pool_size=20, max_overflow=40)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(settings: Settings) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]] | None:
    """
    Initialize database connection and create tables if needed.

    Returns the engine and session factory, or None when the database is not
    configured or unreachable. Jobs treat a missing session factory as a
    store outage and report it instead of crashing.
    """
    # Import models to register them with Base.metadata
    from sessionhub.db import models  # noqa: F401

    if not settings.database_url:
        logger.warning("Database not configured - running without a store")
        return None

    engine = create_engine_from_settings(settings)
    try:
        logger.info("Connecting to database...")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database connection established successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        logger.warning("Running without database connection")
        await engine.dispose()
        return None

    return engine, create_session_factory(engine)


async def close_db(engine: AsyncEngine | None) -> None:
    """Close database connections"""
    if engine is None:
        return
    await engine.dispose()
    logger.info("Database connections closed")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
