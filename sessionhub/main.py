"""Main FastAPI application for SessionHub"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sessionhub import __version__
from sessionhub.api import automation, bookings, health, notifications, payments
from sessionhub.config import Settings, settings as default_settings
from sessionhub.db.database import close_db, init_db
from sessionhub.middleware.logging import LoggingMiddleware
from sessionhub.middleware.request_id import RequestIDMiddleware
from sessionhub.services.email_notifications import EmailNotificationService
from sessionhub.services.event_dispatcher import EventDispatcher
from sessionhub.services.notification_aggregator import NotificationAggregator
from sessionhub.services.request_dedup import RequestDeduplicator
from sessionhub.services.scheduler import SchedulerOrchestrator
from sessionhub.services.session_reminders import SessionReminderEngine
from sessionhub.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def build_components(
    app: FastAPI,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None,
    dispatcher: EventDispatcher | None = None,
    email_service: EmailNotificationService | None = None,
) -> None:
    """Wire the services together and publish them on app.state"""
    email_service = email_service or EmailNotificationService(settings)
    dispatcher = dispatcher or EventDispatcher(settings)

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.email_service = email_service
    app.state.dispatcher = dispatcher
    app.state.deduplicator = RequestDeduplicator()
    app.state.scheduler = SchedulerOrchestrator(
        NotificationAggregator(session_factory, email_service, settings),
        SessionReminderEngine(session_factory, dispatcher, settings),
        settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    settings: Settings = app.state.settings
    logger.info("Starting SessionHub application...")

    report = settings.validate_configuration()
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    db = await init_db(settings)
    engine, session_factory = db if db else (None, None)

    build_components(app, settings, session_factory)
    app.state.scheduler.start()
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down SessionHub application...")
    app.state.scheduler.stop()
    await app.state.dispatcher.aclose()
    await close_db(engine)
    logger.info("Application shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI app; components are built by the lifespan"""
    settings = settings or default_settings

    app = FastAPI(
        title="SessionHub API",
        description="Booking marketplace backend: bookings, payments, reminders and unread digests",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
    )
    app.state.settings = settings

    # Configure middleware (order matters - last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/status", response_class=JSONResponse)
    async def api_status() -> dict[str, Any]:
        """API status endpoint for programmatic access"""
        return {
            "name": "SessionHub API",
            "version": __version__,
            "status": "operational",
            "docs": "/docs" if settings.app_debug else None,
        }

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(bookings.router, prefix="/api/v1/bookings", tags=["bookings"])
    app.include_router(payments.router, prefix="/api/v1/payments", tags=["payments"])
    app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["notifications"])
    app.include_router(automation.router, prefix="/api/v1/automation", tags=["automation"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if settings.app_debug else "An error occurred",
            },
        )

    return app


setup_logging(default_settings)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sessionhub.main:app",
        host=default_settings.app_host,
        port=default_settings.app_port,
        reload=default_settings.app_debug,
        log_level=default_settings.log_level.lower(),
    )
