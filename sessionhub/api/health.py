"""Health check endpoints"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from sessionhub import __version__

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "SessionHub API",
        "version": __version__,
    }


@router.get("/ready")
async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness check including store connectivity and scheduler state"""
    state = request.app.state
    checks = {
        "api": "healthy",
        "database": "unknown",
        "scheduler": "unknown",
        "automation": "enabled" if state.dispatcher.enabled else "disabled",
        "email": "enabled" if state.email_service.is_configured() else "disabled",
    }

    session_factory = getattr(state, "session_factory", None)
    if session_factory is None:
        checks["database"] = "unavailable"
    else:
        try:
            async with session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                checks["database"] = "healthy" if result.scalar() == 1 else "unhealthy"
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            checks["database"] = "unhealthy"

    checks["scheduler"] = "running" if state.scheduler.is_running else "stopped"

    # Determine overall status
    overall_status = "healthy"
    if checks["database"] in ("unhealthy", "unavailable"):
        overall_status = "degraded"

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe endpoint"""
    return {"status": "alive"}
