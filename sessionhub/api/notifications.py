"""Scheduler control and notification trigger endpoints"""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from sessionhub.api.deps import get_aggregator, get_scheduler
from sessionhub.db.models import ProfileRole
from sessionhub.services.notification_aggregator import NotificationAggregator
from sessionhub.services.scheduler import SchedulerOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


class SchedulerControlRequest(BaseModel):
    action: Literal["start", "stop"]


class TestUserRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    role: ProfileRole


@router.get("/scheduler/status")
async def scheduler_status(scheduler: SchedulerOrchestrator = Depends(get_scheduler)) -> dict[str, Any]:
    return {"success": True, "status": scheduler.status()}


@router.post("/scheduler/control")
async def control_scheduler(
    request: SchedulerControlRequest,
    scheduler: SchedulerOrchestrator = Depends(get_scheduler),
) -> dict[str, Any]:
    if request.action == "stop":
        scheduler.stop()
        return {"success": True, "message": "Scheduler stopped successfully"}
    scheduler.start()
    return {"success": True, "message": "Scheduler started successfully"}


@router.post("/trigger")
async def trigger_unread_notifications(
    scheduler: SchedulerOrchestrator = Depends(get_scheduler),
) -> dict[str, Any]:
    """Run the unread message digest now"""
    logger.info("Manual trigger of unread message notifications requested")
    result = await scheduler.run_unread_message_notifications()
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error") or "Failed to process notifications")
    return {
        "success": True,
        "message": "Unread message notifications processed successfully",
        "data": result,
    }


@router.post("/reminders/trigger")
async def trigger_session_reminders(
    scheduler: SchedulerOrchestrator = Depends(get_scheduler),
) -> dict[str, Any]:
    """Run the session reminder pass now"""
    result = await scheduler.run_session_reminders()
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error") or "Failed to process reminders")
    return {"success": True, "data": result}


@router.post("/test-user")
async def test_user_notifications(
    request: TestUserRequest,
    aggregator: NotificationAggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    """Check one user's unread conversations and send their digest"""
    unread = await aggregator.get_unread_messages_for_user(request.user_id, request.role)
    total_unread = sum(conversation.unread_count for conversation in unread)

    if not unread:
        return {
            "success": True,
            "message": "No unread messages found for this user",
            "data": {"unread_messages": [], "email_sent": False, "total_unread": 0},
        }

    result = await aggregator.send_unread_messages_notification(request.user_id, request.role, unread)
    return {
        "success": True,
        "message": "Test notification sent" if result.get("email_sent") else "Notification not sent",
        "data": {
            "unread_messages": [conversation.to_dict() for conversation in unread],
            "email_sent": bool(result.get("email_sent")),
            "error": result.get("error"),
            "total_unread": total_unread,
        },
    }
