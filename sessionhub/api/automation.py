"""Manual endpoints for the outbound automation receiver"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from sessionhub.api.deps import get_dispatcher
from sessionhub.exceptions import DeliveryError
from sessionhub.services.event_dispatcher import DispatchResult, EventDispatcher
from sessionhub.services.session_reminders import SESSION_REMINDER_EVENT

logger = logging.getLogger(__name__)
router = APIRouter()

MANUAL_SOURCE = {"source": "backend:automation-api"}
RETREAT_BOOKING_EVENT = "retreat.booking"


class TestEventRequest(BaseModel):
    event: str = Field(default="test.event", min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class AccountSignupRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    email: EmailStr
    name: str = Field(..., min_length=1)
    role: str | None = None


class Party(BaseModel):
    name: str | None = None
    email: EmailStr


class SessionReminderRequest(BaseModel):
    booking_id: str = Field(..., min_length=1)
    requester: Party
    provider: Party
    session_date: datetime
    timezone: str = Field(..., min_length=1)


class Price(BaseModel):
    amount: int = Field(..., gt=0, description="Price in minor currency units")
    currency: str = Field(..., min_length=3, max_length=3)


class RetreatBookingRequest(BaseModel):
    retreat_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    requester: Party
    provider: Party
    price: Price
    location: str | None = None
    dates: dict[str, Any] | None = None


async def _dispatch(dispatcher: EventDispatcher, event: str, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        result: DispatchResult = await dispatcher.send(event, payload, meta=MANUAL_SOURCE)
    except DeliveryError as e:
        logger.error(f"Delivery of {event} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, "result": result.to_dict()}


@router.get("/ping")
async def ping(dispatcher: EventDispatcher = Depends(get_dispatcher)) -> dict[str, Any]:
    try:
        result = await dispatcher.ping()
    except DeliveryError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, "result": result.to_dict()}


@router.post("/test")
async def send_test_event(
    request: TestEventRequest,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return await _dispatch(dispatcher, request.event, request.payload)


@router.post("/account-signup")
async def account_signup(
    request: AccountSignupRequest,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return await _dispatch(dispatcher, "account.signup", request.model_dump())


@router.post("/session-reminder")
async def session_reminder(
    request: SessionReminderRequest,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return await _dispatch(dispatcher, SESSION_REMINDER_EVENT, request.model_dump(mode="json"))


@router.post("/retreat-booking")
async def retreat_booking(
    request: RetreatBookingRequest,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return await _dispatch(dispatcher, RETREAT_BOOKING_EVENT, request.model_dump(mode="json"))
