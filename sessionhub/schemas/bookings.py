"""Pydantic schemas for booking API"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator


class BookingCreate(BaseModel):
    listing_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    requester_id: str = Field(..., min_length=1)
    payment_intent_id: str = Field(..., min_length=1)
    provider_email: EmailStr
    requester_email: EmailStr
    listing_title: str | None = None
    provider_name: str | None = None
    requester_name: str | None = None
    amount: int = Field(default=0, ge=0, description="Amount in minor currency units")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    session_length: str = "60 min"
    format: str = "Remote"
    modality: str | None = None
    payment_status: str = "succeeded"
    session_date: datetime | None = None
    timezone: str | None = None

    @field_validator("session_date")
    @classmethod
    def normalize_session_date(cls, v: datetime | None) -> datetime | None:
        """Store session start in UTC; naive values are taken as UTC"""
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class BookingResponse(BaseModel):
    success: bool = True
    booking_id: str
    data: dict[str, Any]
    message: str | None = None
