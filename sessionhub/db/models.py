"""Database models for SessionHub bookings, profiles and chat messages"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from sessionhub.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def generate_id() -> str:
    return uuid.uuid4().hex


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a stored datetime to an aware UTC datetime"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampMixin:
    """Mixin for adding timestamp columns to models"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class ProfileRole(enum.Enum):
    """Marketplace role of a profile"""
    PROVIDER = "provider"
    REQUESTER = "requester"


class BookingStatusFlag(str, enum.Enum):
    """Lifecycle flags stored in Booking.status"""
    INVITE_EMAIL_TO_REQUESTER = "invite-email-to-requester"
    INVITE_EMAIL_TO_PROVIDER = "invite-email-to-provider"
    CONFIRMED_BY_PROVIDER = "booking-confirmed-by-provider"
    COMPLETED_BY_PROVIDER = "booking-marked-as-complete-by-provider"
    COMPLETED_BY_REQUESTER = "booking-marked-as-complete-by-requester"


def default_status_flags() -> dict[str, bool]:
    return {flag.value: False for flag in BookingStatusFlag}


class Profile(Base, TimestampMixin):
    """Marketplace user: notification recipient lookup source"""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    role: Mapped[ProfileRole] = mapped_column(
        SQLEnum(ProfileRole),
        default=ProfileRole.REQUESTER,
        nullable=False
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.display_name or "User"


class Booking(Base, TimestampMixin):
    """A paid session between a provider and a requester"""
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    listing_id: Mapped[str] = mapped_column(String(64), nullable=False)
    listing_title: Mapped[str] = mapped_column(String(255), default="Untitled Service", nullable=False)

    # Parties
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    requester_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    requester_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    requester_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Payment
    amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    payment_intent_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    payment_status: Mapped[str] = mapped_column(String(50), default="succeeded", nullable=False)

    # Session
    session_length: Mapped[str] = mapped_column(String(50), default="60 min", nullable=False)
    format: Mapped[str] = mapped_column(String(50), default="Remote", nullable=False)
    modality: Mapped[str | None] = mapped_column(String(100), nullable=True)
    session_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Markers
    reminders: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    status: Mapped[dict[str, Any]] = mapped_column(JSONType, default=default_status_flags, nullable=False)

    messages = relationship("ChatMessage", back_populates="booking", order_by="ChatMessage.timestamp")

    __table_args__ = (
        Index("idx_bookings_session_date", "session_date"),
    )

    def has_reminder(self, label: str) -> bool:
        return bool((self.reminders or {}).get(label))

    def mark_reminder_sent(self, label: str) -> None:
        # Assign a new dict so the JSON column change is flushed
        self.reminders = {**(self.reminders or {}), label: True}

    def set_status_flag(self, flag: BookingStatusFlag, value: bool = True) -> None:
        self.status = {**(self.status or {}), flag.value: value}

    def to_dict(self) -> dict[str, Any]:
        session_date = as_utc(self.session_date)
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "listing_title": self.listing_title,
            "provider_id": self.provider_id,
            "provider_name": self.provider_name,
            "provider_email": self.provider_email,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "requester_email": self.requester_email,
            "amount": self.amount,
            "currency": self.currency,
            "payment_intent_id": self.payment_intent_id,
            "payment_status": self.payment_status,
            "session_length": self.session_length,
            "format": self.format,
            "modality": self.modality,
            "session_date": session_date.isoformat() if session_date else None,
            "timezone": self.timezone,
            "reminders": dict(self.reminders or {}),
            "status": dict(self.status or {}),
        }


class ChatMessage(Base):
    """A message in a booking's conversation"""
    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    booking_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    read_by: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    booking = relationship("Booking", back_populates="messages")

    def is_unread_by(self, user_id: str) -> bool:
        """Unread when someone else sent it and the user has not read it"""
        return self.sender_id != user_id and not (self.read_by or {}).get(user_id)
