"""Unread-message digest emails across a user's bookings"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sessionhub.config import Settings, settings as default_settings
from sessionhub.db.models import Booking, ChatMessage, Profile, ProfileRole, as_utc
from sessionhub.services.email_notifications import (
    DigestEntry,
    EmailNotificationService,
    EmailTemplate,
)

logger = logging.getLogger(__name__)


@dataclass
class UnreadConversation:
    """Unread activity in one booking's conversation, from one user's side"""
    booking_id: str
    title: str
    unread_count: int
    last_unread_at: datetime | None
    counterparty_name: str
    counterparty_email: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "title": self.title,
            "unread_count": self.unread_count,
            "last_unread_at": self.last_unread_at.isoformat() if self.last_unread_at else None,
            "counterparty_name": self.counterparty_name,
            "counterparty_email": self.counterparty_email,
        }


@dataclass
class _Recipient:
    user_id: str
    role: ProfileRole
    email: str | None
    name: str


def time_ago(when: datetime | None, now: datetime) -> str:
    """Human readable age of a timestamp relative to now"""
    if when is None:
        return "a while ago"
    minutes = int((now - when).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    days = hours // 24
    if days < 7:
        return f"{days} day{'s' if days > 1 else ''} ago"
    return when.strftime("%Y-%m-%d")


def _coerce_role(role: ProfileRole | str | None) -> ProfileRole:
    if isinstance(role, ProfileRole):
        return role
    if role == ProfileRole.PROVIDER.value:
        return ProfileRole.PROVIDER
    return ProfileRole.REQUESTER


class NotificationAggregator:
    """
    Emails each user one digest of their conversations with unread messages.

    A message is unread by a user when someone else sent it and the user's
    entry in read_by is missing or false. There is no "last notified"
    marker: a conversation that stays unread is included again on every run.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        email_service: EmailNotificationService | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or default_settings
        self.session_factory = session_factory
        self.email_service = email_service or EmailNotificationService(self.settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_unread_messages_for_user(
        self,
        user_id: str,
        role: ProfileRole | str,
    ) -> list[UnreadConversation]:
        """Find bookings of the user whose conversation has unread messages"""
        if self.session_factory is None:
            logger.warning("Store not initialized - cannot check unread messages")
            return []

        role = _coerce_role(role)
        is_provider = role == ProfileRole.PROVIDER
        party_column = Booking.provider_id if is_provider else Booking.requester_id

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Booking).where(party_column == user_id).order_by(Booking.created_at)
                )
                bookings = [
                    {
                        "id": booking.id,
                        "title": booking.listing_title or "Untitled Service",
                        "counterparty_name": (
                            booking.requester_name or "Unknown Requester"
                            if is_provider
                            else booking.provider_name or "Unknown Provider"
                        ),
                        "counterparty_email": booking.requester_email if is_provider else booking.provider_email,
                    }
                    for booking in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            logger.error(f"Error getting bookings for {role.value} {user_id}: {e}")
            return []

        unread: list[UnreadConversation] = []
        for booking in bookings:
            try:
                messages = await self._load_messages(booking["id"])
            except SQLAlchemyError as e:
                logger.warning(f"Error checking messages for booking {booking['id']}: {e}")
                continue

            unread_messages = [message for message in messages if message.is_unread_by(user_id)]
            if not unread_messages:
                continue

            unread.append(UnreadConversation(
                booking_id=booking["id"],
                title=booking["title"],
                unread_count=len(unread_messages),
                last_unread_at=max(as_utc(message.timestamp) for message in unread_messages),
                counterparty_name=booking["counterparty_name"],
                counterparty_email=booking["counterparty_email"],
            ))

        logger.info(f"Found {len(unread)} bookings with unread messages for {role.value} {user_id}")
        return unread

    async def _load_messages(self, booking_id: str) -> list[ChatMessage]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ChatMessage).where(ChatMessage.booking_id == booking_id)
            )
            return list(result.scalars().all())

    async def _get_recipient(self, user_id: str) -> _Recipient | None:
        async with self.session_factory() as session:
            profile = await session.get(Profile, user_id)
            if profile is None:
                return None
            return _Recipient(profile.id, profile.role, profile.email, profile.full_name)

    async def send_unread_messages_notification(
        self,
        user_id: str,
        role: ProfileRole | str,
        unread: list[UnreadConversation],
        recipient: _Recipient | None = None,
    ) -> dict[str, Any]:
        """Send one digest email covering every conversation in `unread`"""
        role = _coerce_role(role)

        if not self.email_service.is_configured():
            logger.warning("Email service not configured, skipping notification")
            return {"success": False, "error": "Email service not configured"}

        if not unread:
            return {"success": True, "email_sent": False, "message": "No unread messages"}

        if recipient is None:
            if self.session_factory is None:
                return {"success": False, "error": "unavailable"}
            try:
                recipient = await self._get_recipient(user_id)
            except SQLAlchemyError as e:
                logger.error(f"Error loading profile for {role.value} {user_id}: {e}")
                return {"success": False, "error": str(e)}

        if recipient is None or not recipient.email:
            logger.warning(f"No email found for {role.value} {user_id}")
            return {"success": False, "error": "User email not found"}

        now = self._clock()
        counterparty_label = "Requester" if role == ProfileRole.PROVIDER else "Provider"
        entries = [
            DigestEntry(
                title=conversation.title,
                counterparty_label=counterparty_label,
                counterparty_name=conversation.counterparty_name,
                unread_count=conversation.unread_count,
                last_message_ago=time_ago(conversation.last_unread_at, now),
            )
            for conversation in unread
        ]
        dashboard_url = f"{self.settings.app_base_url.rstrip('/')}/dashboard"

        sent = await self.email_service.send_email(
            recipient.email,
            EmailTemplate.unread_digest_subject(len(entries)),
            EmailTemplate.unread_digest_html(recipient.name, entries, dashboard_url),
            EmailTemplate.unread_digest_text(recipient.name, entries, dashboard_url),
        )
        if not sent:
            return {"success": False, "error": "Email delivery failed"}

        logger.info(f"Sent unread messages notification to {role.value} {user_id}")
        return {"success": True, "email_sent": True}

    async def process_all(self) -> dict[str, Any]:
        """Check every profile and send digests where there is unread activity"""
        if self.session_factory is None:
            logger.warning("Store not initialized; skipping unread message notifications")
            return {"success": False, "error": "unavailable"}

        logger.info("Starting unread message notification process")

        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Profile).order_by(Profile.id))
                recipients = [
                    _Recipient(profile.id, profile.role or ProfileRole.REQUESTER, profile.email, profile.full_name)
                    for profile in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            logger.error(f"Error loading profiles: {e}")
            return {"success": False, "error": str(e)}

        provider_notifications = 0
        requester_notifications = 0

        for recipient in recipients:
            try:
                unread = await self.get_unread_messages_for_user(recipient.user_id, recipient.role)
                if not unread:
                    continue

                result = await self.send_unread_messages_notification(
                    recipient.user_id, recipient.role, unread, recipient
                )
                if result.get("success") and result.get("email_sent"):
                    if recipient.role == ProfileRole.PROVIDER:
                        provider_notifications += 1
                    else:
                        requester_notifications += 1
            except Exception as e:
                logger.error(f"Error processing notifications for user {recipient.user_id}: {e}", exc_info=True)

        total_emails_sent = provider_notifications + requester_notifications
        logger.info(
            "Notification process completed",
            extra={
                "total_emails_sent": total_emails_sent,
                "provider_notifications": provider_notifications,
                "requester_notifications": requester_notifications,
            },
        )
        return {
            "success": True,
            "total_emails_sent": total_emails_sent,
            "provider_notifications": provider_notifications,
            "requester_notifications": requester_notifications,
        }
