"""Booking creation guarded against duplicate payment submissions"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sessionhub.db.models import Booking, BookingStatusFlag, default_status_flags
from sessionhub.schemas.bookings import BookingCreate
from sessionhub.services.email_notifications import EmailNotificationService
from sessionhub.services.request_dedup import RequestDeduplicator

logger = logging.getLogger(__name__)


class BookingService:
    """Creates bookings once per payment intent and sends the invite emails"""

    def __init__(
        self,
        db: AsyncSession,
        deduplicator: RequestDeduplicator,
        email_service: EmailNotificationService | None = None,
    ):
        self.db = db
        self.deduplicator = deduplicator
        self.email_service = email_service or EmailNotificationService()

    async def get_by_payment_intent(self, payment_intent_id: str) -> Booking | None:
        result = await self.db.execute(
            select(Booking).where(Booking.payment_intent_id == payment_intent_id)
        )
        return result.scalars().first()

    async def get_booking(self, booking_id: str) -> Booking | None:
        return await self.db.get(Booking, booking_id)

    async def create_booking(self, request: BookingCreate) -> tuple[Booking, bool]:
        """
        Create the booking for a confirmed payment.

        Returns (booking, created). A booking that already exists for the
        payment intent is returned with created=False. Raises
        AlreadyInProgress while another request for the same payment
        intent is still being handled by this process.
        """
        async with self.deduplicator.guard(request.payment_intent_id):
            existing = await self.get_by_payment_intent(request.payment_intent_id)
            if existing is not None:
                logger.info(
                    f"Found existing booking {existing.id} for payment intent {request.payment_intent_id}"
                )
                return existing, False

            booking = Booking(
                listing_id=request.listing_id,
                listing_title=request.listing_title or "Untitled Service",
                provider_id=request.provider_id,
                provider_name=request.provider_name or "Unknown Provider",
                provider_email=request.provider_email,
                requester_id=request.requester_id,
                requester_name=request.requester_name or "Unknown User",
                requester_email=request.requester_email,
                amount=request.amount,
                currency=request.currency,
                session_length=request.session_length,
                format=request.format,
                modality=request.modality,
                payment_intent_id=request.payment_intent_id,
                payment_status=request.payment_status,
                session_date=request.session_date,
                timezone=request.timezone,
                reminders={},
                status=default_status_flags(),
            )
            self.db.add(booking)
            await self.db.commit()
            logger.info(
                f"Booking {booking.id} created",
                extra={"booking_id": booking.id, "payment_intent_id": booking.payment_intent_id, "amount": booking.amount},
            )

            await self._send_invites(booking)
            return booking, True

    async def _send_invites(self, booking: Booking) -> None:
        """Email both parties; failures are logged and never fail the booking"""
        if not self.email_service.is_configured():
            logger.info(f"Email not configured, skipping invites for booking {booking.id}")
            return

        details: dict[str, Any] = booking.to_dict()
        provider_sent = await self.email_service.send_booking_invite(
            booking.provider_email,
            booking.provider_name,
            booking.requester_name,
            details,
            for_provider=True,
        )
        requester_sent = await self.email_service.send_booking_invite(
            booking.requester_email,
            booking.requester_name,
            booking.provider_name,
            details,
            for_provider=False,
        )

        if provider_sent:
            booking.set_status_flag(BookingStatusFlag.INVITE_EMAIL_TO_PROVIDER)
        if requester_sent:
            booking.set_status_flag(BookingStatusFlag.INVITE_EMAIL_TO_REQUESTER)
        if provider_sent or requester_sent:
            await self.db.commit()
