"""Booking endpoints"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sessionhub.api.deps import get_deduplicator, get_email_service
from sessionhub.db.database import get_db
from sessionhub.exceptions import AlreadyInProgress
from sessionhub.schemas.bookings import BookingCreate, BookingResponse
from sessionhub.services.bookings import BookingService
from sessionhub.services.email_notifications import EmailNotificationService
from sessionhub.services.request_dedup import RequestDeduplicator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=BookingResponse)
async def create_booking(
    booking_data: BookingCreate,
    db: AsyncSession = Depends(get_db),
    deduplicator: RequestDeduplicator = Depends(get_deduplicator),
    email_service: EmailNotificationService = Depends(get_email_service),
) -> BookingResponse:
    """Create the booking for a confirmed payment (idempotent per payment intent)"""
    service = BookingService(db, deduplicator, email_service)
    try:
        booking, created = await service.create_booking(booking_data)
    except AlreadyInProgress:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Request already in progress for this payment",
        )

    return BookingResponse(
        booking_id=booking.id,
        data=booking.to_dict(),
        message=None if created else "Booking already exists for this payment",
    )


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    deduplicator: RequestDeduplicator = Depends(get_deduplicator),
) -> dict:
    service = BookingService(db, deduplicator)
    booking = await service.get_booking(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return {"success": True, "data": booking.to_dict()}
