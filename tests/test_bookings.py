"""Tests for booking creation and the duplicate submission guard"""

import asyncio

import pytest
from httpx import AsyncClient

from sessionhub.db.models import Booking, BookingStatusFlag
from sessionhub.exceptions import AlreadyInProgress
from sessionhub.schemas.bookings import BookingCreate
from sessionhub.services.bookings import BookingService
from sessionhub.services.request_dedup import RequestDeduplicator

BOOKING_PAYLOAD = {
    "listing_id": "listing-1",
    "listing_title": "Breathwork",
    "provider_id": "provider-1",
    "provider_name": "Pat Provider",
    "provider_email": "provider@example.com",
    "requester_id": "requester-1",
    "requester_name": "Riley Requester",
    "requester_email": "requester@example.com",
    "payment_intent_id": "pi_123",
    "amount": 10835,
    "currency": "usd",
    "session_date": "2025-06-02T09:30:00-04:00",
    "timezone": "America/New_York",
}


@pytest.fixture
def deduplicator():
    return RequestDeduplicator()


@pytest.fixture
def service(test_db, deduplicator, email_service):
    return BookingService(test_db, deduplicator, email_service)


@pytest.mark.asyncio
async def test_create_booking_with_defaults(service, email_service):
    request = BookingCreate(**{
        "listing_id": "listing-1",
        "provider_id": "provider-1",
        "provider_email": "provider@example.com",
        "requester_id": "requester-1",
        "requester_email": "requester@example.com",
        "payment_intent_id": "pi_defaults",
    })

    booking, created = await service.create_booking(request)

    assert created is True
    assert booking.listing_title == "Untitled Service"
    assert booking.provider_name == "Unknown Provider"
    assert booking.requester_name == "Unknown User"
    assert booking.currency == "USD"
    assert booking.session_length == "60 min"
    assert booking.format == "Remote"
    assert booking.reminders == {}
    assert booking.status[BookingStatusFlag.CONFIRMED_BY_PROVIDER.value] is False
    assert email_service.send_booking_invite.await_count == 2


@pytest.mark.asyncio
async def test_invites_set_status_flags(service, test_db):
    booking, _ = await service.create_booking(BookingCreate(**BOOKING_PAYLOAD))

    stored = await test_db.get(Booking, booking.id)
    assert stored.status[BookingStatusFlag.INVITE_EMAIL_TO_PROVIDER.value] is True
    assert stored.status[BookingStatusFlag.INVITE_EMAIL_TO_REQUESTER.value] is True
    assert stored.status[BookingStatusFlag.COMPLETED_BY_REQUESTER.value] is False


@pytest.mark.asyncio
async def test_failed_invite_leaves_flag_unset(service, email_service):
    email_service.send_booking_invite.side_effect = [True, False]

    booking, created = await service.create_booking(BookingCreate(**BOOKING_PAYLOAD))

    assert created is True
    assert booking.status[BookingStatusFlag.INVITE_EMAIL_TO_PROVIDER.value] is True
    assert booking.status[BookingStatusFlag.INVITE_EMAIL_TO_REQUESTER.value] is False


@pytest.mark.asyncio
async def test_existing_booking_is_returned(service, email_service):
    first, created = await service.create_booking(BookingCreate(**BOOKING_PAYLOAD))
    second, created_again = await service.create_booking(BookingCreate(**BOOKING_PAYLOAD))

    assert created is True
    assert created_again is False
    assert second.id == first.id
    assert email_service.send_booking_invite.await_count == 2


@pytest.mark.asyncio
async def test_in_flight_duplicate_conflicts(service, deduplicator):
    deduplicator.acquire("pi_123")

    with pytest.raises(AlreadyInProgress):
        await service.create_booking(BookingCreate(**BOOKING_PAYLOAD))

    assert await service.get_by_payment_intent("pi_123") is None


@pytest.mark.asyncio
async def test_marker_released_after_create(service, deduplicator):
    await service.create_booking(BookingCreate(**BOOKING_PAYLOAD))

    assert deduplicator.in_flight_count == 0


@pytest.mark.asyncio
async def test_session_date_stored_in_utc(service):
    booking, _ = await service.create_booking(BookingCreate(**BOOKING_PAYLOAD))

    assert booking.to_dict()["session_date"] == "2025-06-02T13:30:00+00:00"


@pytest.mark.asyncio
async def test_create_booking_endpoint(client: AsyncClient):
    response = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] is None
    assert data["data"]["payment_intent_id"] == "pi_123"
    assert data["data"]["currency"] == "USD"

    fetched = await client.get(f"/api/v1/bookings/{data['booking_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["listing_title"] == "Breathwork"


@pytest.mark.asyncio
async def test_duplicate_submission_endpoint(client: AsyncClient):
    first = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD)
    second = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD)

    assert second.status_code == 200
    assert second.json()["booking_id"] == first.json()["booking_id"]
    assert second.json()["message"] == "Booking already exists for this payment"


@pytest.mark.asyncio
async def test_in_flight_submission_returns_conflict(app, client: AsyncClient):
    app.state.deduplicator.acquire("pi_123")

    response = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD)

    assert response.status_code == 409
    app.state.deduplicator.release("pi_123")


@pytest.mark.asyncio
async def test_concurrent_submissions_one_conflict(app, client: AsyncClient, email_service):
    gate = asyncio.Event()

    async def slow_invite(*args, **kwargs):
        await gate.wait()
        return True

    email_service.send_booking_invite.side_effect = slow_invite

    first = asyncio.create_task(client.post("/api/v1/bookings", json=BOOKING_PAYLOAD))
    while not app.state.deduplicator.is_in_flight("pi_123"):
        await asyncio.sleep(0.01)
    second = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD)
    gate.set()
    first = await first

    assert sorted([first.status_code, second.status_code]) == [200, 409]
    assert app.state.deduplicator.in_flight_count == 0


@pytest.mark.asyncio
async def test_missing_required_fields(client: AsyncClient):
    payload = {key: value for key, value in BOOKING_PAYLOAD.items() if key != "requester_email"}

    response = await client.post("/api/v1/bookings", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_booking(client: AsyncClient):
    response = await client.get("/api/v1/bookings/missing")

    assert response.status_code == 404
