"""Tests for manual automation endpoints"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest
import respx
from httpx import AsyncClient

from sessionhub.main import build_components
from sessionhub.services.event_dispatcher import EventDispatcher
from tests.conftest import RECEIVER_BASE_URL

REMINDER_PAYLOAD = {
    "booking_id": "b1",
    "requester": {"name": "Riley", "email": "requester@example.com"},
    "provider": {"name": "Pat", "email": "provider@example.com"},
    "session_date": "2025-06-02T13:30:00Z",
    "timezone": "UTC",
}

RETREAT_PAYLOAD = {
    "retreat_id": "r-7",
    "title": "Mountain Silence",
    "requester": {"name": "Riley", "email": "requester@example.com"},
    "provider": {"name": "Pat", "email": "provider@example.com"},
    "price": {"amount": 45000, "currency": "USD"},
    "location": "Big Sur",
}


@pytest.fixture
async def automation_app(app, automation_settings, session_factory, email_service):
    dispatcher = EventDispatcher(automation_settings, sleep=AsyncMock())
    build_components(app, automation_settings, session_factory, dispatcher=dispatcher, email_service=email_service)
    yield app
    await dispatcher.aclose()


@pytest.mark.asyncio
async def test_ping_when_disabled(client: AsyncClient):
    response = await client.get("/api/v1/automation/ping")

    assert response.status_code == 200
    assert response.json()["result"] == {"sent": False, "reason": "disabled"}


@pytest.mark.asyncio
@respx.mock
async def test_account_signup(automation_app, client: AsyncClient):
    route = respx.post(f"{RECEIVER_BASE_URL}/webhook/account.signup").mock(return_value=httpx.Response(200))

    response = await client.post(
        "/api/v1/automation/account-signup",
        json={"user_id": "u-1", "email": "new@example.com", "name": "New User"},
    )

    assert response.status_code == 200
    assert response.json()["result"]["sent"] is True
    envelope = json.loads(route.calls.last.request.content)
    assert envelope["payload"]["email"] == "new@example.com"
    assert envelope["meta"]["source"] == "backend:automation-api"


@pytest.mark.asyncio
async def test_account_signup_requires_fields(client: AsyncClient):
    response = await client.post("/api/v1/automation/account-signup", json={"user_id": "u-1"})

    assert response.status_code == 422


@pytest.mark.asyncio
@respx.mock
async def test_session_reminder(automation_app, client: AsyncClient):
    route = respx.post(f"{RECEIVER_BASE_URL}/webhook/session.reminder").mock(return_value=httpx.Response(200))

    response = await client.post("/api/v1/automation/session-reminder", json=REMINDER_PAYLOAD)

    assert response.status_code == 200
    assert route.calls.last.request.headers["X-Idempotency-Key"] == "b1"


@pytest.mark.asyncio
@respx.mock
async def test_session_reminder_delivery_failure(automation_app, client: AsyncClient):
    route = respx.post(f"{RECEIVER_BASE_URL}/webhook/session.reminder").mock(return_value=httpx.Response(503))

    response = await client.post("/api/v1/automation/session-reminder", json=REMINDER_PAYLOAD)

    assert response.status_code == 502
    assert route.call_count == 4


@pytest.mark.asyncio
@respx.mock
async def test_custom_test_event(automation_app, client: AsyncClient):
    route = respx.post(f"{RECEIVER_BASE_URL}/webhook/custom.thing").mock(return_value=httpx.Response(400, text="nope"))

    response = await client.post(
        "/api/v1/automation/test",
        json={"event": "custom.thing", "payload": {"id": "evt-9"}},
    )

    assert response.status_code == 200
    result = response.json()["result"]
    assert result == {
        "sent": False,
        "status": 400,
        "response": "nope",
        "reason": "rejected",
        "idempotency_key": "evt-9",
    }
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_retreat_booking(automation_app, client: AsyncClient):
    route = respx.post(f"{RECEIVER_BASE_URL}/webhook/retreat.booking").mock(return_value=httpx.Response(200))

    response = await client.post("/api/v1/automation/retreat-booking", json=RETREAT_PAYLOAD)

    assert response.status_code == 200
    assert response.json()["result"]["sent"] is True
    envelope = json.loads(route.calls.last.request.content)
    assert envelope["event"] == "retreat.booking"
    assert envelope["payload"]["retreat_id"] == "r-7"
    assert envelope["payload"]["price"] == {"amount": 45000, "currency": "USD"}
    assert envelope["payload"]["dates"] is None
    assert envelope["meta"]["source"] == "backend:automation-api"


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["price", "provider", "retreat_id"])
async def test_retreat_booking_requires_fields(client: AsyncClient, missing):
    payload = {key: value for key, value in RETREAT_PAYLOAD.items() if key != missing}

    response = await client.post("/api/v1/automation/retreat-booking", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_retreat_booking_requires_provider_email(client: AsyncClient):
    payload = {**RETREAT_PAYLOAD, "provider": {"name": "Pat"}}

    response = await client.post("/api/v1/automation/retreat-booking", json=payload)

    assert response.status_code == 422
