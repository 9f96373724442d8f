"""Signed outbound event delivery to the external automation receiver"""

import asyncio
import hashlib
import hmac
import json
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from sessionhub.config import Settings, settings as default_settings
from sessionhub.exceptions import DeliveryError

logger = logging.getLogger(__name__)

NONCE_BYTES = 12
WEBHOOK_PATH = "/webhook/"

# Payload fields tried, in order, for a natural idempotency key
IDEMPOTENCY_KEY_FIELDS = ("id", "booking_id", "bookingId", "payment_intent_id", "paymentIntentId")


@dataclass
class RetryPolicy:
    """Which responses are retried and how long to wait between attempts"""
    retries: int = 3
    backoff_ms: int = 400

    def is_retryable(self, status: int) -> bool:
        return status == 429 or 500 <= status < 600

    def delay_seconds(self, attempt: int) -> float:
        return self.backoff_ms * (2 ** attempt) / 1000


@dataclass
class DispatchResult:
    """Outcome of one logical send"""
    sent: bool
    status: int | None = None
    response: str | None = None
    reason: str | None = None
    idempotency_key: str | None = None
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = {
            "sent": self.sent,
            "status": self.status,
            "response": self.response,
            "reason": self.reason,
            "idempotency_key": self.idempotency_key,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class _Attempt:
    ok: bool
    status: int
    body: str
    attempts: int = field(default=1)


def sign(secret: str, timestamp: str, nonce: str, body: str) -> str:
    """HMAC-SHA256 hex digest over '<timestamp>.<nonce>.<body>'"""
    message = f"{timestamp}.{nonce}.{body}".encode("utf-8")
    return hmac.new(str(secret).encode("utf-8"), message, hashlib.sha256).hexdigest()


def iso_millis(epoch_ms: int) -> str:
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_idempotency_key(
    event: str,
    payload: dict[str, Any] | None,
    explicit: str | None = None,
    now_ms: int | None = None,
) -> str:
    """
    Pick the idempotency key for a send.

    Precedence: explicit key, then the payload's own id, booking id or
    payment intent id, then '<event>-<epoch ms>' as a last resort.
    """
    if explicit:
        return str(explicit)
    payload = payload or {}
    for key in IDEMPOTENCY_KEY_FIELDS:
        value = payload.get(key)
        if value:
            return str(value)
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{event}-{now_ms}"


class EventDispatcher:
    """
    Delivers named events to the automation receiver.

    Two receiver layouts are supported. A fixed webhook URL receives a flat
    body (`{<event field>: event, **payload}`); a base URL receives the nested
    envelope at `<base>/webhook/<event>`. The fixed URL wins when both are
    configured.

    Every request carries X-Timestamp and X-Nonce headers and, when an API
    key is configured, an X-Signature over timestamp, nonce and the exact
    body bytes, so the receiver can reject stale or replayed deliveries.
    Delivery state is not persisted here; callers that need dedup markers
    store them themselves.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or default_settings
        self.retry_policy = retry_policy or RetryPolicy(
            retries=self.settings.automation_retries,
            backoff_ms=self.settings.automation_backoff_ms,
        )
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self.settings.is_automation_configured()

    @property
    def uses_flat_body(self) -> bool:
        return bool(self.settings.automation_webhook_url)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.automation_timeout_seconds)
        return self._client

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def resolve_url(self, event: str) -> str | None:
        """Receiver URL for an event, None when no URL is configured"""
        if self.settings.automation_webhook_url:
            return self.settings.automation_webhook_url
        base_url = self.settings.automation_base_url
        if not base_url:
            return None
        return f"{base_url.rstrip('/')}{WEBHOOK_PATH}{quote(event, safe='')}"

    def build_envelope(
        self,
        event: str,
        payload: dict[str, Any] | None,
        meta: dict[str, Any] | None = None,
        now_ms: int | None = None,
    ) -> dict[str, Any]:
        """Nested envelope used with the base URL convention"""
        meta = meta or {}
        now_ms = self._now_ms() if now_ms is None else now_ms
        return {
            "event": event,
            "payload": payload or {},
            "meta": {
                "source": meta.get("source", "backend"),
                "environment": self.settings.app_env,
                "timestamp": iso_millis(now_ms),
                **meta,
            },
        }

    def build_body(
        self,
        event: str,
        payload: dict[str, Any] | None,
        meta: dict[str, Any] | None = None,
        now_ms: int | None = None,
    ) -> dict[str, Any]:
        if self.uses_flat_body:
            return {self.settings.automation_event_field: event, **(payload or {})}
        return self.build_envelope(event, payload, meta, now_ms)

    def build_headers(self, body: str, idempotency_key: str, now_ms: int | None = None) -> dict[str, str]:
        """Delivery headers; signature only when an API key is configured"""
        api_key = self.settings.automation_api_key
        timestamp = str(self._now_ms() if now_ms is None else now_ms)
        nonce = secrets.token_hex(NONCE_BYTES)
        headers = {
            "Content-Type": "application/json",
            "X-API-Key": api_key or "",
            "X-Timestamp": timestamp,
            "X-Nonce": nonce,
            "X-Idempotency-Key": idempotency_key,
        }
        if api_key:
            headers["X-Signature"] = sign(api_key, timestamp, nonce, body)
        return headers

    async def send(
        self,
        event: str,
        payload: dict[str, Any] | None = None,
        *,
        idempotency_key: str | None = None,
        meta: dict[str, Any] | None = None,
        retries: int | None = None,
        backoff_ms: int | None = None,
    ) -> DispatchResult:
        """
        Deliver one event.

        Returns sent=False with reason "disabled" or "no_url" when no
        receiver is configured, and sent=False with the status for a
        non-retryable rejection. Raises DeliveryError once retries on 429,
        5xx or network errors are exhausted.
        """
        if not self.enabled:
            logger.info(f"Automation receiver not configured, skipping event {event}")
            return DispatchResult(sent=False, reason="disabled")

        url = self.resolve_url(event)
        if not url:
            logger.warning(f"Automation receiver URL not set, skipping event {event}")
            return DispatchResult(sent=False, reason="no_url")

        payload = payload or {}
        now_ms = self._now_ms()
        body = json.dumps(
            self.build_body(event, payload, meta, now_ms),
            separators=(",", ":"),
            default=str,
        )
        key = resolve_idempotency_key(event, payload, idempotency_key, now_ms)
        headers = self.build_headers(body, key, now_ms)

        policy = self.retry_policy
        if retries is not None or backoff_ms is not None:
            # Keeps the policy's class and its is_retryable
            policy = replace(
                policy,
                retries=policy.retries if retries is None else retries,
                backoff_ms=policy.backoff_ms if backoff_ms is None else backoff_ms,
            )

        outcome = await self._post_with_retry(url, headers, body, policy, event)

        if outcome.ok:
            logger.info(
                f"Delivered event {event}",
                extra={"event": event, "status": outcome.status, "idempotency_key": key, "attempts": outcome.attempts},
            )
            return DispatchResult(
                sent=True,
                status=outcome.status,
                response=outcome.body,
                idempotency_key=key,
                attempts=outcome.attempts,
            )

        logger.warning(
            f"Automation receiver rejected event {event} with status {outcome.status}",
            extra={"event": event, "status": outcome.status, "idempotency_key": key},
        )
        return DispatchResult(
            sent=False,
            status=outcome.status,
            response=outcome.body,
            reason="rejected",
            idempotency_key=key,
            attempts=outcome.attempts,
        )

    async def _post_with_retry(
        self,
        url: str,
        headers: dict[str, str],
        body: str,
        policy: RetryPolicy,
        event: str,
    ) -> _Attempt:
        last_error: Exception | None = None
        last_status: int | None = None
        last_body: str | None = None

        for attempt in range(policy.retries + 1):
            try:
                response = await self.client.post(url, headers=headers, content=body)
            except httpx.RequestError as e:
                last_error = e
                logger.warning(f"Network error delivering {event} (attempt {attempt + 1}): {e}")
            else:
                text = response.text
                if response.is_success:
                    return _Attempt(ok=True, status=response.status_code, body=text, attempts=attempt + 1)
                if not policy.is_retryable(response.status_code):
                    return _Attempt(ok=False, status=response.status_code, body=text, attempts=attempt + 1)
                last_error = None
                last_status, last_body = response.status_code, text
                logger.warning(
                    f"Automation receiver responded {response.status_code} for {event} (attempt {attempt + 1})"
                )

            if attempt < policy.retries:
                await self._sleep(policy.delay_seconds(attempt))

        attempts = policy.retries + 1
        if last_error is not None:
            raise DeliveryError(
                f"Failed to deliver {event} after {attempts} attempts: {last_error}",
                attempts=attempts,
            ) from last_error
        raise DeliveryError(
            f"Automation receiver responded {last_status} for {event} after {attempts} attempts: {last_body}",
            status=last_status,
            body=last_body,
            attempts=attempts,
        )

    async def ping(self) -> DispatchResult:
        return await self.send("system.ping", {"message": "hello from backend"})

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
