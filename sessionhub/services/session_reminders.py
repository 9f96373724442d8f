"""Time-windowed session reminders with persisted dedup markers"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sessionhub.config import Settings, settings as default_settings
from sessionhub.db.models import Booking, as_utc
from sessionhub.exceptions import DeliveryError
from sessionhub.services.event_dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

SESSION_REMINDER_EVENT = "session.reminder"
WINDOW_TOKEN = re.compile(r"^(\d+)([mh])$", re.IGNORECASE)

# Reminder sends retry less than ad hoc events; the next tick retries anyway
REMINDER_RETRIES = 2
REMINDER_BACKOFF_MS = 500


@dataclass(frozen=True)
class ReminderWindow:
    """A lead time before a session at which a reminder is due"""
    label: str
    offset_ms: int

    @property
    def offset(self) -> timedelta:
        return timedelta(milliseconds=self.offset_ms)


def parse_windows(spec: str) -> list[ReminderWindow]:
    """
    Parse a comma separated window list such as "24h,1h" or "90m".

    Tokens that are not <digits>h or <digits>m are dropped.
    """
    windows = []
    for token in (part.strip() for part in (spec or "").split(",")):
        if not token:
            continue
        match = WINDOW_TOKEN.match(token)
        if not match:
            logger.debug(f"Ignoring unparseable reminder window '{token}'")
            continue
        value = int(match.group(1))
        minutes = value * 60 if match.group(2).lower() == "h" else value
        windows.append(ReminderWindow(label=token, offset_ms=minutes * 60 * 1000))
    return windows


def reminder_idempotency_key(booking_id: str, label: str) -> str:
    return f"{SESSION_REMINDER_EVENT}:{booking_id}:{label}"


class SessionReminderEngine:
    """
    Sends at most one session.reminder event per booking and window.

    For each configured window the engine looks for sessions starting in
    [now + offset, now + offset + width), skips bookings already marked for
    that window or missing contact details, dispatches the event, and only
    then writes the `reminders.<label>` marker. A crash between the send and
    the marker write means the next tick sends again (at-least-once).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        dispatcher: EventDispatcher,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or default_settings
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.windows = parse_windows(self.settings.session_reminder_windows)
        self.window_width = timedelta(minutes=self.settings.session_reminder_window_width_minutes)
        self.default_timezone = self.settings.default_timezone
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_payload(self, booking: Booking) -> dict[str, Any]:
        return {
            "booking_id": booking.id,
            "requester": {"name": booking.requester_name or "Requester", "email": booking.requester_email},
            "provider": {"name": booking.provider_name or "Provider", "email": booking.provider_email},
            "session_date": as_utc(booking.session_date).isoformat(),
            "timezone": booking.timezone or self.default_timezone,
        }

    async def run(self, now: datetime | None = None) -> dict[str, Any]:
        """Process every window once; failures are counted, never raised"""
        if self.session_factory is None:
            logger.warning("Store not initialized; skipping session reminders")
            return {"success": False, "error": "unavailable"}

        now = as_utc(now or self._clock())
        total_reminders = 0
        errors = 0

        for window in self.windows:
            range_start = now + window.offset
            range_end = range_start + self.window_width
            try:
                sent, failed = await self._process_window(window, range_start, range_end)
            except SQLAlchemyError as e:
                errors += 1
                logger.error(f"Reminder window {window.label} query failed: {e}")
                continue
            total_reminders += sent
            errors += failed

        if total_reminders > 0:
            logger.info(f"Session reminders sent: {total_reminders}")
        else:
            logger.info("No session reminders due in current windows")
        if errors > 0:
            logger.warning(f"Session reminder errors: {errors}")

        return {"success": True, "total_reminders": total_reminders, "errors": errors}

    async def _process_window(
        self,
        window: ReminderWindow,
        range_start: datetime,
        range_end: datetime,
    ) -> tuple[int, int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Booking)
                .where(Booking.session_date >= range_start, Booking.session_date < range_end)
                .order_by(Booking.session_date)
            )
            bookings = list(result.scalars().all())

        sent = 0
        failed = 0
        for booking in bookings:
            if booking.has_reminder(window.label):
                continue
            if not booking.requester_email or not booking.provider_email or not booking.session_date:
                logger.info(f"Skipping reminder for booking {booking.id}: missing contact details")
                continue

            try:
                result = await self.dispatcher.send(
                    SESSION_REMINDER_EVENT,
                    self.build_payload(booking),
                    idempotency_key=reminder_idempotency_key(booking.id, window.label),
                    meta={"source": "backend:cron"},
                    retries=REMINDER_RETRIES,
                    backoff_ms=REMINDER_BACKOFF_MS,
                )
            except DeliveryError as e:
                failed += 1
                logger.error(f"Failed to send session.reminder for {booking.id} ({window.label}): {e}")
                continue
            except Exception as e:
                failed += 1
                logger.error(
                    f"Unexpected error sending session.reminder for {booking.id} ({window.label}): {e}",
                    exc_info=True,
                )
                continue

            if not result.sent:
                failed += 1
                logger.warning(
                    f"session.reminder not sent for {booking.id} ({window.label}): "
                    f"{result.reason or result.status}"
                )
                continue

            sent += 1
            try:
                await self._persist_marker(booking.id, window.label)
            except SQLAlchemyError as e:
                failed += 1
                logger.error(f"Failed to persist reminder marker for {booking.id} ({window.label}): {e}")

        return sent, failed

    async def _persist_marker(self, booking_id: str, label: str) -> None:
        async with self.session_factory() as session:
            booking = await session.get(Booking, booking_id)
            if booking is None:
                return
            booking.mark_reminder_sent(label)
            await session.commit()
