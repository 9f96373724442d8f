"""Periodic triggers for unread digests and session reminders"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from sessionhub.config import Settings, settings as default_settings
from sessionhub.services.notification_aggregator import NotificationAggregator
from sessionhub.services.session_reminders import SessionReminderEngine

logger = logging.getLogger(__name__)

UNREAD_NOTIFICATIONS_TASK = "unread-message-notifications"
SESSION_REMINDERS_TASK = "session-reminders"


class PeriodicTask:
    """
    Fires a job every `interval_seconds` until stopped.

    Each tick starts the job as its own task and goes straight back to
    sleeping, so a run that outlasts the interval overlaps the next one.
    Stopping cancels the timer loop only; runs already started finish.
    """

    def __init__(self, name: str, interval_seconds: float, job: Callable[[], Awaitable[Any]]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.job = job
        self._loop_task: asyncio.Task | None = None
        self._runs: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> int:
        return len(self._runs)

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")

    def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            run = asyncio.create_task(self.job(), name=f"run:{self.name}")
            # Keep a reference so the run is not garbage collected mid-flight
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)


class SchedulerOrchestrator:
    """Owns the recurring jobs; stopped until start() is called"""

    def __init__(
        self,
        notification_aggregator: NotificationAggregator,
        reminder_engine: SessionReminderEngine,
        settings: Settings | None = None,
    ):
        self.settings = settings or default_settings
        self.notification_aggregator = notification_aggregator
        self.reminder_engine = reminder_engine
        self.tasks: list[PeriodicTask] = []
        self.is_running = False

    def start(self) -> None:
        """Register the periodic triggers; a second call is a no-op"""
        if self.is_running:
            logger.info("Scheduler already running")
            return

        logger.info("Starting scheduler...")
        self.tasks = [
            PeriodicTask(
                UNREAD_NOTIFICATIONS_TASK,
                self.settings.unread_notification_interval_hours * 3600,
                self.run_unread_message_notifications,
            )
        ]

        reminder_interval = self.settings.reminder_poll_interval_seconds
        if reminder_interval:
            self.tasks.append(
                PeriodicTask(SESSION_REMINDERS_TASK, reminder_interval, self.run_session_reminders)
            )
        else:
            logger.info("Session reminders disabled")

        for task in self.tasks:
            task.start()
            logger.info(f"Scheduled {task.name} every {task.interval_seconds:g}s")

        self.is_running = True

    def stop(self) -> None:
        """Cancel future triggers; runs already in progress are not interrupted"""
        logger.info("Stopping scheduler...")
        for task in self.tasks:
            task.stop()
        self.tasks = []
        self.is_running = False
        logger.info("Scheduler stopped")

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "tasks": [{"name": task.name, "running": task.running} for task in self.tasks],
        }

    async def run_unread_message_notifications(self) -> dict[str, Any]:
        """Run the unread digest job once, reporting instead of raising"""
        logger.info("Running scheduled unread message notifications")
        start_time = time.monotonic()
        try:
            result = await self.notification_aggregator.process_all()
        except Exception as e:
            logger.error(f"Error in scheduled notification run: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if result.get("success"):
            logger.info(
                f"Scheduled notification run completed in {duration_ms}ms",
                extra={
                    "total_emails_sent": result.get("total_emails_sent"),
                    "provider_notifications": result.get("provider_notifications"),
                    "requester_notifications": result.get("requester_notifications"),
                },
            )
        else:
            logger.error(f"Scheduled notification run failed: {result.get('error')}")
        return result

    async def run_session_reminders(self) -> dict[str, Any]:
        """Run the reminder job once, reporting instead of raising"""
        start_time = time.monotonic()
        try:
            result = await self.reminder_engine.run()
        except Exception as e:
            logger.error(f"Error in scheduled session reminder run: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if result.get("success"):
            logger.info(
                f"Session reminder run completed in {duration_ms}ms",
                extra={"total_reminders": result.get("total_reminders"), "errors": result.get("errors")},
            )
        else:
            logger.warning(f"Session reminder run skipped: {result.get('error')}")
        return result
