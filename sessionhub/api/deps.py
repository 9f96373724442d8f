"""Dependencies resolving the components built at startup"""

from fastapi import Request

from sessionhub.config import Settings
from sessionhub.services.email_notifications import EmailNotificationService
from sessionhub.services.event_dispatcher import EventDispatcher
from sessionhub.services.notification_aggregator import NotificationAggregator
from sessionhub.services.request_dedup import RequestDeduplicator
from sessionhub.services.scheduler import SchedulerOrchestrator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher


def get_deduplicator(request: Request) -> RequestDeduplicator:
    return request.app.state.deduplicator


def get_email_service(request: Request) -> EmailNotificationService:
    return request.app.state.email_service


def get_scheduler(request: Request) -> SchedulerOrchestrator:
    return request.app.state.scheduler


def get_aggregator(request: Request) -> NotificationAggregator:
    return request.app.state.scheduler.notification_aggregator
