"""Wire the scheduling components from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from config import settings
from expenses.client import ExpenseApiClient, ExpenseCollaborator
from scheduler.coordinator import TimerCoordinator
from scheduler.failure_notifications import FailureNotificationService
from scheduler.in_flight import InFlightGuard
from scheduler.pipeline import ExecutionPipeline
from scheduler.schedule_service import TemplateScheduleService
from scheduler.timer_interface import PlatformTimerService
from services.notifications import Notifier, build_notifier
from storage import KeyValueStore, SqlKeyValueStore
from templates.history import ExecutionHistoryStore
from templates.repository import TemplateRepository

logger = logging.getLogger(__name__)

_application: "Application | None" = None


@dataclass
class Application:
    """Fully wired scheduling components sharing one store."""

    store: KeyValueStore
    repository: TemplateRepository
    timer_service: PlatformTimerService
    coordinator: TimerCoordinator
    pipeline: ExecutionPipeline
    service: TemplateScheduleService
    notifications: FailureNotificationService


def build_store() -> KeyValueStore:
    """Return the SQL-backed store for the configured database."""
    from services.database import get_sync_session, run_migrations_sync

    run_migrations_sync()
    return SqlKeyValueStore(get_sync_session)


def build_timer_service(store: KeyValueStore) -> PlatformTimerService:
    """Return the timer backend selected by ``settings.scheduler.timer_backend``."""
    if settings.scheduler.timer_backend == "celery":
        from scheduler.adapters.celery_timer import CeleryTimerService
        from scheduler.celery_app import celery_app

        return CeleryTimerService(celery_app, store, queue_name=settings.celery.queue_name)

    from scheduler.adapters.in_process import InProcessTimerService

    return InProcessTimerService()


def build_application(
    *,
    store: KeyValueStore | None = None,
    timer_service: PlatformTimerService | None = None,
    collaborator: ExpenseCollaborator | None = None,
    notifier: Notifier | None = None,
    now_provider: Callable[[], int] | None = None,
) -> Application:
    """Build the component graph, defaulting each collaborator from settings."""
    store = store if store is not None else build_store()
    timer_service = timer_service if timer_service is not None else build_timer_service(store)
    history = ExecutionHistoryStore(store)
    repository = TemplateRepository(store, history, now_provider=now_provider)
    coordinator = TimerCoordinator(
        store,
        timer_service,
        repository,
        now_provider=now_provider,
    )
    notifications = FailureNotificationService(
        history,
        notifier if notifier is not None else build_notifier(),
        now_provider=now_provider,
    )
    pipeline = ExecutionPipeline(
        repository,
        coordinator,
        collaborator if collaborator is not None else ExpenseApiClient(),
        guard=InFlightGuard(),
        notifications=notifications,
        now_provider=now_provider,
        resolve_retry_delay_ms=settings.scheduler.resolve_retry_delay_ms,
    )
    timer_service.set_handler(pipeline.handle_timer)
    service = TemplateScheduleService(repository, coordinator, now_provider=now_provider)
    logger.debug(
        "Application wired: timer_backend=%s",
        type(timer_service).__name__,
    )
    return Application(
        store=store,
        repository=repository,
        timer_service=timer_service,
        coordinator=coordinator,
        pipeline=pipeline,
        service=service,
        notifications=notifications,
    )


def get_application() -> Application:
    """Return the process-wide application, building it on first use."""
    global _application
    if _application is None:
        _application = build_application()
    return _application


def reset_application() -> None:
    """Drop the cached application."""
    global _application
    _application = None
