"""Celery entry point for scheduled template firings."""

from __future__ import annotations

import logging
from typing import Any

from celery import Celery
from celery.signals import worker_ready

from config import settings
from log_config import configure_logging
from scheduler.adapters.celery_timer import FIRE_TASK_NAME, CeleryTimerService

LOGGER = logging.getLogger(__name__)

celery_app = Celery("expense_autopilot.scheduler")
celery_app.conf.broker_url = settings.celery.broker_url
celery_app.conf.result_backend = settings.celery.result_backend
celery_app.conf.task_default_queue = settings.celery.queue_name
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.enable_utc = True
celery_app.conf.timezone = "UTC"


def deliver_timer(timer_id: str, fire_time_ms: int, task_id: str | None) -> dict[str, Any]:
    """Route a worker delivery through the Celery timer backend."""
    from bootstrap import get_application

    application = get_application()
    timer_service = application.timer_service
    if not isinstance(timer_service, CeleryTimerService):
        LOGGER.error(
            "Celery delivery received without the celery timer backend: timer_id=%s",
            timer_id,
        )
        return {"status": "misconfigured"}
    delivered = timer_service.deliver(timer_id, fire_time_ms, task_id)
    return {"status": "delivered" if delivered else "stale"}


@celery_app.task(
    bind=True,
    name=FIRE_TASK_NAME,
    acks_late=True,
    autoretry_for=(),
    reject_on_worker_lost=True,
)
def fire_template(self, timer_id: str, fire_time_ms: int) -> dict[str, Any]:
    """Handle an ETA delivery for a template wake-up."""
    result = deliver_timer(timer_id, int(fire_time_ms), getattr(self.request, "id", None))
    LOGGER.info(
        "Celery delivery completed: timer_id=%s status=%s",
        timer_id,
        result["status"],
    )
    return result


@worker_ready.connect
def reconcile_on_worker_ready(**_: Any) -> None:
    """Re-arm wake-ups once the worker is accepting tasks."""
    from bootstrap import get_application

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    try:
        get_application().coordinator.reconcile_on_startup()
    except Exception:
        LOGGER.exception("Startup reconciliation failed")
