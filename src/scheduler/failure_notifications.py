"""Failure notification throttling for scheduled template firings."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from config import settings
from models import ExecutionRecord, ExpenseTemplate
from services.notifications import Notifier
from templates.history import ExecutionHistoryStore
from time_utils import MS_PER_SECOND, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureNotificationConfig:
    """Configuration for scheduled firing notifications."""

    threshold: int
    throttle_window_seconds: int
    notify_on_success: bool = False


def resolve_failure_notification_config(
    config: FailureNotificationConfig | None,
) -> FailureNotificationConfig:
    """Resolve failure notification configuration with defaults."""
    if config is not None:
        _validate_config(config)
        return config
    scheduler_config = settings.scheduler
    resolved = FailureNotificationConfig(
        threshold=int(scheduler_config.failure_notification_threshold),
        throttle_window_seconds=int(scheduler_config.failure_notification_throttle_seconds),
        notify_on_success=bool(settings.notifications.notify_on_success),
    )
    _validate_config(resolved)
    return resolved


class FailureNotificationService:
    """Notify the user about repeated firing failures, throttled per template."""

    def __init__(
        self,
        history: ExecutionHistoryStore,
        notifier: Notifier,
        *,
        config: FailureNotificationConfig | None = None,
        now_provider: Callable[[], int] | None = None,
    ) -> None:
        """Initialize with history, delivery, and configuration dependencies."""
        self._history = history
        self._notifier = notifier
        self._config = resolve_failure_notification_config(config)
        self._now_provider = now_provider or now_ms
        self._last_notified: dict[str, int] = {}
        self._lock = threading.Lock()

    def notify_failure_if_needed(self, template: ExpenseTemplate, record: ExecutionRecord) -> bool:
        """Send a failure notification when threshold and throttle allow."""
        failure_count = self._history.consecutive_failures(template.id)
        if failure_count < self._config.threshold:
            return False

        now = self._now_provider()
        with self._lock:
            if self._is_throttled(template.id, now):
                logger.debug("Failure notification throttled: template_id=%s", template.id)
                return False
            self._last_notified[template.id] = now

        title = f"Scheduled expense failed: {template.name or template.id}"
        message = (
            f"{failure_count} consecutive failure(s). "
            f"Last error: {record.error or 'unknown error'}"
        )
        return self._deliver(title, message)

    def notify_success(self, template: ExpenseTemplate, record: ExecutionRecord) -> bool:
        """Send a success notification when enabled."""
        with self._lock:
            self._last_notified.pop(template.id, None)
        if not self._config.notify_on_success:
            return False
        title = f"Scheduled expense created: {template.name or template.id}"
        message = f"Remote expense {record.remote_expense_id} submitted."
        return self._deliver(title, message)

    def _is_throttled(self, template_id: str, now: int) -> bool:
        """Return True when a notification was sent within the throttle window."""
        if self._config.throttle_window_seconds <= 0:
            return False
        last = self._last_notified.get(template_id)
        if last is None:
            return False
        return now - last < self._config.throttle_window_seconds * MS_PER_SECOND

    def _deliver(self, title: str, message: str) -> bool:
        try:
            self._notifier.notify(title, message)
        except Exception:
            logger.exception("Notification delivery failed: title=%s", title)
            return False
        return True


def _validate_config(config: FailureNotificationConfig) -> None:
    """Validate failure notification settings."""
    if config.threshold < 1:
        raise ValueError("failure notification threshold must be >= 1.")
    if config.throttle_window_seconds < 0:
        raise ValueError("failure notification throttle window must be >= 0.")
