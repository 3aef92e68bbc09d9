"""Durable mapping of computed fire times onto the platform timer service."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from models import ScheduleRule, WakeUp
from scheduler.calculator import calculate_next
from scheduler.errors import ScheduleValidationError, TimerRegistrationError
from scheduler.schedule_validation import validate_rule
from scheduler.timer_interface import PlatformTimerService
from storage.interface import KeyValueStore
from templates.repository import TemplateRepository
from time_utils import format_ms, now_ms

logger = logging.getLogger(__name__)

TIMER_ID_PREFIX = "template_schedule_"
WAKE_UP_KEY_PREFIX = "template.wakeup."
WAKE_UP_INDEX_KEY = "template.wakeup.index"

_REGISTRATION_ATTEMPTS = 2


def timer_id_for(template_id: str) -> str:
    """Return the platform timer id for a template."""
    return f"{TIMER_ID_PREFIX}{template_id}"


def template_id_for_timer(timer_id: str) -> str | None:
    """Return the template id encoded in a timer id, or None for foreign timers."""
    if not timer_id.startswith(TIMER_ID_PREFIX):
        return None
    template_id = timer_id[len(TIMER_ID_PREFIX):]
    return template_id or None


def wake_up_key(template_id: str) -> str:
    return f"{WAKE_UP_KEY_PREFIX}{template_id}"


@dataclass
class ReconcileReport:
    """Summary of a startup reconciliation pass."""

    scheduled: dict[str, int] = field(default_factory=dict)
    expired: list[str] = field(default_factory=list)
    dropped_wake_ups: list[str] = field(default_factory=list)
    orphan_timers_cancelled: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class TimerCoordinator:
    """Arm, replace and cancel one wake-up per schedulable template.

    Wake-up metadata is persisted before the platform timer is registered so
    that a restart can always tell which timers should exist.
    """

    def __init__(
        self,
        store: KeyValueStore,
        timer_service: PlatformTimerService,
        repository: TemplateRepository,
        *,
        calculator: Callable[[ScheduleRule, int], int | None] = calculate_next,
        now_provider: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._timer_service = timer_service
        self._repository = repository
        self._calculator = calculator
        self._now_provider = now_provider or now_ms
        self._lock = threading.RLock()

    def schedule(
        self,
        template_id: str,
        rule: ScheduleRule,
        *,
        not_before: int | None = None,
    ) -> int | None:
        """Arm the next wake-up for a template and return its fire time.

        The fire time is the first occurrence strictly after the current time,
        or after ``not_before`` when that is later. Returns None, after
        cancelling any existing wake-up, when the rule yields no future fire
        time.

        Raises:
            ScheduleValidationError: The rule is invalid.
            TimerRegistrationError: The platform timer could not be registered
                after one retry.
        """
        validate_rule(rule)
        now = self._now_provider()
        reference = now if not_before is None else max(now, not_before)
        fire_time = self._calculator(rule, reference)

        with self._lock:
            if fire_time is None:
                self.cancel(template_id)
                logger.info("Template has no upcoming fire time: template_id=%s", template_id)
                return None

            timer_id = timer_id_for(template_id)
            self._cancel_timer(timer_id)
            self._save_wake_up(
                WakeUp(template_id=template_id, scheduled_for=fire_time, created_at=now)
            )
            try:
                self._register_with_retry(timer_id, fire_time)
            except TimerRegistrationError:
                self._remove_wake_up(template_id)
                raise
            self._repository.update_next_execution(template_id, fire_time)

        logger.info(
            "Template scheduled: template_id=%s fire_time=%s",
            template_id,
            format_ms(fire_time),
        )
        return fire_time

    def retry_later(self, template_id: str, delay_ms: int) -> int:
        """Register the template's timer ``delay_ms`` from now without touching storage.

        Used when a firing could not read storage and so could not compute the
        next occurrence. The persisted wake-up is left as is.
        """
        fire_time = self._now_provider() + delay_ms
        with self._lock:
            self._register_with_retry(timer_id_for(template_id), fire_time)
        logger.warning(
            "Template timer re-armed for retry: template_id=%s fire_time=%s",
            template_id,
            format_ms(fire_time),
        )
        return fire_time

    def cancel(self, template_id: str) -> None:
        """Remove the wake-up, its platform timer and the cached fire time."""
        with self._lock:
            self._remove_wake_up(template_id)
            self._cancel_timer(timer_id_for(template_id))
            self._repository.update_next_execution(template_id, None)

    def get_wake_up(self, template_id: str) -> WakeUp | None:
        raw = self._store.get(wake_up_key(template_id))
        if raw is None:
            return None
        return WakeUp.model_validate(raw)

    def list_wake_ups(self) -> list[WakeUp]:
        wake_ups = []
        for template_id in self._wake_up_index():
            wake_up = self.get_wake_up(template_id)
            if wake_up is not None:
                wake_ups.append(wake_up)
        return wake_ups

    def reconcile_on_startup(self) -> ReconcileReport:
        """Rebuild platform timers from stored templates.

        Fire times are recomputed from the current wall-clock time, so
        occurrences missed while the process was down are skipped rather than
        replayed.
        """
        report = ReconcileReport()
        templates = self._repository.list_all()
        known_ids = {template.id for template in templates}
        armed_ids: set[str] = set()

        for template in templates:
            if not template.is_schedulable:
                if self.get_wake_up(template.id) is not None:
                    self.cancel(template.id)
                    report.dropped_wake_ups.append(template.id)
                continue
            assert template.scheduling is not None
            try:
                fire_time = self.schedule(template.id, template.scheduling)
            except (ScheduleValidationError, TimerRegistrationError) as exc:
                logger.error(
                    "Reconcile failed for template: template_id=%s error=%s",
                    template.id,
                    exc,
                )
                report.failed[template.id] = str(exc)
                continue
            if fire_time is None:
                report.expired.append(template.id)
                continue
            report.scheduled[template.id] = fire_time
            armed_ids.add(template.id)

        for wake_up in self.list_wake_ups():
            if wake_up.template_id not in known_ids:
                self.cancel(wake_up.template_id)
                report.dropped_wake_ups.append(wake_up.template_id)

        for entry in self._timer_service.list_all():
            template_id = template_id_for_timer(entry.timer_id)
            if template_id is None or template_id in armed_ids:
                continue
            self._cancel_timer(entry.timer_id)
            report.orphan_timers_cancelled.append(entry.timer_id)

        logger.info(
            "Startup reconciliation complete: scheduled=%s expired=%s dropped=%s orphans=%s failed=%s",
            len(report.scheduled),
            len(report.expired),
            len(report.dropped_wake_ups),
            len(report.orphan_timers_cancelled),
            len(report.failed),
        )
        return report

    def _register_with_retry(self, timer_id: str, fire_time: int) -> None:
        last_error: Exception | None = None
        for attempt in range(1, _REGISTRATION_ATTEMPTS + 1):
            try:
                self._timer_service.register(timer_id, fire_time)
                return
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Timer registration failed: timer_id=%s attempt=%s error=%s",
                    timer_id,
                    attempt,
                    exc,
                )
        raise TimerRegistrationError(
            f"Failed to register timer {timer_id}: {last_error}",
            {"timer_id": timer_id, "fire_time_ms": fire_time},
        ) from last_error

    def _cancel_timer(self, timer_id: str) -> None:
        try:
            self._timer_service.cancel(timer_id)
        except Exception as exc:
            logger.warning("Timer cancel failed: timer_id=%s error=%s", timer_id, exc)

    def _save_wake_up(self, wake_up: WakeUp) -> None:
        self._store.set(wake_up_key(wake_up.template_id), wake_up.model_dump(mode="json"))
        index = self._wake_up_index()
        if wake_up.template_id not in index:
            index.append(wake_up.template_id)
            self._store.set(WAKE_UP_INDEX_KEY, index)

    def _remove_wake_up(self, template_id: str) -> None:
        self._store.remove(wake_up_key(template_id))
        index = self._wake_up_index()
        if template_id in index:
            index.remove(template_id)
            self._store.set(WAKE_UP_INDEX_KEY, index)

    def _wake_up_index(self) -> list[str]:
        return list(self._store.get(WAKE_UP_INDEX_KEY) or [])
