"""Execution pipeline turning a wake-up into a created remote expense."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable
from uuid import uuid4

from expenses.client import ExpenseCollaborator, create_remote_expense
from expenses.errors import ExpenseError
from log_config import log_context
from models import ExecutionRecord, ExecutionStatus, ExpenseTemplate, ScheduleRule
from scheduler.coordinator import TimerCoordinator, template_id_for_timer
from scheduler.failure_notifications import FailureNotificationService
from scheduler.in_flight import InFlightGuard
from templates.payload import PayloadValidationError, build_payload
from templates.repository import TemplateRepository
from time_utils import format_ms, local_date, now_ms

logger = logging.getLogger(__name__)


class FiringState(str, enum.Enum):
    """States of a single firing."""

    IDLE = "idle"
    RESOLVING = "resolving"
    BUILDING = "building"
    SUBMITTING = "submitting"
    RECORDING = "recording"
    RESCHEDULED = "rescheduled"
    FAILED = "failed"


class FiringOutcome(str, enum.Enum):
    """How a firing ended."""

    SUCCESS = "success"
    FAILURE = "failure"
    ORPHANED = "orphaned"
    INACTIVE = "inactive"
    DUPLICATE = "duplicate"


@dataclass
class FiringResult:
    """Observable result of one firing."""

    template_id: str
    firing_id: str
    state: FiringState = FiringState.IDLE
    outcome: FiringOutcome | None = None
    record: ExecutionRecord | None = None
    next_execution: int | None = None
    reschedule_error: str | None = None
    transitions: list[FiringState] = field(default_factory=lambda: [FiringState.IDLE])

    def transition(self, state: FiringState) -> None:
        self.state = state
        self.transitions.append(state)


class _FiringFailure(Exception):
    """Carries a failure message and retry count out of building or submitting."""

    def __init__(self, message: str, retry_count: int = 0) -> None:
        super().__init__(message)
        self.retry_count = retry_count


class ExecutionPipeline:
    """Run template firings delivered by the platform timer.

    Every firing ends by re-arming the template from its current rule, whether
    the remote create succeeded or not. Errors never escape a firing.
    """

    def __init__(
        self,
        repository: TemplateRepository,
        coordinator: TimerCoordinator,
        collaborator: ExpenseCollaborator,
        *,
        guard: InFlightGuard | None = None,
        notifications: FailureNotificationService | None = None,
        now_provider: Callable[[], int] | None = None,
        id_factory: Callable[[], str] | None = None,
        resolve_retry_delay_ms: int = 60_000,
    ) -> None:
        self._repository = repository
        self._coordinator = coordinator
        self._collaborator = collaborator
        self._guard = guard or InFlightGuard()
        self._notifications = notifications
        self._now_provider = now_provider or now_ms
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._resolve_retry_delay_ms = resolve_retry_delay_ms

    @property
    def guard(self) -> InFlightGuard:
        return self._guard

    def handle_timer(self, timer_id: str, fire_time_ms: int) -> FiringResult | None:
        """Entry point for platform timer callbacks."""
        template_id = template_id_for_timer(timer_id)
        if template_id is None:
            logger.warning("Ignoring timer without template prefix: timer_id=%s", timer_id)
            return None
        return self.handle_wake_up(template_id, fire_time_ms)

    def handle_wake_up(self, template_id: str, scheduled_for: int | None = None) -> FiringResult:
        """Run one firing for a template and return its result."""
        firing_id = self._id_factory()
        result = FiringResult(template_id=template_id, firing_id=firing_id)
        with log_context({"template_id": template_id, "firing_id": firing_id}):
            logger.info("Firing started: scheduled_for=%s", format_ms(scheduled_for))
            self._run(result, scheduled_for)
            logger.info(
                "Firing finished: state=%s outcome=%s next_execution=%s",
                result.state.value,
                result.outcome.value if result.outcome else None,
                format_ms(result.next_execution),
            )
        return result

    def _run(self, result: FiringResult, scheduled_for: int | None) -> None:
        template_id = result.template_id
        result.transition(FiringState.RESOLVING)
        try:
            template = self._repository.get(template_id)
        except Exception:
            logger.exception("Template lookup failed")
            result.transition(FiringState.FAILED)
            result.outcome = FiringOutcome.FAILURE
            self._reschedule(template_id, result, scheduled_for)
            if result.state != FiringState.RESCHEDULED:
                self._retry_later(template_id, result)
            return

        if template is None:
            logger.info("Template missing; cancelling orphan timer")
            self._cancel_quietly(template_id, result)
            result.transition(FiringState.FAILED)
            result.outcome = FiringOutcome.ORPHANED
            return

        if not template.is_schedulable:
            logger.info("Template not schedulable; cancelling timer")
            self._cancel_quietly(template_id, result)
            result.transition(FiringState.FAILED)
            result.outcome = FiringOutcome.INACTIVE
            return

        assert template.scheduling is not None
        fire_date = self._fire_date(template.scheduling, scheduled_for)
        guard_key = f"{template_id}:{fire_date.isoformat()}"
        if not self._guard.acquire(guard_key):
            logger.warning("Duplicate firing ignored: guard_key=%s", guard_key)
            result.transition(FiringState.FAILED)
            result.outcome = FiringOutcome.DUPLICATE
            return

        try:
            record = self._execute(template, fire_date, result)
            result.transition(FiringState.RECORDING)
            self._record(template, record, result)
            self._reschedule(template_id, result, scheduled_for)
        finally:
            self._guard.release(guard_key)

    def _execute(
        self,
        template: ExpenseTemplate,
        fire_date: date,
        result: FiringResult,
    ) -> ExecutionRecord:
        started = time.monotonic()
        try:
            result.transition(FiringState.BUILDING)
            try:
                payload = build_payload(template.expense_snapshot, fire_date)
            except PayloadValidationError as exc:
                raise _FiringFailure(f"Payload validation failed: {exc}") from exc

            result.transition(FiringState.SUBMITTING)
            try:
                remote_id = create_remote_expense(self._collaborator, payload)
            except ExpenseError as exc:
                raise _FiringFailure(str(exc), max(exc.attempts - 1, 0)) from exc
        except _FiringFailure as exc:
            result.transition(FiringState.FAILED)
            logger.warning("Firing failed: error=%s", exc)
            return self._build_record(
                ExecutionStatus.FAILURE,
                started,
                error=str(exc),
                retry_count=exc.retry_count,
            )
        except Exception as exc:
            result.transition(FiringState.FAILED)
            logger.exception("Firing failed unexpectedly")
            return self._build_record(
                ExecutionStatus.FAILURE,
                started,
                error=f"{type(exc).__name__}: {exc}",
            )

        return self._build_record(ExecutionStatus.SUCCESS, started, remote_expense_id=remote_id)

    def _build_record(
        self,
        status: ExecutionStatus,
        started: float,
        *,
        remote_expense_id: str | None = None,
        error: str | None = None,
        retry_count: int = 0,
    ) -> ExecutionRecord:
        return ExecutionRecord(
            id=self._id_factory(),
            executed_at=self._now_provider(),
            status=status,
            remote_expense_id=remote_expense_id,
            error=error,
            duration_ms=int((time.monotonic() - started) * 1000),
            retry_count=retry_count,
        )

    def _record(
        self,
        template: ExpenseTemplate,
        record: ExecutionRecord,
        result: FiringResult,
    ) -> None:
        result.record = record
        result.outcome = (
            FiringOutcome.SUCCESS
            if record.status == ExecutionStatus.SUCCESS
            else FiringOutcome.FAILURE
        )
        try:
            self._repository.history.append(template.id, record)
            if record.status == ExecutionStatus.SUCCESS:
                self._repository.record_use(template.id, scheduled=True)
        except Exception:
            logger.exception("Execution record write failed: record_id=%s", record.id)

        if self._notifications is None:
            return
        try:
            if record.status == ExecutionStatus.SUCCESS:
                self._notifications.notify_success(template, record)
            else:
                self._notifications.notify_failure_if_needed(template, record)
        except Exception:
            logger.exception("Firing notification failed: record_id=%s", record.id)

    def _reschedule(
        self,
        template_id: str,
        result: FiringResult,
        scheduled_for: int | None,
    ) -> None:
        # An early delivery must not re-arm the occurrence that just ran.
        try:
            template = self._repository.get(template_id)
            if template is None or not template.is_schedulable:
                self._coordinator.cancel(template_id)
                result.next_execution = None
            else:
                assert template.scheduling is not None
                result.next_execution = self._coordinator.schedule(
                    template_id, template.scheduling, not_before=scheduled_for
                )
        except Exception as exc:
            logger.exception("Reschedule failed")
            result.reschedule_error = str(exc)
            return
        result.transition(FiringState.RESCHEDULED)

    def _retry_later(self, template_id: str, result: FiringResult) -> None:
        try:
            result.next_execution = self._coordinator.retry_later(
                template_id, self._resolve_retry_delay_ms
            )
        except Exception as exc:
            logger.exception("Retry timer registration failed")
            result.reschedule_error = str(exc)

    def _cancel_quietly(self, template_id: str, result: FiringResult) -> None:
        try:
            self._coordinator.cancel(template_id)
        except Exception as exc:
            logger.exception("Timer cancel failed")
            result.reschedule_error = str(exc)

    def _fire_date(self, rule: ScheduleRule, scheduled_for: int | None) -> date:
        instant = scheduled_for if scheduled_for is not None else self._now_provider()
        try:
            return local_date(instant, rule.timezone)
        except ValueError:
            return local_date(instant, "UTC")
