"""Template schedule commands exposed to callers."""

from __future__ import annotations

import logging
from typing import Callable

from models import ExpenseTemplate, ScheduleRule
from scheduler.calculator import calculate_next
from scheduler.coordinator import TimerCoordinator
from scheduler.errors import ScheduleValidationError, TimerRegistrationError
from scheduler.schedule_validation import validate_rule
from templates.repository import TemplateRepository
from time_utils import now_ms

logger = logging.getLogger(__name__)


class TemplateScheduleService:
    """Schedule command service backed by the template repository."""

    def __init__(
        self,
        repository: TemplateRepository,
        coordinator: TimerCoordinator,
        *,
        now_provider: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the command service with its collaborators."""
        self._repository = repository
        self._coordinator = coordinator
        self._now_provider = now_provider or now_ms

    def save_template(self, template: ExpenseTemplate) -> ExpenseTemplate:
        """Store a template and arm or cancel its wake-up to match its rule."""
        if template.scheduling is not None:
            validate_rule(template.scheduling)
        stored = self._repository.save(template)
        self._sync(stored)
        return self._repository.require(stored.id)

    def schedule_template(self, template_id: str, rule: ScheduleRule) -> int | None:
        """Attach a rule to a template and arm its next wake-up.

        Raises:
            TemplateNotFoundError: The template does not exist.
            ScheduleValidationError: The rule is invalid.
            TimerRegistrationError: The wake-up could not be registered.
        """
        validate_rule(rule)
        self._repository.set_scheduling(
            template_id, rule.model_copy(update={"next_execution": None})
        )
        try:
            return self._coordinator.schedule(template_id, rule)
        except TimerRegistrationError:
            logger.error("Template saved without an armed timer: template_id=%s", template_id)
            raise

    def unschedule_template(self, template_id: str) -> None:
        """Remove a template's rule and cancel its wake-up."""
        self._repository.set_scheduling(template_id, None)
        self._coordinator.cancel(template_id)

    def pause_template(self, template_id: str) -> ExpenseTemplate:
        """Pause a template's rule without discarding it."""
        rule = self._require_rule(template_id)
        self._repository.set_scheduling(template_id, rule.model_copy(update={"paused": True}))
        self._coordinator.cancel(template_id)
        logger.info("Template paused: template_id=%s", template_id)
        return self._repository.require(template_id)

    def resume_template(self, template_id: str) -> int | None:
        """Resume a paused rule and arm it from the current time."""
        rule = self._require_rule(template_id)
        resumed = rule.model_copy(update={"paused": False})
        self._repository.set_scheduling(template_id, resumed)
        logger.info("Template resumed: template_id=%s", template_id)
        if not resumed.is_active:
            self._coordinator.cancel(template_id)
            return None
        return self._coordinator.schedule(template_id, resumed)

    def delete_template(self, template_id: str) -> bool:
        """Cancel a template's wake-up and delete it with its history."""
        self._coordinator.cancel(template_id)
        return self._repository.delete(template_id)

    def get_next_execution_preview(self, rule: ScheduleRule, now: int | None = None) -> int | None:
        """Return the next fire time for a rule without side effects."""
        return calculate_next(rule, now if now is not None else self._now_provider())

    def _require_rule(self, template_id: str) -> ScheduleRule:
        template = self._repository.require(template_id)
        if template.scheduling is None:
            raise ScheduleValidationError(
                f"Template {template_id} has no schedule.",
                {"template_id": template_id},
            )
        return template.scheduling

    def _sync(self, template: ExpenseTemplate) -> None:
        if template.is_schedulable:
            assert template.scheduling is not None
            self._coordinator.schedule(template.id, template.scheduling)
        else:
            self._coordinator.cancel(template.id)
