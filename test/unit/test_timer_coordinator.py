"""Unit tests for the timer coordinator."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models import ExecutionTime, ExpenseTemplate, RecurrenceKind, ScheduleRule
from scheduler.coordinator import (
    TimerCoordinator,
    template_id_for_timer,
    timer_id_for,
)
from scheduler.errors import ScheduleValidationError, TimerRegistrationError
from storage import MemoryKeyValueStore
from templates.repository import TemplateRepository
from test.helpers.timer_service_stub import RecordingTimerService
from time_utils import to_epoch_ms

NOW = to_epoch_ms(datetime(2025, 1, 6, 10, tzinfo=timezone.utc))
TOMORROW_9 = to_epoch_ms(datetime(2025, 1, 7, 9, tzinfo=timezone.utc))


def _daily(**updates) -> ScheduleRule:
    return ScheduleRule(
        recurrence_kind=RecurrenceKind.DAILY,
        execution_time=ExecutionTime(hour=9),
        **updates,
    )


def _build(
    timer_service: RecordingTimerService | None = None,
) -> tuple[TimerCoordinator, TemplateRepository, RecordingTimerService, MemoryKeyValueStore]:
    store = MemoryKeyValueStore()
    timers = timer_service or RecordingTimerService()
    repository = TemplateRepository(store, now_provider=lambda: NOW)
    coordinator = TimerCoordinator(store, timers, repository, now_provider=lambda: NOW)
    return coordinator, repository, timers, store


def test_timer_ids_round_trip_through_prefix() -> None:
    """Timer ids carry the template prefix and foreign ids are ignored."""
    assert timer_id_for("rent") == "template_schedule_rent"
    assert template_id_for_timer("template_schedule_rent") == "rent"
    assert template_id_for_timer("other_timer") is None


def test_schedule_persists_wake_up_and_registers_timer() -> None:
    """Scheduling stores metadata, arms the timer and caches next_execution."""
    coordinator, repository, timers, _ = _build()
    repository.save(ExpenseTemplate(id="rent", scheduling=_daily()))

    fire_time = coordinator.schedule("rent", _daily())

    assert fire_time == TOMORROW_9
    assert timers.timers == {"template_schedule_rent": TOMORROW_9}
    wake_up = coordinator.get_wake_up("rent")
    assert wake_up is not None
    assert wake_up.scheduled_for == TOMORROW_9
    assert wake_up.created_at == NOW
    assert repository.require("rent").scheduling.next_execution == TOMORROW_9


def test_schedule_not_before_skips_past_occurrence() -> None:
    """A not_before later than now moves the fire time past it."""
    coordinator, _, timers, _ = _build()

    fire_time = coordinator.schedule("rent", _daily(), not_before=TOMORROW_9)

    assert fire_time == TOMORROW_9 + 24 * 60 * 60 * 1000
    assert timers.timers == {"template_schedule_rent": fire_time}


def test_schedule_not_before_in_the_past_uses_now() -> None:
    """An earlier not_before does not pull the fire time back."""
    coordinator, _, _, _ = _build()

    assert coordinator.schedule("rent", _daily(), not_before=NOW - 86_400_000) == TOMORROW_9


def test_retry_later_registers_timer_without_storage_writes() -> None:
    """A retry timer is armed relative to now and the wake-up is left alone."""
    coordinator, _, timers, store = _build()

    fire_time = coordinator.retry_later("rent", 60_000)

    assert fire_time == NOW + 60_000
    assert timers.timers == {"template_schedule_rent": NOW + 60_000}
    assert coordinator.get_wake_up("rent") is None
    assert store.keys() == []


def test_schedule_replaces_existing_timer() -> None:
    """Rescheduling cancels the previous timer before arming the new one."""
    coordinator, _, timers, _ = _build()

    coordinator.schedule("rent", _daily())
    coordinator.schedule("rent", _daily(execution_time=ExecutionTime(hour=11)))

    assert timers.cancelled.count("template_schedule_rent") == 2
    assert len(timers.timers) == 1
    assert len(coordinator.list_wake_ups()) == 1


def test_schedule_with_no_future_time_cancels() -> None:
    """A rule that yields no fire time removes any existing wake-up."""
    coordinator, _, timers, _ = _build()
    coordinator.schedule("rent", _daily())

    result = coordinator.schedule("rent", _daily(end_date=NOW + 1))

    assert result is None
    assert timers.timers == {}
    assert coordinator.get_wake_up("rent") is None


def test_schedule_rejects_invalid_rule() -> None:
    """Validation errors surface before any timer work."""
    coordinator, _, timers, _ = _build()

    with pytest.raises(ScheduleValidationError):
        coordinator.schedule("rent", ScheduleRule(recurrence_kind=RecurrenceKind.WEEKLY))

    assert timers.registered == []


def test_registration_is_retried_once() -> None:
    """A single registration failure is absorbed by the retry."""
    coordinator, _, timers, _ = _build(RecordingTimerService(fail_registrations=1))

    assert coordinator.schedule("rent", _daily()) == TOMORROW_9
    assert len(timers.registered) == 2
    assert coordinator.get_wake_up("rent") is not None


def test_registration_failure_after_retry_raises_and_cleans_up() -> None:
    """Two failures surface TimerRegistrationError and drop the metadata."""
    coordinator, _, timers, _ = _build(RecordingTimerService(fail_registrations=2))

    with pytest.raises(TimerRegistrationError):
        coordinator.schedule("rent", _daily())

    assert len(timers.registered) == 2
    assert coordinator.get_wake_up("rent") is None
    assert coordinator.list_wake_ups() == []


def test_cancel_is_idempotent() -> None:
    """Cancelling twice, or cancelling nothing, is harmless."""
    coordinator, repository, timers, _ = _build()
    repository.save(ExpenseTemplate(id="rent", scheduling=_daily()))
    coordinator.schedule("rent", _daily())

    coordinator.cancel("rent")
    coordinator.cancel("rent")
    coordinator.cancel("missing")

    assert timers.timers == {}
    assert coordinator.get_wake_up("rent") is None
    assert repository.require("rent").scheduling.next_execution is None


def test_reconcile_recomputes_from_now_without_backlog() -> None:
    """A stale past wake-up becomes exactly one future wake-up."""
    store = MemoryKeyValueStore()
    timers = RecordingTimerService()
    past = NOW - 10 * 24 * 3600 * 1000
    repository = TemplateRepository(store, now_provider=lambda: past)
    offline = TimerCoordinator(store, RecordingTimerService(), repository, now_provider=lambda: past)
    repository.save(ExpenseTemplate(id="rent", scheduling=_daily()))
    offline.schedule("rent", _daily())

    coordinator = TimerCoordinator(store, timers, repository, now_provider=lambda: NOW)
    report = coordinator.reconcile_on_startup()

    assert report.scheduled == {"rent": TOMORROW_9}
    assert timers.timers == {"template_schedule_rent": TOMORROW_9}
    assert [wake.scheduled_for for wake in coordinator.list_wake_ups()] == [TOMORROW_9]


def test_reconcile_is_idempotent() -> None:
    """Running reconciliation twice leaves one timer per template."""
    coordinator, repository, timers, _ = _build()
    repository.save(ExpenseTemplate(id="rent", scheduling=_daily()))
    repository.save(ExpenseTemplate(id="gym", scheduling=_daily()))

    coordinator.reconcile_on_startup()
    coordinator.reconcile_on_startup()

    assert sorted(timers.timers) == ["template_schedule_gym", "template_schedule_rent"]
    assert len(coordinator.list_wake_ups()) == 2


def test_reconcile_skips_inactive_and_drops_their_wake_ups() -> None:
    """Paused and unscheduled templates end up with no wake-up."""
    coordinator, repository, timers, _ = _build()
    repository.save(ExpenseTemplate(id="paused", scheduling=_daily()))
    coordinator.schedule("paused", _daily())
    repository.set_scheduling("paused", _daily(paused=True))
    repository.save(ExpenseTemplate(id="manual"))

    report = coordinator.reconcile_on_startup()

    assert report.scheduled == {}
    assert report.dropped_wake_ups == ["paused"]
    assert timers.timers == {}


def test_reconcile_cancels_orphan_timers_only_with_prefix() -> None:
    """Prefixed timers without a schedulable template are cancelled."""
    coordinator, repository, timers, _ = _build()
    repository.save(ExpenseTemplate(id="rent", scheduling=_daily()))
    timers.timers["template_schedule_deleted"] = NOW + 1000
    timers.timers["unrelated_timer"] = NOW + 1000

    report = coordinator.reconcile_on_startup()

    assert report.orphan_timers_cancelled == ["template_schedule_deleted"]
    assert "unrelated_timer" in timers.timers
    assert "template_schedule_rent" in timers.timers


def test_reconcile_drops_wake_ups_of_deleted_templates() -> None:
    """Wake-up metadata for a missing template is removed."""
    coordinator, _, timers, _ = _build()
    coordinator.schedule("ghost", _daily())

    report = coordinator.reconcile_on_startup()

    assert report.dropped_wake_ups == ["ghost"]
    assert coordinator.list_wake_ups() == []
    assert timers.timers == {}


def test_reconcile_records_failures_and_continues() -> None:
    """A template whose rule cannot be armed does not stop the pass."""
    coordinator, repository, _, _ = _build()
    repository.save(
        ExpenseTemplate(id="broken", scheduling=ScheduleRule(recurrence_kind=RecurrenceKind.MONTHLY))
    )
    repository.save(ExpenseTemplate(id="rent", scheduling=_daily()))

    report = coordinator.reconcile_on_startup()

    assert "broken" in report.failed
    assert report.scheduled == {"rent": TOMORROW_9}
