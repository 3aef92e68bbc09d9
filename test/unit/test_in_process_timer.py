"""Unit tests for the in-process timer backend."""

from __future__ import annotations

from scheduler.adapters.in_process import InProcessTimerService
from scheduler.timer_interface import TimerEntry


class _FakeTimer:
    """threading.Timer stand-in that runs only when triggered."""

    created: list["_FakeTimer"] = []

    def __init__(self, interval: float, function, args=()) -> None:
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False
        _FakeTimer.created.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def trigger(self) -> None:
        self.function(*self.args)


def _service(now: int = 0) -> tuple[InProcessTimerService, list[tuple[str, int]]]:
    _FakeTimer.created = []
    fired: list[tuple[str, int]] = []
    service = InProcessTimerService(now_provider=lambda: now, timer_factory=_FakeTimer)
    service.set_handler(lambda timer_id, fire_ms: fired.append((timer_id, fire_ms)))
    return service, fired


def test_register_arms_daemon_timer_with_delay() -> None:
    """Delays are computed from the clock and timers are daemonized."""
    service, _ = _service(now=1_000)

    service.register("template_schedule_rent", 6_000)

    timer = _FakeTimer.created[0]
    assert timer.interval == 5.0
    assert timer.daemon is True
    assert timer.started is True
    assert service.list_all() == [TimerEntry("template_schedule_rent", 6_000)]


def test_past_fire_times_fire_immediately() -> None:
    """Fire times in the past get a zero delay."""
    service, _ = _service(now=10_000)

    service.register("template_schedule_rent", 5_000)

    assert _FakeTimer.created[0].interval == 0.0


def test_fire_invokes_handler_and_forgets_timer() -> None:
    """Firing removes the entry and calls the handler."""
    service, fired = _service()
    service.register("template_schedule_rent", 1_000)

    _FakeTimer.created[0].trigger()

    assert fired == [("template_schedule_rent", 1_000)]
    assert service.list_all() == []


def test_reregistration_replaces_previous_timer() -> None:
    """Only the latest registration for an id can fire."""
    service, fired = _service()
    service.register("template_schedule_rent", 1_000)
    service.register("template_schedule_rent", 2_000)

    first, second = _FakeTimer.created
    first.trigger()
    second.trigger()

    assert first.cancelled is True
    assert fired == [("template_schedule_rent", 2_000)]


def test_cancel_stops_timer_and_is_idempotent() -> None:
    """Cancelled timers never reach the handler."""
    service, fired = _service()
    service.register("template_schedule_rent", 1_000)

    service.cancel("template_schedule_rent")
    service.cancel("template_schedule_rent")
    _FakeTimer.created[0].trigger()

    assert _FakeTimer.created[0].cancelled is True
    assert fired == []


def test_handler_errors_are_contained() -> None:
    """A failing handler does not propagate out of the timer thread."""
    service, _ = _service()

    def _boom(timer_id: str, fire_ms: int) -> None:
        raise RuntimeError("handler failed")

    service.set_handler(_boom)
    service.register("template_schedule_rent", 1_000)

    _FakeTimer.created[0].trigger()

    assert service.list_all() == []


def test_shutdown_cancels_everything() -> None:
    """Shutdown cancels all live timers."""
    service, _ = _service()
    service.register("template_schedule_a", 1_000)
    service.register("template_schedule_b", 1_000)

    service.shutdown()

    assert service.list_all() == []
    assert all(timer.cancelled for timer in _FakeTimer.created)
