"""Platform timer service backed by in-process threading timers."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from scheduler.timer_interface import TimerEntry, TimerHandler
from time_utils import MS_PER_SECOND, now_ms

logger = logging.getLogger(__name__)


class InProcessTimerService:
    """One daemon ``threading.Timer`` per timer id.

    Timers live only as long as the process; startup reconciliation re-arms
    them after a restart.
    """

    def __init__(
        self,
        *,
        now_provider: Callable[[], int] | None = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self._now_provider = now_provider or now_ms
        self._timer_factory = timer_factory
        self._timers: dict[str, tuple[threading.Timer, int]] = {}
        self._handler: TimerHandler | None = None
        self._lock = threading.Lock()

    def set_handler(self, handler: TimerHandler) -> None:
        self._handler = handler

    def register(self, timer_id: str, fire_time_ms: int) -> None:
        delay = max(0.0, (fire_time_ms - self._now_provider()) / MS_PER_SECOND)
        delay = min(delay, threading.TIMEOUT_MAX)
        timer = self._timer_factory(delay, self._fire, args=(timer_id, fire_time_ms))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(timer_id, None)
            if previous is not None:
                previous[0].cancel()
            self._timers[timer_id] = (timer, fire_time_ms)
        timer.start()
        logger.debug("Timer armed: timer_id=%s delay_s=%.1f", timer_id, delay)

    def cancel(self, timer_id: str) -> None:
        with self._lock:
            entry = self._timers.pop(timer_id, None)
        if entry is not None:
            entry[0].cancel()
            logger.debug("Timer cancelled: timer_id=%s", timer_id)

    def list_all(self) -> list[TimerEntry]:
        with self._lock:
            return [
                TimerEntry(timer_id=timer_id, fire_time_ms=fire_time_ms)
                for timer_id, (_, fire_time_ms) in sorted(self._timers.items())
            ]

    def shutdown(self) -> None:
        """Cancel every live timer."""
        with self._lock:
            entries = list(self._timers.values())
            self._timers.clear()
        for timer, _ in entries:
            timer.cancel()

    def _fire(self, timer_id: str, fire_time_ms: int) -> None:
        with self._lock:
            entry = self._timers.get(timer_id)
            # A re-registration may have replaced this timer before it ran.
            if entry is None or entry[1] != fire_time_ms:
                return
            del self._timers[timer_id]
        handler = self._handler
        if handler is None:
            logger.warning("Timer fired without a handler: timer_id=%s", timer_id)
            return
        try:
            handler(timer_id, fire_time_ms)
        except Exception:
            logger.exception("Timer handler failed: timer_id=%s", timer_id)
