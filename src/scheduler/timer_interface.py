"""Provider-agnostic platform timer interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

TimerHandler = Callable[[str, int], None]


@dataclass(frozen=True)
class TimerEntry:
    """A live platform timer and its absolute fire time in epoch ms."""

    timer_id: str
    fire_time_ms: int


class PlatformTimerService(Protocol):
    """Protocol for host timer facilities that fire named events.

    A registered timer invokes the handler with ``(timer_id, fire_time_ms)``
    once its fire time is reached. Timers are not required to survive a
    process restart.
    """

    def register(self, timer_id: str, fire_time_ms: int) -> None:
        """Arm a timer, replacing any existing timer with the same id."""
        ...

    def cancel(self, timer_id: str) -> None:
        """Cancel a timer if present."""
        ...

    def list_all(self) -> list[TimerEntry]:
        """Return all live timers."""
        ...

    def set_handler(self, handler: TimerHandler) -> None:
        """Install the callback invoked when a timer fires."""
        ...
