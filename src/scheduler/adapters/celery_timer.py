"""Platform timer service backed by Celery ETA tasks."""

from __future__ import annotations

import logging
from typing import Any

from celery import Celery

from scheduler.errors import TimerServiceError
from scheduler.timer_interface import TimerEntry, TimerHandler
from storage.interface import KeyValueStore
from time_utils import from_epoch_ms

logger = logging.getLogger(__name__)

FIRE_TASK_NAME = "expense_autopilot.fire_template"
TIMER_KEY_PREFIX = "timer."
TIMER_INDEX_KEY = "timer.index"


def timer_key(timer_id: str) -> str:
    """Return the storage key for a registered timer."""
    return f"{TIMER_KEY_PREFIX}{timer_id}"


class CeleryTimerService:
    """Arm timers as Celery tasks with an ETA.

    The registry of live timers lives in the key-value store so it survives
    restarts of the scheduling process. Each delivery is checked against the
    registry and dropped when its task id no longer matches, which covers
    revokes that did not reach a worker in time.
    """

    def __init__(
        self,
        app: Celery,
        store: KeyValueStore,
        *,
        task_name: str = FIRE_TASK_NAME,
        queue_name: str | None = None,
    ) -> None:
        self._app = app
        self._store = store
        self._task_name = task_name
        self._queue_name = queue_name
        self._handler: TimerHandler | None = None

    def set_handler(self, handler: TimerHandler) -> None:
        self._handler = handler

    def register(self, timer_id: str, fire_time_ms: int) -> None:
        self.cancel(timer_id)
        try:
            result = self._app.send_task(
                self._task_name,
                args=(timer_id, fire_time_ms),
                eta=from_epoch_ms(fire_time_ms),
                queue=self._queue_name,
            )
        except Exception as exc:
            logger.error("Celery timer enqueue failed: timer_id=%s error=%s", timer_id, exc)
            raise TimerServiceError(
                f"Failed to enqueue timer {timer_id}.",
                {"timer_id": timer_id, "fire_time_ms": fire_time_ms},
            ) from exc

        self._store.set(
            timer_key(timer_id),
            {"timer_id": timer_id, "fire_time_ms": fire_time_ms, "task_id": result.id},
        )
        index = self._index()
        if timer_id not in index:
            index.append(timer_id)
            self._store.set(TIMER_INDEX_KEY, index)
        logger.debug("Celery timer armed: timer_id=%s task_id=%s", timer_id, result.id)

    def cancel(self, timer_id: str) -> None:
        entry = self._store.get(timer_key(timer_id))
        if entry is None:
            return
        self._forget(timer_id)
        task_id = entry.get("task_id")
        if not task_id:
            return
        try:
            self._app.control.revoke(task_id)
        except Exception as exc:
            # The registry entry is already gone, so a late delivery is dropped.
            logger.warning("Celery revoke failed: timer_id=%s error=%s", timer_id, exc)

    def list_all(self) -> list[TimerEntry]:
        entries = []
        for timer_id in self._index():
            entry = self._store.get(timer_key(timer_id))
            if entry is None:
                continue
            entries.append(TimerEntry(timer_id=timer_id, fire_time_ms=int(entry["fire_time_ms"])))
        return entries

    def deliver(self, timer_id: str, fire_time_ms: int, task_id: str | None) -> bool:
        """Route a worker delivery to the handler.

        Returns False when the delivery is stale or no handler is installed.
        """
        entry: dict[str, Any] | None = self._store.get(timer_key(timer_id))
        if entry is None or entry.get("task_id") != task_id:
            logger.info("Stale timer delivery dropped: timer_id=%s task_id=%s", timer_id, task_id)
            return False
        self._forget(timer_id)
        if self._handler is None:
            logger.warning("Timer delivered without a handler: timer_id=%s", timer_id)
            return False
        self._handler(timer_id, fire_time_ms)
        return True

    def _index(self) -> list[str]:
        return list(self._store.get(TIMER_INDEX_KEY) or [])

    def _forget(self, timer_id: str) -> None:
        self._store.remove(timer_key(timer_id))
        index = self._index()
        if timer_id in index:
            index.remove(timer_id)
            self._store.set(TIMER_INDEX_KEY, index)
