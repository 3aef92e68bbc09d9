"""Append-only execution history per template."""

from __future__ import annotations

import logging
import threading

from models import ExecutionRecord, ExecutionStatus
from storage.interface import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY_PREFIX = "template.history."


def history_key(template_id: str) -> str:
    """Return the storage key holding a template's execution records."""
    return f"{HISTORY_KEY_PREFIX}{template_id}"


class ExecutionHistoryStore:
    """Persist execution records as a JSON list per template.

    Records are never mutated once appended. Readers receive them sorted by
    ``executed_at``.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = threading.Lock()

    def append(self, template_id: str, record: ExecutionRecord) -> None:
        """Append a record to the template's history."""
        key = history_key(template_id)
        with self._lock:
            entries = self._store.get(key) or []
            entries.append(record.model_dump(mode="json"))
            self._store.set(key, entries)
        logger.debug(
            "Execution record appended: template_id=%s record_id=%s status=%s",
            template_id,
            record.id,
            record.status.value,
        )

    def list(self, template_id: str) -> list[ExecutionRecord]:
        """Return the template's records ordered by execution time."""
        entries = self._store.get(history_key(template_id)) or []
        records = [ExecutionRecord.model_validate(entry) for entry in entries]
        return sorted(records, key=lambda record: (record.executed_at, record.id))

    def clear(self, template_id: str) -> None:
        """Remove all records for a template."""
        with self._lock:
            self._store.remove(history_key(template_id))

    def consecutive_failures(self, template_id: str) -> int:
        """Count the failures at the end of the template's history."""
        count = 0
        for record in reversed(self.list(template_id)):
            if record.status != ExecutionStatus.FAILURE:
                break
            count += 1
        return count
