"""Template persistence over the key-value store."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from models import ExpenseTemplate, ScheduleRule
from storage.interface import KeyValueStore
from templates.history import ExecutionHistoryStore
from time_utils import now_ms

logger = logging.getLogger(__name__)

TEMPLATE_KEY_PREFIX = "template."
TEMPLATE_INDEX_KEY = "template.index"


class TemplateNotFoundError(Exception):
    """Raised when a template id does not resolve to a stored template."""

    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


def template_key(template_id: str) -> str:
    """Return the storage key holding a template."""
    return f"{TEMPLATE_KEY_PREFIX}{template_id}"


class TemplateRepository:
    """Load and mutate templates and their index.

    Execution history is stored separately and attached on read.
    """

    def __init__(
        self,
        store: KeyValueStore,
        history: ExecutionHistoryStore | None = None,
        *,
        now_provider: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._history = history or ExecutionHistoryStore(store)
        self._now_provider = now_provider or now_ms
        self._lock = threading.RLock()

    @property
    def history(self) -> ExecutionHistoryStore:
        return self._history

    def get(self, template_id: str) -> ExpenseTemplate | None:
        """Return the template with its history, or None when missing."""
        raw = self._store.get(template_key(template_id))
        if raw is None:
            return None
        template = ExpenseTemplate.model_validate(raw)
        return template.model_copy(
            update={"execution_history": self._history.list(template_id)}
        )

    def require(self, template_id: str) -> ExpenseTemplate:
        """Return the template or raise TemplateNotFoundError."""
        template = self.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_ids(self) -> list[str]:
        return list(self._store.get(TEMPLATE_INDEX_KEY) or [])

    def list_all(self) -> list[ExpenseTemplate]:
        """Return every indexed template, skipping dangling index entries."""
        templates = []
        for template_id in self.list_ids():
            template = self.get(template_id)
            if template is None:
                logger.warning("Template index entry dangling: template_id=%s", template_id)
                continue
            templates.append(template)
        return templates

    def save(self, template: ExpenseTemplate) -> ExpenseTemplate:
        """Persist a template and add it to the index."""
        _validate_template_id(template.id)
        now = self._now_provider()
        with self._lock:
            updates: dict[str, object] = {"updated_at": now}
            if not template.created_at:
                updates["created_at"] = now
            stored = template.model_copy(update=updates)
            self._write(stored)
            index = self.list_ids()
            if stored.id not in index:
                index.append(stored.id)
                self._store.set(TEMPLATE_INDEX_KEY, index)
        return stored

    def delete(self, template_id: str) -> bool:
        """Remove a template, its index entry and its history.

        Returns False when the template did not exist.
        """
        with self._lock:
            existed = self._store.get(template_key(template_id)) is not None
            self._store.remove(template_key(template_id))
            index = self.list_ids()
            if template_id in index:
                index.remove(template_id)
                self._store.set(TEMPLATE_INDEX_KEY, index)
            self._history.clear(template_id)
        if existed:
            logger.info("Template deleted: template_id=%s", template_id)
        return existed

    def set_scheduling(self, template_id: str, rule: ScheduleRule | None) -> ExpenseTemplate:
        """Replace the template's recurrence rule."""
        with self._lock:
            template = self.require(template_id)
            return self.save(template.model_copy(update={"scheduling": rule}))

    def update_next_execution(self, template_id: str, next_execution: int | None) -> None:
        """Cache the computed next fire time on the template's rule.

        Missing templates and templates without a rule are ignored.
        """
        with self._lock:
            template = self.get(template_id)
            if template is None or template.scheduling is None:
                return
            rule = template.scheduling.model_copy(update={"next_execution": next_execution})
            self._write(template.model_copy(update={"scheduling": rule}))

    def record_use(self, template_id: str, *, scheduled: bool) -> ExpenseTemplate | None:
        """Increment usage counters and stamp ``last_used``."""
        with self._lock:
            template = self.get(template_id)
            if template is None:
                return None
            updates = {
                "use_count": template.use_count + 1,
                "last_used": self._now_provider(),
            }
            if scheduled:
                updates["scheduled_use_count"] = template.scheduled_use_count + 1
            updated = template.model_copy(update=updates)
            self._write(updated)
            return updated

    def _write(self, template: ExpenseTemplate) -> None:
        payload = template.model_dump(mode="json", exclude={"execution_history"})
        self._store.set(template_key(template.id), payload)


def _validate_template_id(template_id: str) -> None:
    # Ids share a key namespace with the index, history and wake-up keys.
    if not template_id or "." in template_id or template_id == "index":
        raise ValueError(f"Invalid template id: {template_id!r}")
