"""In-memory key-value store for tests and single-process runs."""

from __future__ import annotations

import copy
import threading
from typing import Any


class MemoryKeyValueStore:
    """Thread-safe dictionary store that hands out copies of stored values."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            if key not in self._data:
                return None
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Return a snapshot of stored keys."""
        with self._lock:
            return sorted(self._data)
