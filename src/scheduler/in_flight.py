"""In-memory guard against concurrent duplicate firings."""

from __future__ import annotations

import threading


class InFlightGuard:
    """Thread-safe set of firing keys that are currently running."""

    def __init__(self) -> None:
        self._keys: set[str] = set()
        self._lock = threading.Lock()

    def acquire(self, key: str) -> bool:
        """Claim a key, returning False when it is already in flight."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
