"""Provider-agnostic key-value storage interface."""

from __future__ import annotations

from typing import Any, Protocol


class StorageError(Exception):
    """Raised when a storage backend operation fails."""

    def __init__(self, message: str, key: str | None = None) -> None:
        """Initialize the storage error with the affected key."""
        super().__init__(message)
        self.key = key


class KeyValueStore(Protocol):
    """Protocol for JSON-compatible key-value stores with per-key atomicity."""

    def get(self, key: str) -> Any | None:
        """Return the stored value, or None when the key is absent."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-compatible value under the key."""
        ...

    def remove(self, key: str) -> None:
        """Remove the key if present."""
        ...
