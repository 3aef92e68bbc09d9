"""SQLAlchemy-backed key-value store."""

from __future__ import annotations

import json
import logging
from contextlib import closing
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import KeyValueEntry
from storage.interface import StorageError

logger = logging.getLogger(__name__)


class SqlKeyValueStore:
    """Key-value store persisting JSON text rows in the ``kv_entries`` table.

    Each call runs in its own session and commits before returning, so a
    successful ``set`` is durable even if the process exits immediately after.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """Initialize the store with a session factory."""
        self._session_factory = session_factory

    def get(self, key: str) -> Any | None:
        try:
            with closing(self._session_factory()) as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    return None
                raw = entry.value
        except SQLAlchemyError as exc:
            logger.error("Storage read failed: key=%s error=%s", key, exc)
            raise StorageError(f"Failed to read key {key}.", key) from exc
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, separators=(",", ":"), sort_keys=True)
        try:
            with closing(self._session_factory()) as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=encoded))
                else:
                    entry.value = encoded
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Storage write failed: key=%s error=%s", key, exc)
            raise StorageError(f"Failed to write key {key}.", key) from exc

    def remove(self, key: str) -> None:
        try:
            with closing(self._session_factory()) as session:
                session.query(KeyValueEntry).filter(KeyValueEntry.key == key).delete()
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Storage delete failed: key=%s error=%s", key, exc)
            raise StorageError(f"Failed to remove key {key}.", key) from exc
