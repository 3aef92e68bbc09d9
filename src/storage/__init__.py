"""Key-value storage collaborators."""

from storage.interface import KeyValueStore, StorageError
from storage.memory import MemoryKeyValueStore
from storage.sql import SqlKeyValueStore

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlKeyValueStore",
    "StorageError",
]
