"""Storage backends."""

from quotapool.storage.backends.memory import MemoryStore
from quotapool.storage.backends.sqlite import SQLiteStore

__all__ = ["MemoryStore", "SQLiteStore"]
