"""Persistence layer for recallcore.

Key-value stores (in-memory and DuckDB-backed), the fault-tolerant
SafeStorage wrapper, schema migrations and JSON marshalling.
"""

from .kv_store import DuckDBKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .safe_storage import ReadCache, SafeStorage, StorageWarning, StorageWarningLog

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "DuckDBKeyValueStore",
    "SafeStorage",
    "ReadCache",
    "StorageWarning",
    "StorageWarningLog",
]
