"""
Key-value string stores backing the local flashcard data.

Values are opaque strings (JSON in practice) stored under fixed keys.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

import duckdb

from ..exceptions import StorageQuotaExceededError, StorageUnavailableError
from .connection import ConnectionHandler
from .schema_manager import SchemaManager

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class MemoryKeyValueStore:
    """
    Dict-backed store. Used as the in-memory fallback and in tests.

    With `max_bytes` set, a write that would push the total size of keys and
    values past the limit raises StorageQuotaExceededError.
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.max_bytes = max_bytes

    def _size_with(self, key: str, value: str) -> int:
        size = len(key) + len(value)
        for k, v in self._data.items():
            if k != key:
                size += len(k) + len(v)
        return size

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.max_bytes is not None and self._size_with(key, value) > self.max_bytes:
            raise StorageQuotaExceededError(
                f"Writing {key} would exceed the {self.max_bytes} byte quota"
            )
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class DuckDBKeyValueStore:
    """Persistent store: one row per key in the kv_store table."""

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        self._handler = ConnectionHandler(
            db_path, read_only=read_only, on_open=self._initialize_schema
        )
        self._schema_manager = SchemaManager(self._handler)

    def _initialize_schema(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._schema_manager.initialize_schema()

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    def _conn(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def _raise_storage_error(self, action: str, key: str, e: duckdb.Error):
        logger.error(f"Key-value store failed to {action} {key}: {e}")
        if "no space left" in str(e).lower():
            raise StorageQuotaExceededError(
                f"Storage full while writing {key}: {e}", original_exception=e
            ) from e
        raise StorageUnavailableError(
            f"Failed to {action} {key}: {e}", original_exception=e
        ) from e

    def get(self, key: str) -> Optional[str]:
        try:
            row = self._conn().execute(
                "SELECT value FROM kv_store WHERE key = $1;", [key]
            ).fetchone()
        except duckdb.Error as e:
            self._raise_storage_error("read", key, e)
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        sql = """
        INSERT INTO kv_store (key, value, updated_at)
        VALUES ($1, $2, CURRENT_TIMESTAMP)
        ON CONFLICT (key) DO UPDATE SET
            value = EXCLUDED.value,
            updated_at = EXCLUDED.updated_at;
        """
        try:
            self._conn().execute(sql, [key, value])
        except duckdb.Error as e:
            self._raise_storage_error("write", key, e)

    def remove(self, key: str) -> None:
        try:
            self._conn().execute("DELETE FROM kv_store WHERE key = $1;", [key])
        except duckdb.Error as e:
            self._raise_storage_error("remove", key, e)

    def keys(self) -> List[str]:
        try:
            rows = self._conn().execute(
                "SELECT key FROM kv_store ORDER BY key;"
            ).fetchall()
        except duckdb.Error as e:
            self._raise_storage_error("list", "keys", e)
        return [row[0] for row in rows]

    def close(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "DuckDBKeyValueStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
