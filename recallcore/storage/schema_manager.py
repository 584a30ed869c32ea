import duckdb
import logging

from .. import config as recallcore_config
from ..exceptions import SchemaInitializationError, StorageUnavailableError
from .connection import ConnectionHandler

logger = logging.getLogger(__name__)

KV_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key VARCHAR PRIMARY KEY,
    value VARCHAR NOT NULL,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);
"""


class SchemaManager:
    """Creates and maintains the kv_store table."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Create the kv_store table inside a transaction. Skipped for read-only
        file databases. `force_recreate_tables` drops the table first and
        deletes every stored value.
        """
        if self._handle_read_only_initialization(force_recreate_tables):
            return

        conn = self._handler.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                if force_recreate_tables:
                    self._recreate_tables(cursor)
                cursor.execute(KV_SCHEMA_SQL)
                cursor.commit()
            logger.info(
                f"Key-value schema at {self._handler.label} ready."
            )
        except duckdb.Error as e:
            logger.error(
                f"Error initializing key-value schema at "
                f"{self._handler.label}: {e}"
            )
            try:
                conn.rollback()
            except duckdb.Error as rb_err:
                logger.error(f"Failed to rollback transaction: {rb_err}")
            raise SchemaInitializationError(
                f"Failed to initialize schema: {e}", original_exception=e
            ) from e

    def _handle_read_only_initialization(
        self, force_recreate_tables: bool
    ) -> bool:
        """Returns True if initialization should be skipped."""
        if self._handler.read_only:
            if force_recreate_tables:
                raise StorageUnavailableError(
                    "Cannot force_recreate_tables in read-only mode."
                )
            if not self._handler.is_memory:
                logger.warning(
                    "Attempting to initialize schema in read-only mode. Skipping."
                )
                return True
        return False

    def _perform_safety_check(self, cursor: duckdb.DuckDBPyConnection) -> None:
        """Refuses to drop a file-backed table that still holds values."""
        if self._handler.is_memory or recallcore_config.settings.testing_mode:
            return

        try:
            result = cursor.execute("SELECT COUNT(*) FROM kv_store").fetchone()
        except duckdb.CatalogException:
            return
        count = result[0] if result else 0
        if count > 0:
            error_msg = (
                f"CRITICAL: Attempted to drop kv_store with {count} stored "
                f"values. Export your data first."
            )
            logger.error(error_msg)
            raise SchemaInitializationError(error_msg)

    def _recreate_tables(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._perform_safety_check(cursor)
        logger.warning(
            f"Forcing table recreation for {self._handler.label}. "
            f"ALL STORED VALUES WILL BE LOST."
        )
        cursor.execute("DROP TABLE IF EXISTS kv_store;")
