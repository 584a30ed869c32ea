import duckdb
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from ..exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

OnOpen = Callable[[duckdb.DuckDBPyConnection], None]


class ConnectionHandler:
    """
    Owns the single DuckDB connection behind a DuckDBKeyValueStore.

    The connection is opened on first use and may be closed and reopened any
    number of times. `on_open` runs after every open, so the kv_store table is
    guaranteed to exist on whichever connection is live.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        read_only: bool = False,
        on_open: Optional[OnOpen] = None,
    ):
        """
        Parameters:
            db_path (Union[str, Path]): DuckDB file, or ":memory:"
                (case-insensitive) for values that live as long as the
                connection.
            read_only (bool): Open the file read-only. The file must exist.
            on_open (Optional[Callable]): Called with each new connection,
                typically to create the kv_store table.
        """
        if isinstance(db_path, str) and db_path.lower() == MEMORY_PATH:
            self.db_path_resolved = Path(MEMORY_PATH)
        else:
            self.db_path_resolved = Path(db_path).expanduser().resolve()
        self.read_only: bool = read_only
        self._on_open = on_open
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        logger.debug(f"Key-value store configured at {self.label}.")

    @property
    def is_memory(self) -> bool:
        """In-memory values vanish when the connection closes."""
        return str(self.db_path_resolved) == MEMORY_PATH

    @property
    def label(self) -> str:
        return "in-memory key-value store" if self.is_memory else str(self.db_path_resolved)

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def _prepare_path(self) -> None:
        if self.is_memory:
            return
        if self.read_only:
            if not self.db_path_resolved.exists():
                raise StorageUnavailableError(
                    f"Cannot open {self.label} read-only: the file does not exist."
                )
            return
        self.db_path_resolved.parent.mkdir(parents=True, exist_ok=True)

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Return the live connection, opening it and running `on_open` first if
        needed. A failing `on_open` closes the connection again.

        Raises:
            StorageUnavailableError: If the file cannot be opened.
        """
        if self._connection is not None:
            return self._connection
        try:
            self._prepare_path()
            self._connection = duckdb.connect(
                database=str(self.db_path_resolved), read_only=self.read_only
            )
        except (duckdb.Error, OSError) as e:
            raise StorageUnavailableError(
                f"Failed to open {self.label}: {e}", original_exception=e
            ) from e
        logger.debug(f"Opened {self.label}.")

        if self._on_open is not None:
            try:
                self._on_open(self._connection)
            except Exception:
                self.close_connection()
                raise
        return self._connection

    def close_connection(self) -> None:
        """Close the connection if open. In-memory values are discarded."""
        if self._connection is None:
            return
        try:
            self._connection.close()
            logger.debug(f"Closed {self.label}.")
        except duckdb.Error as e:
            logger.error(f"Error closing {self.label}: {e}")
        finally:
            self._connection = None

    def __enter__(self) -> duckdb.DuckDBPyConnection:
        return self.get_connection()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_connection()
