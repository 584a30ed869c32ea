"""
Fault-tolerant access to a KeyValueStore.

SafeStorage never lets a storage failure reach the caller. When the primary
store is unavailable or full, values are kept in an in-memory fallback and a
StorageWarning is recorded for the UI layer. Warnings are deduplicated by
message so a persistent failure is reported once.
"""

import copy
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..constants import (
    QUOTA_CLEANUP_HISTORY_DAYS,
    READ_CACHE_TTL_SECONDS,
    STORAGE_KEYS,
)
from ..exceptions import (
    MarshallingError,
    StorageError,
    StorageQuotaExceededError,
)
from ..history import days_ago
from .kv_store import KeyValueStore, MemoryKeyValueStore

logger = logging.getLogger(__name__)

USER_MESSAGES: Dict[str, str] = {
    "unavailable": (
        "Storage is not available. Your data is kept for this session only "
        "and may be lost when the program exits."
    ),
    "quota_exceeded": (
        "Storage is full. Export your flashcards and clear old data to free "
        "some space."
    ),
    "corrupted_data": (
        "Some saved data appears to be corrupted. What could be recovered "
        "was kept; the rest was discarded."
    ),
    "write_error": "Unable to save your changes. Please try again.",
}


@dataclass(frozen=True)
class StorageWarning:
    kind: str
    message: str
    user_message: str
    key: Optional[str] = None


class StorageWarningLog:
    """Ordered warnings, deduplicated by message."""

    def __init__(self):
        self._warnings: List[StorageWarning] = []
        self._seen: Set[str] = set()

    def add(self, warning: StorageWarning) -> bool:
        """Record a warning. Returns False if the message was already seen."""
        if warning.message in self._seen:
            return False
        self._seen.add(warning.message)
        self._warnings.append(warning)
        logger.warning(f"Storage warning ({warning.kind}): {warning.message}")
        return True

    @property
    def warnings(self) -> List[StorageWarning]:
        return list(self._warnings)

    def clear(self) -> None:
        self._warnings.clear()
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._warnings)


_MISSING = object()


class ReadCache:
    """Parsed JSON values keyed by storage key, each valid for `ttl` seconds."""

    def __init__(
        self,
        ttl: float = READ_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Any:
        """Return the cached value, or the module's _MISSING sentinel."""
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return _MISSING
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not _MISSING


class SafeStorage:
    """
    Wraps a primary KeyValueStore with an in-memory fallback, JSON helpers,
    a read cache, and quota recovery.

    Args:
        primary: The persistent store. None means storage is unavailable
            from the start and everything lives in memory.
        cache: Read cache for parsed JSON; a fresh ReadCache by default.
    """

    def __init__(
        self,
        primary: Optional[KeyValueStore] = None,
        cache: Optional[ReadCache] = None,
    ):
        self._primary = primary
        self._fallback = MemoryKeyValueStore()
        # Keys whose latest value could only be written to the fallback.
        self._fallback_keys: Set[str] = set()
        self.cache = cache or ReadCache()
        self.warning_log = StorageWarningLog()
        if primary is None:
            self.report_warning("unavailable", "No persistent storage configured")

    @property
    def is_available(self) -> bool:
        return self._primary is not None

    @property
    def warnings(self) -> List[StorageWarning]:
        return self.warning_log.warnings

    def report_warning(self, kind: str, message: str, key: Optional[str] = None) -> None:
        self.warning_log.add(
            StorageWarning(
                kind=kind,
                message=message,
                user_message=USER_MESSAGES[kind],
                key=key,
            )
        )

    def _mark_unavailable(self, error: StorageError) -> None:
        logger.error(f"Primary storage failed, using in-memory fallback: {error}")
        self._primary = None
        self.report_warning("unavailable", str(error))

    # --- Raw string access ---

    def get_item(self, key: str) -> Optional[str]:
        if self._primary is not None and key not in self._fallback_keys:
            try:
                return self._primary.get(key)
            except StorageError as e:
                self._mark_unavailable(e)
        return self._fallback.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.cache.invalidate(key)
        self._fallback.set(key, value)
        if self._primary is None:
            self._fallback_keys.add(key)
            return
        try:
            self._primary.set(key, value)
            self._fallback_keys.discard(key)
        except StorageQuotaExceededError as e:
            if self._cleanup_and_retry(key, value):
                self._fallback_keys.discard(key)
                return
            self._fallback_keys.add(key)
            self.report_warning("quota_exceeded", str(e), key)
        except StorageError as e:
            self._fallback_keys.add(key)
            self._mark_unavailable(e)

    def remove_item(self, key: str) -> None:
        self.cache.invalidate(key)
        self._fallback.remove(key)
        self._fallback_keys.discard(key)
        if self._primary is None:
            return
        try:
            self._primary.remove(key)
        except StorageError as e:
            self._mark_unavailable(e)

    def _cleanup_and_retry(self, key: str, value: str) -> bool:
        """
        Drop ledger days older than the quota cutoff, then retry the write
        once. Returns True if the retry succeeded.
        """
        history_key = STORAGE_KEYS["history"]
        cutoff = days_ago(QUOTA_CLEANUP_HISTORY_DAYS)
        try:
            raw = self._primary.get(history_key)
            if raw:
                history = json.loads(raw)
                if isinstance(history, list):
                    pruned = [
                        r
                        for r in history
                        if isinstance(r, dict) and r.get("date", "") >= cutoff
                    ]
                    if len(pruned) < len(history):
                        logger.info(
                            f"Quota recovery: pruned {len(history) - len(pruned)} "
                            f"ledger days older than {cutoff}"
                        )
                        self._primary.set(history_key, json.dumps(pruned))
                        self.cache.invalidate(history_key)
            self._primary.set(key, value)
            return True
        except (StorageError, ValueError) as e:
            logger.warning(f"Quota recovery for {key} failed: {e}")
            return False

    # --- JSON access ---

    def get_json(self, key: str, default: Any = None) -> Any:
        """
        Read and parse a JSON value. Missing keys return `default`; unparsable
        values return `default` and record a corrupted-data warning.
        """
        cached = self.cache.get(key)
        if cached is not _MISSING:
            return copy.deepcopy(cached)

        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            self.report_warning("corrupted_data", f"Could not parse {key}: {e}", key)
            return default
        self.cache.set(key, parsed)
        return copy.deepcopy(parsed)

    def set_json(self, key: str, value: Any) -> None:
        """
        Serialize and store a JSON value.

        Raises:
            MarshallingError: If `value` is not JSON serializable.
        """
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise MarshallingError(
                f"Value for {key} is not JSON serializable: {e}",
                original_exception=e,
            ) from e
        self.set_item(key, raw)
        self.cache.set(key, copy.deepcopy(value))

    def clear(self, keys: Optional[Iterable[str]] = None) -> List[str]:
        """Remove the given keys (all flashcard keys by default)."""
        cleared = []
        for key in keys if keys is not None else STORAGE_KEYS.values():
            self.remove_item(key)
            cleared.append(key)
        return cleared
