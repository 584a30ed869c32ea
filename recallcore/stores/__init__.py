"""
Flashcard stores: one shared base with a local and a remote implementation,
selected by Settings.backend.
"""

import logging
from typing import Optional, Union

from ..config import Settings
from ..config import settings as default_settings
from ..remote.api_client import FlashcardApiClient
from ..storage.kv_store import DuckDBKeyValueStore
from ..storage.safe_storage import SafeStorage
from .base import BaseFlashcardStore, UndoState
from .local import LocalFlashcardStore
from .remote import RemoteFlashcardStore

logger = logging.getLogger(__name__)

__all__ = [
    "BaseFlashcardStore",
    "LocalFlashcardStore",
    "RemoteFlashcardStore",
    "UndoState",
    "create_storage",
    "create_store",
]


def create_storage(settings: Optional[Settings] = None) -> SafeStorage:
    """SafeStorage over the configured DuckDB key-value file."""
    settings = settings or default_settings
    return SafeStorage(DuckDBKeyValueStore(settings.db_path))


def create_store(
    settings: Optional[Settings] = None,
) -> Union[LocalFlashcardStore, RemoteFlashcardStore]:
    """
    Build the store for the configured backend.

    A remote store is returned unloaded; await its load() once the session
    id is set.
    """
    settings = settings or default_settings
    storage = create_storage(settings)
    if settings.backend == "remote":
        logger.info(f"Using remote flashcard API at {settings.api_base_url}")
        client = FlashcardApiClient(
            settings.api_base_url,
            session_id=settings.session_id,
            timeout=settings.request_timeout,
        )
        return RemoteFlashcardStore(client, storage)
    logger.info(f"Using local flashcard store at {settings.db_path}")
    return LocalFlashcardStore(storage)
