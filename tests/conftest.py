import pytest
from pathlib import Path
from typing import Generator
from datetime import datetime, timezone

from recallcore.models import Card, SourceType, create_card
from recallcore.storage.kv_store import DuckDBKeyValueStore, MemoryKeyValueStore
from recallcore.storage.safe_storage import SafeStorage
from recallcore.stores.local import LocalFlashcardStore


# each test runs on cwd to its temp dir
@pytest.fixture(autouse=True)
def go_to_tmpdir(request):
    """
    Temporarily change the process working directory to the test's tmpdir.

    Keeps a developer's .env file out of Settings() during tests.
    """
    tmpdir = request.getfixturevalue("tmpdir")
    with tmpdir.as_cwd():
        yield


# --- Clock Fixtures ---
@pytest.fixture
def fixed_now() -> datetime:
    """A fixed, timezone-aware 'now' used for scheduling assertions."""
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


# --- Key-Value Store Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    """
    Returns:
        db_path (str): ":memory:", which opens a transient DuckDB database.
    """
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    """
    Parameters:
        tmp_path (Path): pytest temporary directory for the current test.

    Returns:
        Path: Path to "test_recall.db" inside `tmp_path`.
    """
    return tmp_path / "test_recall.db"


@pytest.fixture(params=["memory", "file"])
def kv_store(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[DuckDBKeyValueStore, None, None]:
    """
    Provide a DuckDBKeyValueStore, either in-memory or file-backed, and close
    it on teardown.

    Parameters:
        request: pytest `FixtureRequest` whose `param` is "memory" or "file".
        db_path_memory (str): Path identifier for an in-memory database.
        db_path_file (Path): Filesystem path for a file-backed database.
    """
    if request.param == "memory":
        store = DuckDBKeyValueStore(db_path_memory)
    else:
        store = DuckDBKeyValueStore(db_path_file)
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def storage(kv_store: DuckDBKeyValueStore) -> SafeStorage:
    return SafeStorage(kv_store)


@pytest.fixture
def memory_storage() -> SafeStorage:
    """SafeStorage over a dict-backed store; no DuckDB involved."""
    return SafeStorage(MemoryKeyValueStore())


@pytest.fixture
def local_store(storage: SafeStorage) -> LocalFlashcardStore:
    return LocalFlashcardStore(storage)


@pytest.fixture
def memory_store(memory_storage: SafeStorage) -> LocalFlashcardStore:
    return LocalFlashcardStore(memory_storage)


# --- Card Fixtures ---
@pytest.fixture
def new_card(fixed_now: datetime) -> Card:
    """
    Returns:
        Card: A fresh milestone card (EF 2.5, interval 0, repetitions 0)
        created and due at `fixed_now`.
    """
    return create_card(
        SourceType.milestone, "E2017_TRANSFORMER", pack_ids=["pack-1"], now=fixed_now
    )
