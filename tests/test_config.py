import pytest
from pydantic import ValidationError

from recallcore.config import Settings, get_default_db_path
from recallcore.stores import LocalFlashcardStore, RemoteFlashcardStore, create_store


def test_defaults(monkeypatch):
    for var in ("RECALLCORE_BACKEND", "RECALLCORE_DB_PATH", "RECALLCORE_SESSION_ID"):
        monkeypatch.delenv(var, raising=False)

    settings = Settings(_env_file=None)

    assert settings.backend == "local"
    assert settings.db_path == str(get_default_db_path())
    assert settings.session_id is None
    assert settings.request_timeout == 10.0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RECALLCORE_BACKEND", "remote")
    monkeypatch.setenv("RECALLCORE_SESSION_ID", "sess-42")
    monkeypatch.setenv("RECALLCORE_REQUEST_TIMEOUT", "2.5")

    settings = Settings(_env_file=None)

    assert settings.backend == "remote"
    assert settings.session_id == "sess-42"
    assert settings.request_timeout == 2.5


def test_env_file_is_read(tmp_path, monkeypatch):
    monkeypatch.delenv("RECALLCORE_LOG_LEVEL", raising=False)
    env_file = tmp_path / "custom.env"
    env_file.write_text("RECALLCORE_LOG_LEVEL=DEBUG\n")

    assert Settings(_env_file=env_file).log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides", [{"backend": "cloud"}, {"request_timeout": 0}]
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_create_store_local():
    store = create_store(Settings(_env_file=None, backend="local", db_path=":memory:"))
    assert isinstance(store, LocalFlashcardStore)
    assert [p.name for p in store.packs] == ["All Cards", "Recently Added"]


def test_create_store_remote_is_unloaded():
    settings = Settings(
        _env_file=None,
        backend="remote",
        db_path=":memory:",
        api_base_url="http://example.test/api/user",
        session_id="sess-1",
    )

    store = create_store(settings)

    assert isinstance(store, RemoteFlashcardStore)
    assert store.is_ready is False
    assert store.cards == []
    assert store.client.session_id == "sess-1"
    assert store.client.base_url == "http://example.test/api/user"
