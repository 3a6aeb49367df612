import json

from bunkerclient.client.infrastructure.persistence import (
    CLIENT_SECRET_KEY,
    CONNECT_URI_KEY,
    CONNECTED_FLAG_KEY,
    LAST_AUTH_URL_KEY,
    JsonFileStore,
    MemoryStore,
    SessionRepository,
)
from bunkerclient.common.models import SessionRecord

PUBKEY = "cd" * 32
URI = f"bunker://{PUBKEY}?relay=wss://relay.example"


def test_memory_store_set_none_removes():
    """Test None deletes a key."""
    store = MemoryStore({"a": "1"})

    store.set("a", None)

    assert store.get("a") is None
    assert store.data == {}


def test_json_file_store(tmp_path):
    """Test values are written to and read back from disk."""
    path = tmp_path / "nested" / "store.json"
    store = JsonFileStore(path)

    store.set("key", "value")
    store.set("other", "x")
    store.set("other", None)

    assert json.loads(path.read_text()) == {"key": "value"}
    assert JsonFileStore(path).get("key") == "value"


def test_json_file_store_ignores_corrupt_file(tmp_path):
    """Test an unreadable file behaves like an empty store."""
    path = tmp_path / "store.json"
    path.write_text("{not json")

    assert JsonFileStore(path).get("key") is None


def test_repository_save_and_load():
    """Test the session record round trip through the store keys."""
    store = MemoryStore()
    repository = SessionRepository(store)

    repository.save(
        SessionRecord(
            connected=True,
            remote_pubkey=PUBKEY,
            connection_string=URI,
            client_secret_key="11" * 32,
        )
    )
    record = repository.load()

    assert store.get(CONNECTED_FLAG_KEY) == "1"
    assert record is not None
    assert record.is_restorable()
    assert record.client_secret_key == "11" * 32


def test_repository_clear_keeps_client_key():
    """Test clearing forgets the connection only."""
    store = MemoryStore({CLIENT_SECRET_KEY: "11" * 32, LAST_AUTH_URL_KEY: "https://x"})
    repository = SessionRepository(store)
    repository.save(SessionRecord(connected=True, remote_pubkey=PUBKEY, connection_string=URI))

    repository.clear()

    assert repository.load() is None
    assert store.get(CONNECT_URI_KEY) is None
    assert store.get(LAST_AUTH_URL_KEY) is None
    assert store.get(CLIENT_SECRET_KEY) == "11" * 32


def test_record_not_restorable_without_flag():
    """Test a disconnected record is not restored."""
    record = SessionRecord(connected=False, remote_pubkey=PUBKEY, connection_string=URI)

    assert not record.is_restorable()
