"""
Key/value persistence adapters and the session record repository.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path  # noqa: TC003
from typing import TYPE_CHECKING, cast

from pydantic import ValidationError

from bunkerclient.common.models import SessionRecord

if TYPE_CHECKING:
    from bunkerclient.common.interfaces import IKeyValueStore

logger = logging.getLogger(__name__)

CLIENT_SECRET_KEY = "nip46_client_sk_hex"
CONNECTED_FLAG_KEY = "nip46_connected"
CONNECTED_PUBKEY_KEY = "nip46_connected_pubkey"
CONNECT_URI_KEY = "nip46_connect_uri"
LAST_AUTH_URL_KEY = "nip46_last_auth_url"


class MemoryStore:
    """In-process key/value store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str | None) -> None:
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value


class JsonFileStore:
    """Key/value store backed by a single JSON file."""

    def __init__(self, file_path: Path) -> None:
        self.file_path = file_path
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        try:
            with self.file_path.open() as f:
                return cast("dict[str, str]", json.load(f))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable store file %s", self.file_path)
            return {}

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str | None) -> None:
        with self._lock:
            data = self._load()
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with self.file_path.open("w") as f:
                json.dump(data, f, indent=2, sort_keys=True)


class SessionRepository:
    """Loads and saves the persisted session record on top of a key/value store."""

    def __init__(self, store: IKeyValueStore) -> None:
        self.store = store

    def load(self) -> SessionRecord | None:
        """Return the stored record, or None when nothing usable is stored."""
        uri = self.store.get(CONNECT_URI_KEY)
        pubkey = self.store.get(CONNECTED_PUBKEY_KEY)
        if not uri and not pubkey:
            return None
        try:
            return SessionRecord(
                connected=self.store.get(CONNECTED_FLAG_KEY) in ("1", "true"),
                remote_pubkey=pubkey,
                connection_string=uri,
                client_secret_key=self.store.get(CLIENT_SECRET_KEY),
            )
        except ValidationError:
            logger.warning("Discarding invalid session record")
            return None

    def save(self, record: SessionRecord) -> None:
        self.store.set(CONNECTED_FLAG_KEY, "1" if record.connected else None)
        self.store.set(CONNECTED_PUBKEY_KEY, record.remote_pubkey)
        self.store.set(CONNECT_URI_KEY, record.connection_string)
        if record.client_secret_key:
            self.store.set(CLIENT_SECRET_KEY, record.client_secret_key)

    def clear(self) -> None:
        """Forget the connection; the client key survives for reconnects."""
        self.store.set(CONNECTED_FLAG_KEY, None)
        self.store.set(CONNECTED_PUBKEY_KEY, None)
        self.store.set(CONNECT_URI_KEY, None)
        self.store.set(LAST_AUTH_URL_KEY, None)
