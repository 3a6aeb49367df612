from __future__ import annotations

import asyncio
import json
import secrets
from typing import Any, Callable

import pytest

from bunkerclient.client.application.authorization import AuthorizationChannel
from bunkerclient.client.domain.entities import ClientKeys
from bunkerclient.client.infrastructure.persistence import MemoryStore
from bunkerclient.common.config import Config
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.models import Nip46Request, Nip46Response

# Loop iterations a pending call gets before the fake clock declares a timeout.
YIELDS_BEFORE_TIMEOUT = 50

Responder = Callable[[Nip46Request], "list[dict[str, Any]] | dict[str, Any] | None"]


class FakeClock:
    """Virtual time: sleeps and timeouts advance ``now`` instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.now += delay
        await asyncio.sleep(0)

    async def wait_for(self, aw: Any, timeout: float) -> Any:
        task = asyncio.ensure_future(aw)
        try:
            for _ in range(YIELDS_BEFORE_TIMEOUT):
                if task.done():
                    break
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            self.now += timeout
            raise asyncio.TimeoutError
        return task.result()


class FakeRemote:
    """In-memory relay transport with a scripted remote signer behind it.

    Responders map a method name to a function returning the reply fields
    (a dict, a list of dicts for several replies, or None for silence).
    """

    def __init__(self) -> None:
        self.secret_key = CryptoUtils.generate_secret_key()
        self.pubkey = CryptoUtils.public_key_hex(self.secret_key)
        self.client_pubkey: str | None = None
        self.handler: Callable[[str, str], None] | None = None
        self.requests: list[Nip46Request] = []
        self.subscribed_relays: list[list[str]] = []
        self.closed_handles: list[Any] = []
        self.down_relays: set[str] = set()
        self.deliver = True
        self.outstanding = 0
        self.max_outstanding = 0
        self.responders: dict[str, Responder] = {
            "connect": lambda req: {"result": "ack"},
            "get_public_key": lambda req: {"result": self.pubkey},
            "describe": lambda req: {
                "result": json.dumps(
                    [
                        "connect",
                        "get_public_key",
                        "sign_event",
                        "nip04_encrypt",
                        "nip04_decrypt",
                        "describe",
                    ]
                )
            },
            "sign_event": self.sign,
            "nip04_encrypt": lambda req: {"result": f"enc:{req.params[1]}"},
            "nip04_decrypt": lambda req: {"result": req.params[1].removeprefix("enc:")},
        }

    def sign(self, req: Nip46Request) -> dict[str, Any]:
        event = json.loads(req.params[0])
        tags = event.get("tags", [])
        content = event.get("content", "")
        signed = {
            "id": CryptoUtils.compute_event_id(
                self.pubkey, event["created_at"], event["kind"], tags, content
            ),
            "pubkey": self.pubkey,
            "created_at": event["created_at"],
            "kind": event["kind"],
            "tags": tags,
            "content": content,
            "sig": secrets.token_hex(64),
        }
        return {"result": json.dumps(signed)}

    @property
    def uri(self) -> str:
        return f"bunker://{self.pubkey}?relay=wss://relay.example&secret=abc"

    def methods(self) -> list[str]:
        return [req.method for req in self.requests]

    def sign_requests(self) -> list[dict[str, Any]]:
        return [json.loads(req.params[0]) for req in self.requests if req.method == "sign_event"]

    async def subscribe(
        self, recipient: str, relays: list[str], on_message: Callable[[str, str], None]
    ) -> int:
        if any(relay in self.down_relays for relay in relays):
            msg = "relay unreachable"
            raise ConnectionError(msg)
        self.client_pubkey = recipient
        self.handler = on_message
        self.subscribed_relays.append(list(relays))
        return len(self.subscribed_relays)

    async def send(self, recipient: str, payload: str, relays: list[str]) -> bool:
        if not self.deliver:
            return False
        assert recipient == self.pubkey
        assert self.client_pubkey is not None
        plaintext = CryptoUtils.nip04_decrypt(self.secret_key, self.client_pubkey, payload)
        req = Nip46Request.model_validate_json(plaintext)
        self.requests.append(req)
        replies = self.responders[req.method](req)
        if replies is None:
            return True
        if isinstance(replies, dict):
            replies = [replies]
        if req.method == "sign_event":
            self.outstanding += 1
            self.max_outstanding = max(self.max_outstanding, self.outstanding)
        for reply in replies:
            self.reply(req, **reply)
        return True

    def reply(self, req: Nip46Request, result: str | None = None, error: str | None = None) -> None:
        assert self.client_pubkey is not None
        body = Nip46Response(id=req.id, result=result, error=error).model_dump_json()
        payload = CryptoUtils.nip04_encrypt(self.secret_key, self.client_pubkey, body)

        def deliver() -> None:
            if req.method == "sign_event" and result != "auth_url":
                self.outstanding -= 1
            if self.handler is not None:
                self.handler(self.pubkey, payload)

        asyncio.get_running_loop().call_soon(deliver)

    async def close(self, handle: Any) -> None:
        self.closed_handles.append(handle)


class RecordingOpener:
    def __init__(self, result: bool = True) -> None:  # noqa: FBT001, FBT002
        self.result = result
        self.urls: list[str] = []

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        return self.result


@pytest.fixture
def clock() -> FakeClock:
    """Virtual clock for polling and timeouts."""
    return FakeClock()


@pytest.fixture
def remote() -> FakeRemote:
    """Scripted remote signer reachable through an in-memory transport."""
    return FakeRemote()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def opener() -> RecordingOpener:
    return RecordingOpener()


@pytest.fixture
def authorization(store: MemoryStore, opener: RecordingOpener) -> AuthorizationChannel:
    return AuthorizationChannel(store, interactive=True, opener=opener)


@pytest.fixture
def client_keys() -> ClientKeys:
    return ClientKeys.from_secret(CryptoUtils.generate_secret_key())


@pytest.fixture
def config() -> Config:
    return Config()
