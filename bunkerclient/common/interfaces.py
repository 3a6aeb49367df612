"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

from bunkerclient.common.models import SessionRecord, SignedEvent

T = TypeVar("T")

MessageHandler = Callable[[str, str], None]
AuthUrlHandler = Callable[[str], None]


class IRelayTransport(Protocol):
    """Store-and-forward relay transport (external collaborator)."""

    async def send(self, recipient: str, payload: str, relays: list[str]) -> bool: ...

    async def subscribe(
        self, recipient: str, relays: list[str], on_message: MessageHandler
    ) -> Any: ...

    async def close(self, handle: Any) -> None: ...


class IKeyValueStore(Protocol):
    """Key/value persistence (external collaborator)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str | None) -> None: ...


class ISessionRepository(Protocol):
    """Protocol for persisted session records."""

    def load(self) -> SessionRecord | None: ...

    def save(self, record: SessionRecord) -> None: ...

    def clear(self) -> None: ...


class IClock(Protocol):
    """Time source used by the polling and retry loops."""

    def monotonic(self) -> float: ...

    async def sleep(self, delay: float) -> None: ...

    async def wait_for(self, aw: Awaitable[T], timeout: float) -> T: ...


class ISignerChannel(Protocol):
    """Session-facing port implemented by the protocol and emulated channels."""

    emulated: bool

    async def connect(self) -> None: ...

    async def get_public_key(self) -> str: ...

    async def sign_event(self, event: dict[str, Any]) -> SignedEvent: ...

    async def describe(self) -> list[str]: ...

    async def encrypt(self, scheme: str, peer: str, text: str) -> str: ...

    async def decrypt(self, scheme: str, peer: str, text: str) -> str: ...

    async def close(self) -> None: ...
