"""Domain layer: Core session entities and rules.
"""

from __future__ import annotations

import enum
import itertools
from dataclasses import dataclass, field
from typing import Any

from bunkerclient.common.crypto import CryptoUtils


class SessionState(str, enum.Enum):
    """Lifecycle states of a remote signer session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    CONNECTED = "connected"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.CLOSED, SessionState.FAILED})

ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.DISCONNECTED: frozenset(
        {SessionState.CONNECTING, SessionState.CLOSED, SessionState.FAILED}
    ),
    SessionState.CONNECTING: frozenset(
        {
            SessionState.AWAITING_AUTHORIZATION,
            SessionState.CONNECTED,
            SessionState.CLOSED,
            SessionState.FAILED,
        }
    ),
    SessionState.AWAITING_AUTHORIZATION: frozenset(
        {SessionState.CONNECTED, SessionState.CLOSED, SessionState.FAILED}
    ),
    SessionState.CONNECTED: frozenset({SessionState.CLOSED, SessionState.FAILED}),
    SessionState.CLOSED: frozenset(),
    SessionState.FAILED: frozenset(),
}


class RequestKind(str, enum.Enum):
    CONNECT = "connect"
    GET_PUBLIC_KEY = "get_public_key"
    SIGN_EVENT = "sign_event"
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    DESCRIBE = "describe"


_request_ids = itertools.count(1)


@dataclass
class PendingRequest:
    """One caller invocation travelling through the retry policy."""

    kind: RequestKind
    payload: Any
    deadline: float | None = None
    attempts: int = 0
    id: int = field(default_factory=lambda: next(_request_ids))


@dataclass(frozen=True)
class ClientKeys:
    """Long-lived client keypair identifying this device to the remote signer."""

    secret_key: bytes = field(repr=False)
    public_key: str

    @classmethod
    def from_secret(cls, secret_key: bytes) -> ClientKeys:
        return cls(secret_key=secret_key, public_key=CryptoUtils.public_key_hex(secret_key))

    @property
    def secret_hex(self) -> str:
        return self.secret_key.hex()
