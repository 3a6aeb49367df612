"""
Pydantic models for descriptors, identities, events and protocol envelopes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bunkerclient.common.crypto import CryptoUtils


class ConnectionDescriptor(BaseModel):
    """Parsed connection string: who the remote signer is and where to find it."""

    model_config = ConfigDict(frozen=True)

    remote_pubkey: str
    relays: tuple[str, ...] = ()
    secret: str | None = None
    initiator: Literal["signer", "client"] = "signer"
    permissions: tuple[str, ...] = ()
    legacy: bool = False

    @field_validator("remote_pubkey")
    @classmethod
    def _check_remote_pubkey(cls, value: str) -> str:
        if not CryptoUtils.is_hex_key(value):
            msg = "remote_pubkey must be a 32-byte hex key"
            raise ValueError(msg)
        return value.lower()

    def to_connection_string(self) -> str:
        """Render the canonical signer-initiated form."""
        params: list[tuple[str, str]] = [("relay", relay) for relay in self.relays]
        if self.secret:
            params.append(("secret", self.secret))
        query = f"?{urlencode(params)}" if params else ""
        return f"bunker://{self.remote_pubkey}{query}"


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_sign: bool = True
    can_encrypt: bool = True
    can_decrypt: bool = True


class Identity(BaseModel):
    """Identity derived from a connected session."""

    model_config = ConfigDict(frozen=True)

    pubkey: str
    npub: str
    provider: str = "remote-signer"
    capabilities: Capabilities = Field(default_factory=Capabilities)
    emulated: bool = False


class PendingAuthorization(BaseModel):
    url: str
    issued_at: float


class SessionRecord(BaseModel):
    """Persisted session state used for automatic reconnect."""

    connected: bool = False
    remote_pubkey: str | None = None
    connection_string: str | None = None
    client_secret_key: str | None = None

    def is_restorable(self) -> bool:
        return (
            self.connected
            and CryptoUtils.is_hex_key(self.remote_pubkey)
            and bool(self.connection_string)
        )


class UnsignedEvent(BaseModel):
    kind: int
    content: str = ""
    tags: list[list[str]] = Field(default_factory=list)
    created_at: int | None = None
    pubkey: str | None = None


class SignedEvent(BaseModel):
    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""
    sig: str

    def expected_id(self) -> str:
        return CryptoUtils.compute_event_id(
            self.pubkey, self.created_at, self.kind, self.tags, self.content
        )

    def has_valid_id(self) -> bool:
        return self.id == self.expected_id()


class Nip46Request(BaseModel):
    id: str
    method: str
    params: list[str] = Field(default_factory=list)


class Nip46Response(BaseModel):
    id: str
    result: str | None = None
    error: str | None = None


class ClientConfig(BaseModel):
    default_relay: str | None = None
    store_path: Path | None = None
    log_level: int | None = None
    max_auth_wait: float | None = None
    key_poll_timeout: float | None = None
    sign_timeout: float | None = None
    preflight_budget: float | None = None
    interactive: bool | None = None
