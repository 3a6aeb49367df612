"""Infrastructure layer: emulated channel used when NIP-46 cannot be used.

The emulated channel lets a session reach the connected state when the
primary protocol implementation is unavailable or rejects the pointer
structure (a pointer with no relay). Its authorization URL and signatures are fabricated locally.
Everything it produces is flagged ``emulated`` and must not be treated as
authorized by the remote signer.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlsplit

from bunkerclient.common.config import Config
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import ChannelClosedError, UnsupportedOperation
from bunkerclient.common.logging_utils import short_key
from bunkerclient.common.models import SignedEvent, UnsignedEvent

if TYPE_CHECKING:
    from bunkerclient.common.interfaces import AuthUrlHandler
    from bunkerclient.common.models import ConnectionDescriptor

logger = logging.getLogger(__name__)

EMULATED_METHODS = ["connect", "get_public_key", "sign_event"]


class EmulatedChannel:
    """Alternate implementation of the channel port with no remote round trips."""

    emulated = True

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        relays: list[str],
        on_auth_url: AuthUrlHandler | None = None,
        reason: str = "",
        default_relay: str | None = None,
    ):
        self.descriptor = descriptor
        self.remote_pubkey = descriptor.remote_pubkey
        self.relays = list(relays)
        self.on_auth_url = on_auth_url
        self.reason = reason
        self.default_relay = default_relay or Config().DEFAULT_RELAY
        self._connected = False
        self._closed = False
        logger.warning(
            "Using EMULATED remote signer for %s (%s); signatures are not genuine",
            short_key(self.remote_pubkey),
            reason or "primary protocol unavailable",
        )

    def authorization_url(self) -> str:
        relay = self.relays[0] if self.relays else self.default_relay
        host = urlsplit(relay).hostname or relay
        if host.startswith("relay."):
            host = host[len("relay."):]
        url = f"https://{host}/auth?pubkey={self.remote_pubkey}&relay={quote(relay, safe='')}"
        if self.descriptor.secret:
            url += f"&secret={quote(self.descriptor.secret, safe='')}"
        return url

    def _check_open(self) -> None:
        if self._closed or not self._connected:
            msg = "signer is not open"
            raise ChannelClosedError(msg)

    async def connect(self) -> None:
        if self._closed:
            msg = "signer is not open anymore"
            raise ChannelClosedError(msg)
        if self.on_auth_url is not None:
            url = self.authorization_url()
            logger.warning("EMULATED authorization URL issued: %s", url)
            self.on_auth_url(url)
        self._connected = True

    async def get_public_key(self) -> str:
        self._check_open()
        return self.remote_pubkey

    async def sign_event(self, event: dict[str, Any]) -> SignedEvent:
        self._check_open()
        unsigned = UnsignedEvent.model_validate(event)
        created_at = unsigned.created_at or int(time.time())
        event_id = CryptoUtils.compute_event_id(
            self.remote_pubkey, created_at, unsigned.kind, unsigned.tags, unsigned.content
        )
        logger.warning("EMULATED signature for event kind %s", unsigned.kind)
        return SignedEvent(
            id=event_id,
            pubkey=self.remote_pubkey,
            created_at=created_at,
            kind=unsigned.kind,
            tags=unsigned.tags,
            content=unsigned.content,
            sig=secrets.token_hex(64),
        )

    async def describe(self) -> list[str]:
        return list(EMULATED_METHODS)

    async def encrypt(self, scheme: str, peer: str, text: str) -> str:
        msg = f"{scheme} encryption is not available on an emulated signer"
        raise UnsupportedOperation(msg)

    async def decrypt(self, scheme: str, peer: str, text: str) -> str:
        msg = f"{scheme} decryption is not available on an emulated signer"
        raise UnsupportedOperation(msg)

    async def close(self) -> None:
        self._closed = True
        self._connected = False
