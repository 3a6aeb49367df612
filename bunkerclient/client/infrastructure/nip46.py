"""Infrastructure layer: NIP-46 request/response channel over relay transport.

Every request is a JSON envelope ``{"id", "method", "params"}`` encrypted to
the remote signer with NIP-04 and handed to the transport. Responses arrive
through the transport subscription addressed to the client key and are
correlated by id. A response whose result is ``auth_url`` is an authorization
challenge: the URL (in ``error``) is passed to the challenge handler and the
request stays pending until the real answer arrives.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import (
    ChannelClosedError,
    PointerStructureError,
    RemoteSignerError,
    SessionClosed,
    TransportUnavailable,
    UnsupportedOperation,
)
from bunkerclient.common.logging_utils import short_key
from bunkerclient.common.models import Nip46Request, Nip46Response, SignedEvent

if TYPE_CHECKING:
    from bunkerclient.client.domain.entities import ClientKeys
    from bunkerclient.common.interfaces import AuthUrlHandler, IRelayTransport
    from bunkerclient.common.models import ConnectionDescriptor

logger = logging.getLogger(__name__)

AUTH_URL_RESULT = "auth_url"
ACK_RESULT = "ack"
UNSUPPORTED_MARKERS = ("not supported", "unsupported", "unknown method", "no such method")
ENCRYPTION_SCHEMES = ("nip04", "nip44")


class Nip46Channel:
    """Primary protocol implementation of the session-facing channel port."""

    emulated = False

    def __init__(
        self,
        transport: IRelayTransport,
        client_keys: ClientKeys,
        descriptor: ConnectionDescriptor,
        relays: list[str],
        on_auth_url: AuthUrlHandler | None = None,
    ):
        if descriptor.initiator != "signer":
            msg = "Client-initiated nostrconnect:// pointers are not supported"
            raise UnsupportedOperation(msg)
        if not relays:
            msg = "NIP-46 pointer needs at least one relay"
            raise PointerStructureError(msg)
        self.transport = transport
        self.client_keys = client_keys
        self.descriptor = descriptor
        self.remote_pubkey = descriptor.remote_pubkey
        self.relays = list(relays)
        self.on_auth_url = on_auth_url

        self._pending: dict[str, asyncio.Future[str]] = {}
        self._subscription: Any = None
        self._closed = False

    async def _ensure_subscribed(self) -> None:
        if self._closed:
            msg = "signer is not open anymore"
            raise ChannelClosedError(msg)
        if self._subscription is not None:
            return
        try:
            self._subscription = await self.transport.subscribe(
                self.client_keys.public_key, self.relays, self._on_message
            )
        except OSError as err:
            msg = f"Cannot subscribe on {', '.join(self.relays)}: {err}"
            raise TransportUnavailable(msg) from err
        logger.debug("Subscribed for responses on %s", ", ".join(self.relays))

    async def _request(self, method: str, params: list[str]) -> str:
        await self._ensure_subscribed()

        req = Nip46Request(id=secrets.token_hex(8), method=method, params=params)
        payload = CryptoUtils.nip04_encrypt(
            self.client_keys.secret_key, self.remote_pubkey, req.model_dump_json()
        )
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending[req.id] = future
        try:
            try:
                delivered = await self.transport.send(
                    self.remote_pubkey, payload, self.relays
                )
            except OSError as err:
                msg = f"Cannot deliver {method} request: {err}"
                raise TransportUnavailable(msg) from err
            if not delivered:
                msg = f"signer channel closed: relays rejected {method} request"
                raise ChannelClosedError(msg)
            logger.debug("Sent %s request %s", method, req.id)
            return await future
        finally:
            self._pending.pop(req.id, None)

    def _on_message(self, sender: str, payload: str) -> None:
        """Transport callback for messages addressed to the client key."""
        if sender.lower() != self.remote_pubkey:
            logger.debug("Ignoring message from unexpected sender %s", short_key(sender))
            return
        try:
            plaintext = CryptoUtils.nip04_decrypt(
                self.client_keys.secret_key, self.remote_pubkey, payload
            )
            resp = Nip46Response.model_validate_json(plaintext)
        except (ValueError, ValidationError) as err:
            logger.warning("Dropping undecodable response: %s", err)
            return

        future = self._pending.get(resp.id)
        if future is None or future.done():
            logger.debug("No pending request for response %s", resp.id)
            return

        if resp.result == AUTH_URL_RESULT:
            if resp.error and self.on_auth_url is not None:
                logger.info("Authorization challenge received for request %s", resp.id)
                self.on_auth_url(resp.error)
            return
        if resp.error:
            lowered = resp.error.lower()
            if any(marker in lowered for marker in UNSUPPORTED_MARKERS):
                future.set_exception(UnsupportedOperation(resp.error))
            else:
                future.set_exception(RemoteSignerError(resp.error))
            return
        future.set_result(resp.result or "")

    async def connect(self) -> None:
        params = [self.remote_pubkey]
        if self.descriptor.secret:
            params.append(self.descriptor.secret)
        if self.descriptor.permissions:
            if len(params) == 1:
                params.append("")
            params.append(",".join(self.descriptor.permissions))
        result = await self._request("connect", params)
        if result not in (ACK_RESULT, self.descriptor.secret):
            logger.warning("Unexpected connect result %r", result)

    async def get_public_key(self) -> str:
        result = await self._request("get_public_key", [])
        if not CryptoUtils.is_hex_key(result):
            msg = f"Remote signer returned an invalid public key: {result!r}"
            raise RemoteSignerError(msg)
        return result.lower()

    async def sign_event(self, event: dict[str, Any]) -> SignedEvent:
        result = await self._request("sign_event", [json.dumps(event)])
        try:
            signed = SignedEvent.model_validate_json(result)
        except ValidationError as err:
            msg = f"Remote signer returned a malformed event: {err}"
            raise RemoteSignerError(msg) from err
        if not signed.has_valid_id():
            msg = "Remote signer returned an event whose id does not match its content"
            raise RemoteSignerError(msg)
        return signed

    async def describe(self) -> list[str]:
        result = await self._request("describe", [])
        try:
            methods = json.loads(result)
        except json.JSONDecodeError as err:
            msg = "describe did not return JSON"
            raise RemoteSignerError(msg) from err
        if not isinstance(methods, list):
            msg = "describe did not return a method list"
            raise RemoteSignerError(msg)
        return [str(m) for m in methods]

    async def encrypt(self, scheme: str, peer: str, text: str) -> str:
        if scheme not in ENCRYPTION_SCHEMES:
            msg = f"Unknown encryption scheme {scheme}"
            raise UnsupportedOperation(msg)
        return await self._request(f"{scheme}_encrypt", [peer, text])

    async def decrypt(self, scheme: str, peer: str, text: str) -> str:
        if scheme not in ENCRYPTION_SCHEMES:
            msg = f"Unknown encryption scheme {scheme}"
            raise UnsupportedOperation(msg)
        return await self._request(f"{scheme}_decrypt", [peer, text])

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(SessionClosed("Remote signer channel closed"))
        self._pending.clear()
        if self._subscription is not None:
            handle, self._subscription = self._subscription, None
            try:
                await self.transport.close(handle)
            except OSError as err:
                logger.warning("Error closing subscription: %s", err)
        logger.info("Channel to %s closed", short_key(self.remote_pubkey))
