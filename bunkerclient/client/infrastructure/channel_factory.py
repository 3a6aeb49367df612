"""Infrastructure layer: select the channel implementation for a session.

The primary NIP-46 channel is used whenever it loads and accepts the
pointer. Module-load failures (including a cryptography backend without
secp256k1) and pointer-structure rejections select the emulated channel.
Client-initiated nostrconnect:// pointers are refused outright. Malformed
connection strings fail in the parser before this point and authorization
timeouts happen after it.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Callable

from cryptography.exceptions import UnsupportedAlgorithm

from bunkerclient.client.infrastructure.emulated import EmulatedChannel
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import (
    PointerStructureError,
    ProtocolUnavailable,
    UnsupportedOperation,
)

if TYPE_CHECKING:
    from bunkerclient.client.domain.entities import ClientKeys
    from bunkerclient.common.interfaces import (
        AuthUrlHandler,
        IRelayTransport,
        ISignerChannel,
    )
    from bunkerclient.common.models import ConnectionDescriptor

logger = logging.getLogger(__name__)

PRIMARY_PROTOCOL_MODULE = "bunkerclient.client.infrastructure.nip46"
PRIMARY_CHANNEL_CLASS = "Nip46Channel"

ProtocolLoader = Callable[[], type]


def _check_crypto() -> None:
    secret_key = CryptoUtils.generate_secret_key()
    CryptoUtils.shared_secret(secret_key, CryptoUtils.public_key_hex(secret_key))


def load_primary_protocol() -> type:
    """Import the NIP-46 channel class and check its crypto requirements.

    Raises:
        ProtocolUnavailable: if the module or the secp256k1 backend is missing.
    """
    try:
        module = importlib.import_module(PRIMARY_PROTOCOL_MODULE)
    except ImportError as err:
        msg = f"Cannot load {PRIMARY_PROTOCOL_MODULE}: {err}"
        raise ProtocolUnavailable(msg) from err

    channel_cls = getattr(module, PRIMARY_CHANNEL_CLASS, None)
    if channel_cls is None:
        msg = f"{PRIMARY_PROTOCOL_MODULE} has no {PRIMARY_CHANNEL_CLASS}"
        raise ProtocolUnavailable(msg)

    try:
        _check_crypto()
    except UnsupportedAlgorithm as err:
        msg = f"secp256k1 is not supported by the cryptography backend: {err}"
        raise ProtocolUnavailable(msg) from err
    return channel_cls


def create_channel(
    transport: IRelayTransport,
    client_keys: ClientKeys,
    descriptor: ConnectionDescriptor,
    relays: list[str],
    on_auth_url: AuthUrlHandler | None = None,
    loader: ProtocolLoader = load_primary_protocol,
    default_relay: str | None = None,
) -> ISignerChannel:
    """Build the channel for one connection attempt.

    Raises:
        UnsupportedOperation: for client-initiated pointers, which neither
            channel can serve.
    """
    if descriptor.initiator != "signer":
        msg = "Client-initiated nostrconnect:// pointers are not supported"
        raise UnsupportedOperation(msg)

    try:
        channel_cls = loader()
    except (ProtocolUnavailable, ImportError) as err:
        logger.warning("Primary protocol unavailable: %s", err)
        return EmulatedChannel(
            descriptor, relays, on_auth_url, reason=str(err), default_relay=default_relay
        )

    try:
        return channel_cls(transport, client_keys, descriptor, relays, on_auth_url)
    except PointerStructureError as err:
        logger.warning("Primary protocol rejected the pointer: %s", err)
        return EmulatedChannel(
            descriptor, relays, on_auth_url, reason=str(err), default_relay=default_relay
        )
