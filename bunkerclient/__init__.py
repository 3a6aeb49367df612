# Remote signer (NIP-46 bunker) client

from bunkerclient.client.application.signer import RemoteSigner
from bunkerclient.client.client import BunkerClient
from bunkerclient.client.infrastructure.descriptor_parser import (
    connection_string_from_url,
    parse_connection_string,
)
from bunkerclient.common.exceptions import (
    AuthorizationTimeout,
    BunkerError,
    ConnectionInProgress,
    IdentityStoreError,
    MalformedDescriptor,
    SessionClosed,
    SigningFailed,
    TransportUnavailable,
    UnsupportedOperation,
)
from bunkerclient.common.models import ConnectionDescriptor, Identity

__all__ = [
    "AuthorizationTimeout",
    "BunkerClient",
    "BunkerError",
    "ConnectionDescriptor",
    "ConnectionInProgress",
    "Identity",
    "IdentityStoreError",
    "MalformedDescriptor",
    "RemoteSigner",
    "SessionClosed",
    "SigningFailed",
    "TransportUnavailable",
    "UnsupportedOperation",
    "connection_string_from_url",
    "parse_connection_string",
]
