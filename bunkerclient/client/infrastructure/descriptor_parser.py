"""Infrastructure layer: connection string parsing.

Accepted forms::

    bunker://<key>?relay=wss://a&relay=wss://b&secret=abc
    bunker://<key>@relay.example.com
    nostrconnect://<key>?relay=wss://a&secret=abc&perms=sign_event,nip04_encrypt

``<key>`` is 64 hex characters or an ``npub1...`` bech32 key.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlsplit

from pydantic import ValidationError

from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import MalformedDescriptor
from bunkerclient.common.models import ConnectionDescriptor

logger = logging.getLogger(__name__)

BUNKER_SCHEME = "bunker"
NOSTRCONNECT_SCHEME = "nostrconnect"
URL_PARAMS = ("nip46", "connect")


def _normalise_key(raw: str, connection_string: str) -> str:
    key = raw.strip()
    if key.startswith("npub1"):
        try:
            key = CryptoUtils.npub_decode(key)
        except ValueError as err:
            msg = f"Invalid npub in connection string: {err}"
            raise MalformedDescriptor(msg, connection_string) from err
    if not CryptoUtils.is_hex_key(key):
        msg = "Remote signer key must be 64 hex characters or an npub"
        raise MalformedDescriptor(msg, connection_string)
    try:
        CryptoUtils.load_public_key(key)
    except ValueError as err:
        msg = "Remote signer key is not a point on secp256k1"
        raise MalformedDescriptor(msg, connection_string) from err
    return key.lower()


def _normalise_relay(relay: str) -> str:
    relay = relay.strip()
    if relay and "://" not in relay:
        relay = f"wss://{relay}"
    return relay


def _unique(values: list[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def parse_connection_string(connection_string: str) -> ConnectionDescriptor:
    """Parse a bunker:// or nostrconnect:// string into a descriptor.

    Raises:
        MalformedDescriptor: if the remote signer key cannot be extracted.
    """
    raw = str(connection_string or "").strip()
    if not raw:
        msg = "No connection string provided"
        raise MalformedDescriptor(msg, connection_string)

    scheme, sep, rest = raw.partition("://")
    scheme = scheme.lower()
    if not sep or scheme not in (BUNKER_SCHEME, NOSTRCONNECT_SCHEME):
        msg = "Connection string must start with bunker:// or nostrconnect://"
        raise MalformedDescriptor(msg, connection_string)

    authority, _, query = rest.partition("?")
    authority = authority.rstrip("/")
    if not authority:
        msg = "Missing remote signer key in connection string"
        raise MalformedDescriptor(msg, connection_string)

    params = parse_qs(query, keep_blank_values=False)
    relays = [_normalise_relay(r) for r in params.get("relay", [])]
    legacy = False

    # Legacy inline form: bunker://<key>@<relay>
    if "@" in authority:
        authority, _, inline_relay = authority.partition("@")
        relays.insert(0, _normalise_relay(inline_relay))
        legacy = True

    remote_pubkey = _normalise_key(authority, connection_string)
    secrets_ = params.get("secret", [])
    permissions: list[str] = []
    for perms in params.get("perms", []):
        permissions.extend(p.strip() for p in perms.split(","))

    try:
        descriptor = ConnectionDescriptor(
            remote_pubkey=remote_pubkey,
            relays=_unique(relays),
            secret=secrets_[0] if secrets_ else None,
            initiator="client" if scheme == NOSTRCONNECT_SCHEME else "signer",
            permissions=_unique(permissions),
            legacy=legacy,
        )
    except ValidationError as err:
        msg = f"Invalid connection string: {err}"
        raise MalformedDescriptor(msg, connection_string) from err

    logger.debug(
        "Parsed %s descriptor for %s... (%d relays, secret=%s)",
        descriptor.initiator,
        remote_pubkey[:16],
        len(descriptor.relays),
        descriptor.secret is not None,
    )
    return descriptor


def connection_string_from_url(url: str) -> str | None:
    """Pull a connection string out of an application URL's query string."""
    params = parse_qs(urlsplit(url).query)
    for name in URL_PARAMS:
        values = params.get(name)
        if values and values[0].strip():
            return values[0].strip()
    return None
