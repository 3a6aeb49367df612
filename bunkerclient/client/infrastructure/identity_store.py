"""Infrastructure layer: the long-lived client keypair.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from bunkerclient.client.domain.entities import ClientKeys
from bunkerclient.client.infrastructure.persistence import CLIENT_SECRET_KEY
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import IdentityStoreError

if TYPE_CHECKING:
    from bunkerclient.common.interfaces import IKeyValueStore

logger = logging.getLogger(__name__)


class KeyPairStore:
    """Generates the client keypair once per store and reuses it afterwards."""

    def __init__(self, store: IKeyValueStore) -> None:
        self.store = store
        self._keys: ClientKeys | None = None
        self._lock = asyncio.Lock()

    def _load(self) -> ClientKeys | None:
        sk_hex = self.store.get(CLIENT_SECRET_KEY)
        if not sk_hex:
            return None
        try:
            secret_key = bytes.fromhex(sk_hex)
        except ValueError as err:
            msg = "Stored client secret key is not valid hex"
            raise IdentityStoreError(msg) from err
        if not CryptoUtils.is_valid_secret_key(secret_key):
            msg = "Stored client secret key is not a valid secp256k1 key"
            raise IdentityStoreError(msg)
        return ClientKeys.from_secret(secret_key)

    async def get_or_create_keypair(self) -> ClientKeys:
        """Return the persisted keypair, creating and persisting it on first use."""
        if self._keys is not None:
            return self._keys
        async with self._lock:
            if self._keys is not None:
                return self._keys
            keys = self._load()
            if keys is None:
                keys = ClientKeys.from_secret(CryptoUtils.generate_secret_key())
                self.store.set(CLIENT_SECRET_KEY, keys.secret_hex)
                logger.info("Generated new client key %s...", keys.public_key[:16])
            self._keys = keys
            return keys
