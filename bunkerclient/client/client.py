"""
Remote signer client: login, restore and signer access.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from bunkerclient.client.application.authorization import AuthorizationChannel
from bunkerclient.client.application.retry_policy import SignRetryPolicy
from bunkerclient.client.application.session import Session
from bunkerclient.client.application.signer import RemoteSigner
from bunkerclient.client.domain.entities import SessionState
from bunkerclient.client.infrastructure.channel_factory import (
    ProtocolLoader,
    load_primary_protocol,
)
from bunkerclient.client.infrastructure.config_loader import ConfigLoader
from bunkerclient.client.infrastructure.descriptor_parser import parse_connection_string
from bunkerclient.client.infrastructure.identity_store import KeyPairStore
from bunkerclient.client.infrastructure.persistence import SessionRepository
from bunkerclient.client.infrastructure.preflight import select_relay
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import (
    BunkerError,
    ConnectionInProgress,
    MalformedDescriptor,
    SessionClosed,
)
from bunkerclient.common.logging_utils import short_key
from bunkerclient.common.models import Capabilities, Identity, SessionRecord

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from bunkerclient.client.application.authorization import AuthObserver, UrlOpener
    from bunkerclient.common.interfaces import IClock, IKeyValueStore, IRelayTransport
    from bunkerclient.common.models import ClientConfig, ConnectionDescriptor

logger = logging.getLogger(__name__)

RelaySelector = Callable[..., "Awaitable[str | None]"]


class BunkerClient:
    """Logs in to a remote signer and hands out a :class:`RemoteSigner`.

    Example:
        client = BunkerClient(transport)
        identity = await client.login("bunker://<hex>?relay=wss://relay.example")
        signed = await client.get_signer().sign_event({"kind": 1, "content": "hi"})
    """

    def __init__(
        self,
        transport: IRelayTransport,
        store: IKeyValueStore | None = None,
        client_config: ClientConfig | None = None,
        *,
        clock: IClock | None = None,
        opener: UrlOpener | None = None,
        channel_loader: ProtocolLoader = load_primary_protocol,
        preflight: RelaySelector = select_relay,
    ):
        self.loader = ConfigLoader(client_config)
        self.config = self.loader.config
        self.transport = transport
        self.store: IKeyValueStore = store if store is not None else self.loader.open_store()
        self.clock = clock
        self.channel_loader = channel_loader
        self.preflight = preflight

        self.keypairs = KeyPairStore(self.store)
        self.repository = SessionRepository(self.store)
        self.authorization = AuthorizationChannel(
            self.store, interactive=self.loader.interactive, opener=opener
        )

        self.session: Session | None = None
        self._signer: RemoteSigner | None = None
        self._identity: Identity | None = None
        self._logging_in = False

    # --- queries ---
    @property
    def identity(self) -> Identity | None:
        return self._identity if self.is_logged_in() else None

    @property
    def state(self) -> SessionState:
        return self.session.state if self.session else SessionState.DISCONNECTED

    def is_logged_in(self) -> bool:
        return self.session is not None and self.session.is_usable()

    def observe_authorization(self, handler: AuthObserver) -> Callable[[], None]:
        """Receive challenges that are not opened in a browser."""
        return self.authorization.observe(handler)

    def get_signer(self) -> RemoteSigner:
        if self._signer is None or not self.is_logged_in():
            msg = "Not logged in to a remote signer"
            raise SessionClosed(msg)
        return self._signer

    # --- lifecycle ---
    async def _choose_relay(self, descriptor: ConnectionDescriptor) -> str:
        relays = list(descriptor.relays)
        selected = await self.preflight(relays, self.loader.preflight_budget) if relays else None
        if selected:
            return selected
        if relays:
            logger.info("Preflight inconclusive, using %s", relays[0])
            return relays[0]
        return self.config.DEFAULT_RELAY

    def _build_identity(self, session: Session, pubkey: str) -> Identity:
        if self._identity is not None and self._identity.pubkey == pubkey:
            if self._identity.emulated == session.emulated:
                return self._identity
        return Identity(
            pubkey=pubkey,
            npub=CryptoUtils.npub_encode(pubkey),
            provider=self.config.PROVIDER_NAME,
            capabilities=Capabilities(
                can_sign=session.supports("sign_event"),
                can_encrypt=session.supports("nip04_encrypt") or session.supports("nip44_encrypt"),
                can_decrypt=session.supports("nip04_decrypt") or session.supports("nip44_decrypt"),
            ),
            emulated=session.emulated,
        )

    async def login(self, connection_string: str, *, silent: bool = False) -> Identity:
        """Connect to the signer named by ``connection_string``.

        With ``silent=True`` authorization challenges are only delivered to
        observers, never opened in a browser.

        Raises:
            ConnectionInProgress: another login is running on this client.
            MalformedDescriptor: the connection string cannot be parsed.
            TransportUnavailable, AuthorizationTimeout: the session failed to open.
        """
        if self._logging_in:
            msg = "A remote signer login is already in progress"
            raise ConnectionInProgress(msg)
        self._logging_in = True
        try:
            return await self._login(connection_string.strip(), silent=silent)
        finally:
            self._logging_in = False

    async def _login(self, connection_string: str, *, silent: bool) -> Identity:
        descriptor = parse_connection_string(connection_string)
        client_keys = await self.keypairs.get_or_create_keypair()
        await self._close_session()

        relay = await self._choose_relay(descriptor)
        session = Session(
            descriptor,
            client_keys,
            self.transport,
            self.authorization,
            self.config,
            clock=self.clock,
            channel_loader=self.channel_loader,
            silent=silent,
        )
        self.session = session
        logger.info("Logging in to %s via %s", short_key(descriptor.remote_pubkey), relay)
        try:
            pubkey = await session.open(relay)
        except BaseException:
            self.session = None
            await session.close()
            raise

        self._signer = RemoteSigner(session, SignRetryPolicy(session))
        self._identity = self._build_identity(session, pubkey)
        self.repository.save(
            SessionRecord(
                connected=True,
                remote_pubkey=pubkey,
                connection_string=connection_string,
                client_secret_key=client_keys.secret_hex,
            )
        )
        logger.info(
            "Logged in as %s%s", self._identity.npub, " (emulated)" if session.emulated else ""
        )
        return self._identity

    async def _close_session(self) -> None:
        session, self.session = self.session, None
        self._signer = None
        if session is not None:
            await session.close()

    async def logout(self) -> None:
        """Close the session and forget it; the client key is kept."""
        await self._close_session()
        self._identity = None
        self.repository.clear()
        logger.info("Logged out of remote signer")

    async def restore(self) -> Identity | None:
        """Silently reconnect to the persisted session, if any."""
        record = self.repository.load()
        if record is None or not record.is_restorable():
            return None
        assert record.connection_string is not None
        try:
            return await self.login(record.connection_string, silent=True)
        except MalformedDescriptor:
            logger.warning("Stored connection string is invalid, forgetting it")
            self.repository.clear()
        except ConnectionInProgress:
            raise
        except BunkerError as err:
            logger.warning("Could not restore remote signer session: %s", err)
        return None
