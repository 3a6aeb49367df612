"""
Application layer: one logical connection to a remote signer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable

from bunkerclient.client.application.sign_queue import SignQueue
from bunkerclient.client.domain.entities import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    SessionState,
)
from bunkerclient.client.infrastructure.channel_factory import (
    ProtocolLoader,
    create_channel,
    load_primary_protocol,
)
from bunkerclient.client.infrastructure.clock import AsyncioClock
from bunkerclient.common.config import Config
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import (
    AuthorizationTimeout,
    BunkerError,
    ChannelClosedError,
    RemoteSignerError,
    SessionClosed,
    SessionStateError,
    TransportUnavailable,
    UnsupportedOperation,
)
from bunkerclient.common.logging_utils import short_key

if TYPE_CHECKING:
    from bunkerclient.client.application.authorization import AuthorizationChannel
    from bunkerclient.client.domain.entities import ClientKeys
    from bunkerclient.common.interfaces import IClock, IRelayTransport, ISignerChannel
    from bunkerclient.common.models import ConnectionDescriptor

logger = logging.getLogger(__name__)

DESCRIBE_TOLERATED_ERRORS = (
    asyncio.TimeoutError,
    ChannelClosedError,
    RemoteSignerError,
    TransportUnavailable,
    UnsupportedOperation,
)

SessionListener = Callable[[SessionState, Any], None]


class Session:
    """State machine owning the channel binding to one remote signer.

    ``open()`` drives DISCONNECTED -> CONNECTING -> (AWAITING_AUTHORIZATION)
    -> CONNECTED, or FAILED. The remote key is polled rather than awaited
    once: relay delivery has no latency bound and the human on the other end
    may take a while to approve.
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        client_keys: ClientKeys,
        transport: IRelayTransport,
        authorization: AuthorizationChannel,
        config: Config | None = None,
        *,
        clock: IClock | None = None,
        channel_loader: ProtocolLoader = load_primary_protocol,
        silent: bool = False,
    ):
        self.descriptor = descriptor
        self.client_keys = client_keys
        self.transport = transport
        self.authorization = authorization
        self.config = config or Config()
        self.clock: IClock = clock or AsyncioClock()
        self.channel_loader = channel_loader
        self.silent = silent

        self.state = SessionState.DISCONNECTED
        self.channel: ISignerChannel | None = None
        self.relay: str | None = None
        self.remote_pubkey: str | None = None
        self.supported_methods: frozenset[str] | None = None
        self.failure: BaseException | None = None
        self.queue = SignQueue()

        self._listeners: list[SessionListener] = []
        self._auth_requested = False
        self._closed_errors = 0

    # --- observers ---
    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Register a callback receiving ``(state, detail)`` on every transition."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _transition(self, new_state: SessionState, detail: Any = None) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            msg = f"Illegal session transition {self.state.value} -> {new_state.value}"
            raise SessionStateError(msg)
        logger.info("Session %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state, detail)
            except Exception:
                logger.exception("Session listener failed")

    # --- queries ---
    @property
    def emulated(self) -> bool:
        return bool(self.channel is not None and self.channel.emulated)

    def is_usable(self) -> bool:
        return self.state == SessionState.CONNECTED and self.channel is not None

    def supports(self, method: str) -> bool:
        return self.supported_methods is None or method in self.supported_methods

    def require_channel(self) -> ISignerChannel:
        if not self.is_usable() or self.channel is None:
            msg = f"Remote signer session is {self.state.value}"
            raise SessionClosed(msg)
        return self.channel

    # --- lifecycle ---
    def _bind(self, relay: str) -> None:
        self.relay = relay
        self.channel = create_channel(
            self.transport,
            self.client_keys,
            self.descriptor,
            [relay],
            on_auth_url=self._on_auth_url,
            loader=self.channel_loader,
            default_relay=self.config.DEFAULT_RELAY,
        )
        logger.info(
            "Bound session for %s to %s%s",
            short_key(self.descriptor.remote_pubkey),
            relay,
            " (emulated)" if self.channel.emulated else "",
        )

    async def _release(self) -> None:
        channel, self.channel = self.channel, None
        if channel is not None:
            await channel.close()

    def _on_auth_url(self, url: str) -> None:
        self._auth_requested = True
        if self.state == SessionState.CONNECTING:
            self._transition(SessionState.AWAITING_AUTHORIZATION, url)
        self.authorization.handle_challenge(url, silent=self.silent)

    async def _send_connect(self) -> None:
        assert self.channel is not None
        try:
            await self.clock.wait_for(self.channel.connect(), self.config.CONNECT_TIMEOUT)
            logger.info("Remote signer acknowledged connect")
        except asyncio.TimeoutError:
            logger.warning(
                "connect not answered within %.1fs, continuing with key polling",
                self.config.CONNECT_TIMEOUT,
            )
        except (ChannelClosedError, RemoteSignerError) as err:
            logger.warning("connect failed (%s), continuing with key polling", err)

    async def open(self, relay: str | None = None) -> str:
        """Connect, wait for authorization and return the remote public key.

        Raises:
            TransportUnavailable: no relay usable, or the channel kept closing.
            AuthorizationTimeout: no valid key within MAX_AUTH_WAIT.
            SessionClosed: close() was called while opening.
            UnsupportedOperation: the pointer is a client-initiated nostrconnect:// string.
        """
        self._transition(SessionState.CONNECTING, relay)
        candidates = [relay or self.config.DEFAULT_RELAY]
        if candidates[0] != self.config.DEFAULT_RELAY:
            candidates.append(self.config.DEFAULT_RELAY)

        try:
            for index, candidate in enumerate(candidates):
                self._bind(candidate)
                try:
                    await self._send_connect()
                    break
                except TransportUnavailable as err:
                    await self._release()
                    if index == len(candidates) - 1:
                        raise
                    logger.warning(
                        "Relay %s unavailable (%s), retrying via %s",
                        candidate,
                        err,
                        self.config.DEFAULT_RELAY,
                    )
            pubkey = await self.poll_public_key()
            await self._query_capabilities()
        except BunkerError as err:
            await self._fail(err)
            raise

        self.remote_pubkey = pubkey
        self.authorization.clear()
        self._transition(SessionState.CONNECTED, pubkey)
        return pubkey

    async def poll_public_key(self) -> str:
        """Ask for the remote key every tick until it arrives or time runs out."""
        start = self.clock.monotonic()
        attempts = 0
        closed_errors = 0
        logger.info("Waiting for remote signer authorization...")

        while self.clock.monotonic() - start < self.config.MAX_AUTH_WAIT:
            if self.state in TERMINAL_STATES or self.channel is None:
                msg = "Session closed while waiting for authorization"
                raise SessionClosed(msg)
            attempts += 1
            try:
                pubkey = await self.clock.wait_for(
                    self.channel.get_public_key(), self.config.KEY_POLL_TIMEOUT
                )
            except asyncio.TimeoutError:
                logger.debug("Public key attempt %d timed out", attempts)
                closed_errors = 0
            except (ChannelClosedError, TransportUnavailable) as err:
                closed_errors += 1
                if closed_errors >= self.config.CLOSED_ERROR_LIMIT:
                    msg = f"Remote signer channel closed: {err}"
                    raise TransportUnavailable(msg) from err
                logger.warning(
                    "Signer closed (%d/%d), will retry",
                    closed_errors,
                    self.config.CLOSED_ERROR_LIMIT,
                )
            except (RemoteSignerError, UnsupportedOperation) as err:
                logger.debug("Public key attempt %d error: %s", attempts, err)
                closed_errors = 0
            else:
                if CryptoUtils.is_hex_key(pubkey):
                    logger.info("Public key received after %d attempts", attempts)
                    return pubkey.lower()
                logger.debug("Public key attempt %d returned %r", attempts, pubkey)
            await self.clock.sleep(self.config.KEY_POLL_PAUSE)

        reason = (
            "authorization not completed"
            if self._auth_requested
            else "no authorization URL received"
        )
        msg = f"Connect timeout ({reason})"
        raise AuthorizationTimeout(msg, auth_requested=self._auth_requested)

    async def _query_capabilities(self) -> None:
        if self.channel is None:
            msg = "Session closed while probing capabilities"
            raise SessionClosed(msg)
        try:
            methods = await self.clock.wait_for(
                self.channel.describe(), self.config.DESCRIBE_TIMEOUT
            )
        except DESCRIBE_TOLERATED_ERRORS as err:
            logger.debug("Capability query unavailable (%s); assuming full support", err)
            self.supported_methods = None
            return
        self.supported_methods = frozenset(methods)
        logger.info("Remote signer methods: %s", ", ".join(sorted(methods)))

    async def note_channel_error(self, error: BaseException) -> None:
        """Count per-operation closure reports; repeated closure fails the session."""
        self._closed_errors += 1
        if self._closed_errors >= self.config.CLOSED_ERROR_LIMIT and self.is_usable():
            msg = f"Remote signer channel closed repeatedly: {error}"
            await self._fail(TransportUnavailable(msg), cancel_current=False)

    def note_channel_ok(self) -> None:
        self._closed_errors = 0

    async def _fail(self, error: BaseException, *, cancel_current: bool = True) -> None:
        if self.state in TERMINAL_STATES:
            return
        self.failure = error
        self.authorization.clear()
        self._transition(SessionState.FAILED, error)
        self.queue.close(cancel_current=cancel_current)
        await self._release()
        logger.error("Session failed: %s", error)

    async def close(self) -> None:
        """Release the binding and reject every queued or in-flight request."""
        if self.state == SessionState.CLOSED:
            return
        self.queue.close()
        self.authorization.clear()
        if self.state != SessionState.FAILED:
            self._transition(SessionState.CLOSED)
        await self._release()
