"""
Application layer: per-operation timeouts and the sign retry cascade.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from bunkerclient.client.domain.entities import PendingRequest, RequestKind
from bunkerclient.common.exceptions import (
    BunkerError,
    ChannelClosedError,
    SessionClosed,
    SigningFailed,
    UnsupportedOperation,
)
from bunkerclient.common.models import SignedEvent, UnsignedEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from bunkerclient.client.application.session import Session
    from bunkerclient.common.interfaces import ISignerChannel

logger = logging.getLogger(__name__)

T = TypeVar("T")

PASSTHROUGH_ERRORS = (SessionClosed, UnsupportedOperation)


class SignRetryPolicy:
    """Wraps remote calls with kind-aware timeouts and fallback payloads.

    ``sign`` tries the event with the pubkey attached, then without it (some
    signers reject the field), then once more with the pubkey at double the
    timeout (at least the extended timeout).
    """

    def __init__(self, session: Session):
        self.session = session
        self.config = session.config
        self.clock = session.clock

    def max_timeout(self, kind: int) -> float:
        if kind in self.config.EXTENDED_TIMEOUT_KINDS:
            return self.config.SIGN_TIMEOUT_EXTENDED
        return self.config.SIGN_TIMEOUT

    def effective_timeout(self, kind: int, requested: float | None = None) -> float:
        limit = self.max_timeout(kind)
        if requested is None:
            return limit
        return max(self.config.SIGN_TIMEOUT_MIN, min(requested, limit))

    def prepare(self, event: UnsignedEvent | dict[str, Any]) -> dict[str, Any]:
        """Normalise an event for signing; id and sig are left to the signer."""
        try:
            if isinstance(event, UnsignedEvent):
                unsigned = event
            else:
                data = {k: v for k, v in dict(event).items() if k not in ("id", "sig")}
                if data.get("content") is None:
                    data["content"] = ""
                elif not isinstance(data["content"], str):
                    data["content"] = str(data["content"])
                unsigned = UnsignedEvent.model_validate(data)
        except ValidationError as err:
            msg = f"signEvent: invalid event ({err.error_count()} errors, kind required)"
            raise SigningFailed(msg, err) from err

        prepared: dict[str, Any] = {
            "kind": unsigned.kind,
            "content": unsigned.content,
            "tags": [list(tag) for tag in unsigned.tags],
            "created_at": unsigned.created_at or int(time.time()),
        }
        pubkey = self.session.remote_pubkey or unsigned.pubkey
        if pubkey:
            prepared["pubkey"] = pubkey
        return prepared

    async def _attempt(
        self, request: PendingRequest, payload: dict[str, Any], timeout: float
    ) -> SignedEvent:
        channel = self.session.require_channel()
        request.attempts += 1
        request.deadline = self.clock.monotonic() + timeout
        try:
            result = await self.clock.wait_for(channel.sign_event(payload), timeout)
        except ChannelClosedError as err:
            await self.session.note_channel_error(err)
            raise
        self.session.note_channel_ok()
        return result

    async def sign(
        self, event: UnsignedEvent | dict[str, Any], timeout: float | None = None
    ) -> SignedEvent:
        prepared = self.prepare(event)
        kind = prepared["kind"]
        effective = self.effective_timeout(kind, timeout)
        long_timeout = max(effective * 2, self.config.SIGN_TIMEOUT_EXTENDED)

        without_pubkey = {k: v for k, v in prepared.items() if k != "pubkey"}
        with_pubkey = dict(without_pubkey)
        if self.session.remote_pubkey:
            with_pubkey["pubkey"] = self.session.remote_pubkey
        cascade = [
            ("with pubkey", prepared, effective),
            ("without pubkey", without_pubkey, effective),
            ("final retry", with_pubkey, long_timeout),
        ]

        request = PendingRequest(kind=RequestKind.SIGN_EVENT, payload=prepared)
        logger.info("Signing event kind %s with timeout %.1fs", kind, effective)
        last_error: BaseException | None = None
        for label, payload, attempt_timeout in cascade:
            try:
                signed = await self._attempt(request, payload, attempt_timeout)
            except PASSTHROUGH_ERRORS:
                raise
            except asyncio.TimeoutError as err:
                last_error = err
                logger.warning(
                    "Sign attempt %d (%s) timed out after %.1fs",
                    request.attempts,
                    label,
                    attempt_timeout,
                )
            except BunkerError as err:
                last_error = err
                logger.warning("Sign attempt %d (%s) failed: %s", request.attempts, label, err)
            else:
                logger.info("Event kind %s signed after %d attempts", kind, request.attempts)
                return signed

        logger.error("All %d sign attempts failed", request.attempts)
        msg = f"Signing failed: {last_error or 'timeout'}"
        raise SigningFailed(msg, last_error)

    async def run(
        self,
        kind: RequestKind,
        call: Callable[[ISignerChannel], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """Single timed attempt for encrypt/decrypt style requests."""
        channel = self.session.require_channel()
        timeout = timeout or self.config.REQUEST_TIMEOUT
        request = PendingRequest(kind=kind, payload=None, attempts=1)
        request.deadline = self.clock.monotonic() + timeout
        try:
            result = await self.clock.wait_for(call(channel), timeout)
        except PASSTHROUGH_ERRORS:
            raise
        except asyncio.TimeoutError as err:
            msg = f"{kind.value} timed out after {timeout:.1f}s"
            raise SigningFailed(msg, err) from err
        except ChannelClosedError as err:
            await self.session.note_channel_error(err)
            msg = f"{kind.value} failed: {err}"
            raise SigningFailed(msg, err) from err
        except BunkerError as err:
            msg = f"{kind.value} failed: {err}"
            raise SigningFailed(msg, err) from err
        self.session.note_channel_ok()
        return result
