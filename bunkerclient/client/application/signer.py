"""
Application layer: the signer facade handed to callers after login.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bunkerclient.client.domain.entities import RequestKind
from bunkerclient.common.decorators import requires_open_session
from bunkerclient.common.exceptions import UnsupportedOperation

if TYPE_CHECKING:
    from bunkerclient.client.application.retry_policy import SignRetryPolicy
    from bunkerclient.client.application.session import Session
    from bunkerclient.common.models import SignedEvent, UnsignedEvent

logger = logging.getLogger(__name__)

ENCRYPTION_SCHEMES = ("nip04", "nip44")


class RemoteSigner:
    """Signs and encrypts through the remote signer, one request at a time.

    Every operation goes through the session's sign queue, so concurrent
    callers are served in the order they called.
    """

    def __init__(self, session: Session, policy: SignRetryPolicy):
        self.session = session
        self.policy = policy

    @property
    def emulated(self) -> bool:
        return self.session.emulated

    @requires_open_session()
    async def get_public_key(self) -> str:
        return self.session.remote_pubkey or ""

    @requires_open_session()
    async def sign_event(
        self, event: UnsignedEvent | dict[str, Any], timeout: float | None = None
    ) -> SignedEvent:
        """Sign ``event`` remotely.

        Raises:
            SigningFailed: every attempt failed or timed out.
            SessionClosed: the session closed before or during the request.
        """
        return await self.session.queue.enqueue(lambda: self.policy.sign(event, timeout))

    def _check_scheme(self, scheme: str, action: str) -> str:
        if scheme not in ENCRYPTION_SCHEMES:
            msg = f"Unknown encryption scheme: {scheme}"
            raise UnsupportedOperation(msg)
        method = f"{scheme}_{action}"
        if not self.session.supports(method):
            msg = f"Remote signer does not support {method}"
            raise UnsupportedOperation(msg)
        return method

    @requires_open_session()
    async def encrypt(
        self, recipient: str, plaintext: str, scheme: str = "nip04", timeout: float | None = None
    ) -> str:
        self._check_scheme(scheme, "encrypt")
        return await self.session.queue.enqueue(
            lambda: self.policy.run(
                RequestKind.ENCRYPT,
                lambda channel: channel.encrypt(scheme, recipient, plaintext),
                timeout,
            )
        )

    @requires_open_session()
    async def decrypt(
        self, sender: str, ciphertext: str, scheme: str = "nip04", timeout: float | None = None
    ) -> str:
        self._check_scheme(scheme, "decrypt")
        return await self.session.queue.enqueue(
            lambda: self.policy.run(
                RequestKind.DECRYPT,
                lambda channel: channel.decrypt(scheme, sender, ciphertext),
                timeout,
            )
        )
