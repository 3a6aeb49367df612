"""
Application layer: surfacing authorization challenges.
"""

from __future__ import annotations

import asyncio
import logging
import time
import webbrowser
from typing import TYPE_CHECKING, Callable

from bunkerclient.client.infrastructure.persistence import LAST_AUTH_URL_KEY
from bunkerclient.common.models import PendingAuthorization

if TYPE_CHECKING:
    from bunkerclient.common.interfaces import IKeyValueStore

logger = logging.getLogger(__name__)

AuthObserver = Callable[[PendingAuthorization], None]
UrlOpener = Callable[[str], bool]


class AuthorizationChannel:
    """Persists challenge URLs and hands them to the user or to observers.

    Interactive, non-silent challenges go to ``opener`` (the system browser by
    default). Silent challenges, for example during automatic reconnect, are
    delivered to the handlers registered with :meth:`observe`.
    """

    def __init__(
        self,
        store: IKeyValueStore,
        *,
        interactive: bool = True,
        opener: UrlOpener | None = None,
    ):
        self.store = store
        self.interactive = interactive
        self.opener: UrlOpener = opener or webbrowser.open
        self.pending: PendingAuthorization | None = None
        self._observers: list[AuthObserver] = []
        self._resolved = asyncio.Event()

    def observe(self, handler: AuthObserver) -> Callable[[], None]:
        """Register a challenge handler; returns a function that unregisters it."""
        self._observers.append(handler)

        def unsubscribe() -> None:
            if handler in self._observers:
                self._observers.remove(handler)

        return unsubscribe

    def handle_challenge(self, url: str, *, silent: bool = False) -> PendingAuthorization:
        """Record a challenge and surface it. Never blocks."""
        self.pending = PendingAuthorization(url=url, issued_at=time.time())
        self._resolved.clear()
        self.store.set(LAST_AUTH_URL_KEY, url)
        logger.info("Authorization required: %s", url)

        if self.interactive and not silent:
            self._open(url)
        else:
            self._notify(self.pending)
        return self.pending

    def _open(self, url: str) -> None:
        try:
            opened = self.opener(url)
        except (webbrowser.Error, OSError) as err:
            logger.warning("Failed to open authorization URL: %s", err)
            opened = False
        if not opened:
            logger.warning("Could not open a browser; open this URL to authorize: %s", url)
            self._notify(self.pending)

    def _notify(self, pending: PendingAuthorization | None) -> None:
        if pending is None:
            return
        for handler in list(self._observers):
            try:
                handler(pending)
            except Exception:
                logger.exception("Authorization observer failed")

    def last_url(self) -> str | None:
        return self.store.get(LAST_AUTH_URL_KEY)

    def clear(self) -> None:
        """Drop the pending challenge once the session leaves authorization."""
        self.pending = None
        self._resolved.set()

    async def wait_until_resolved(self, timeout: float | None = None) -> bool:
        """Poll point for callers: True once no challenge is pending."""
        if self.pending is None:
            return True
        try:
            await asyncio.wait_for(self._resolved.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True
