"""
Application layer: serialization of remote operations (the sign lock).
"""

from __future__ import annotations

import asyncio
import collections
import logging
from typing import TYPE_CHECKING, Any

from bunkerclient.common.exceptions import SessionClosed

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class SignQueue:
    """FIFO queue that runs remote operations strictly one at a time.

    The remote signer is one stateful conversation with a human-operated
    device, so a task only starts once the previous one has resolved,
    failed or timed out.
    """

    def __init__(self) -> None:
        self._queue: collections.deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] = (
            collections.deque()
        )
        self._worker: asyncio.Task[None] | None = None
        self._current: asyncio.Future[Any] | None = None
        self._closed = False

    @property
    def size(self) -> int:
        """Queued tasks plus the one in flight."""
        return len(self._queue) + (1 if self._current is not None else 0)

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, task_fn: Callable[[], Awaitable[Any]]) -> asyncio.Future[Any]:
        """Append a task; the returned future resolves with its result."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        if self._closed:
            future.set_exception(SessionClosed("Remote signer session is closed"))
            return future

        self._queue.append((task_fn, future))
        logger.debug("Sign lock queued task, queue size: %d", self.size)
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        while self._queue and not self._closed:
            task_fn, future = self._queue.popleft()
            if future.done():
                continue
            self._current = asyncio.ensure_future(task_fn())
            try:
                result = await self._current
            except asyncio.CancelledError:
                if not future.done():
                    future.set_exception(SessionClosed("Remote signer session is closed"))
            except Exception as err:  # noqa: BLE001
                if not future.done():
                    future.set_exception(err)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._current = None
                logger.debug("Sign lock released, queue size: %d", self.size)

    def close(self, *, cancel_current: bool = True) -> None:
        """Reject queued tasks and, by default, cancel the one in flight."""
        if self._closed:
            return
        self._closed = True
        error = SessionClosed("Remote signer session is closed")
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.set_exception(error)
        if cancel_current and self._current is not None and not self._current.done():
            self._current.cancel()
