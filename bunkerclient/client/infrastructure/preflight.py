"""Infrastructure layer: relay reachability preflight.
"""

from __future__ import annotations

import asyncio
import logging
import time

import requests

logger = logging.getLogger(__name__)

HTTP_ERROR = 400


def head_url(relay: str) -> str:
    """Map a websocket relay address onto its HTTP equivalent."""
    if relay.startswith("wss://"):
        return "https://" + relay[len("wss://"):]
    if relay.startswith("ws://"):
        return "http://" + relay[len("ws://"):]
    return relay


def check_relay(relay: str, timeout: float) -> bool:
    """Send one HEAD request; any non-error status counts as reachable."""
    try:
        r = requests.head(head_url(relay), timeout=timeout, allow_redirects=True)
    except requests.RequestException as err:
        logger.debug("Preflight %s failed: %s", relay, err)
        return False
    return r.status_code < HTTP_ERROR


async def select_relay(candidates: list[str], budget: float = 1.5) -> str | None:
    """Return the first candidate that answers within the shared budget.

    Best effort: None means nothing answered and the caller should use its
    default relay.
    """
    deadline = time.monotonic() + budget
    for relay in candidates:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.debug("Preflight budget exhausted before %s", relay)
            break
        try:
            reachable = await asyncio.wait_for(
                asyncio.to_thread(check_relay, relay, remaining), remaining
            )
        except asyncio.TimeoutError:
            reachable = False
        if reachable:
            logger.info("Preflight selected relay %s", relay)
            return relay
    logger.info("Preflight found no reachable relay among %d candidates", len(candidates))
    return None
