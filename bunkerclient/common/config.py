"""
Configuration settings for the remote signer client.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


class Config:
    """Central configuration class for all client settings."""

    def __init__(self) -> None:
        # Authorization / key retrieval polling
        self.MAX_AUTH_WAIT: float = 45.0  # Give up waiting for the remote key
        self.KEY_POLL_TIMEOUT: float = 1.2  # Per-attempt get_public_key timeout
        self.KEY_POLL_PAUSE: float = 0.5  # Pause between poll attempts
        self.CLOSED_ERROR_LIMIT: int = 3  # Consecutive "closed" reports before failing
        self.CONNECT_TIMEOUT: float = 10.0  # connect request, tolerated on expiry

        # Signing timeouts
        self.SIGN_TIMEOUT: float = 15.0
        self.SIGN_TIMEOUT_EXTENDED: float = 45.0
        self.SIGN_TIMEOUT_MIN: float = 8.0
        self.EXTENDED_TIMEOUT_KINDS: frozenset[int] = frozenset(
            {24242, 24133}  # Blossom auth and NIP-46 events need extra confirmation
        )
        self.REQUEST_TIMEOUT: float = 15.0  # encrypt / decrypt
        self.DESCRIBE_TIMEOUT: float = 3.0

        # Relays
        self.DEFAULT_RELAY: str = os.getenv(
            "BUNKER_DEFAULT_RELAY", "wss://relay.nsec.app"
        )
        self.PREFLIGHT_BUDGET: float = 1.5

        # Persistence
        self.STORE_PATH: Path = Path(
            os.getenv("BUNKER_STORE_PATH", str(Path.home() / ".bunkerclient.json"))
        )

        # Protocol constants
        self.NIP46_EVENT_KIND: int = 24133
        self.PROVIDER_NAME: str = "remote-signer"

        # Logging
        self.LOG_LEVEL: int = logging.getLevelName(
            os.getenv("BUNKER_LOG_LEVEL", "INFO").upper()
        )
