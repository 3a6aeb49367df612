"""Infrastructure layer: Configuration resolution and store construction.
"""

from __future__ import annotations

import logging

from bunkerclient.client.infrastructure.persistence import JsonFileStore
from bunkerclient.common import setup_logger
from bunkerclient.common.config import Config
from bunkerclient.common.models import ClientConfig


class ConfigLoader:
    """Resolves per-client overrides against the global Config defaults."""

    def __init__(self, client_config: ClientConfig | None = None):
        client_config = client_config or ClientConfig()
        self.config: Config = Config()

        self.default_relay: str = client_config.default_relay or self.config.DEFAULT_RELAY
        self.store_path = client_config.store_path or self.config.STORE_PATH
        self.log_level: int = (
            client_config.log_level
            if client_config.log_level is not None
            else self.config.LOG_LEVEL
        )
        self.max_auth_wait: float = (
            client_config.max_auth_wait
            if client_config.max_auth_wait is not None
            else self.config.MAX_AUTH_WAIT
        )
        self.key_poll_timeout: float = (
            client_config.key_poll_timeout
            if client_config.key_poll_timeout is not None
            else self.config.KEY_POLL_TIMEOUT
        )
        self.sign_timeout: float = (
            client_config.sign_timeout
            if client_config.sign_timeout is not None
            else self.config.SIGN_TIMEOUT
        )
        self.preflight_budget: float = (
            client_config.preflight_budget
            if client_config.preflight_budget is not None
            else self.config.PREFLIGHT_BUDGET
        )
        self.interactive: bool = (
            client_config.interactive if client_config.interactive is not None else True
        )

        # Apply resolved timing back onto the Config used by the session
        self.config.DEFAULT_RELAY = self.default_relay
        self.config.MAX_AUTH_WAIT = self.max_auth_wait
        self.config.KEY_POLL_TIMEOUT = self.key_poll_timeout
        self.config.SIGN_TIMEOUT = self.sign_timeout
        self.config.PREFLIGHT_BUDGET = self.preflight_budget

        # Setup logging
        self.logger = logging.getLogger("bunkerclient")
        setup_logger(self.logger, self.log_level)

    def open_store(self) -> JsonFileStore:
        """Create the default JSON file store at the configured path."""
        return JsonFileStore(self.store_path)
