import logging
from pathlib import Path
from typing import Any

from bunkerclient.client.infrastructure.config_loader import ConfigLoader
from bunkerclient.client.infrastructure.persistence import JsonFileStore
from bunkerclient.common.config import Config
from bunkerclient.common.models import ClientConfig


def test_config_timing_defaults() -> None:
    config = Config()
    assert config.MAX_AUTH_WAIT == 45.0  # noqa: PLR2004
    assert config.KEY_POLL_TIMEOUT == 1.2  # noqa: PLR2004
    assert config.KEY_POLL_PAUSE == 0.5  # noqa: PLR2004
    assert config.CLOSED_ERROR_LIMIT == 3  # noqa: PLR2004
    assert config.SIGN_TIMEOUT == 15.0  # noqa: PLR2004
    assert config.SIGN_TIMEOUT_EXTENDED == 45.0  # noqa: PLR2004
    assert config.SIGN_TIMEOUT_MIN == 8.0  # noqa: PLR2004
    assert config.EXTENDED_TIMEOUT_KINDS == frozenset({24242, 24133})
    assert config.PREFLIGHT_BUDGET == 1.5  # noqa: PLR2004


def test_config_env_overrides(monkeypatch: Any, tmp_path: Path) -> None:
    """Test environment variables are read when Config is created."""
    monkeypatch.setenv("BUNKER_DEFAULT_RELAY", "wss://relay.test")
    monkeypatch.setenv("BUNKER_STORE_PATH", str(tmp_path / "s.json"))
    monkeypatch.setenv("BUNKER_LOG_LEVEL", "debug")

    config = Config()

    assert config.DEFAULT_RELAY == "wss://relay.test"
    assert config.STORE_PATH == tmp_path / "s.json"
    assert config.LOG_LEVEL == logging.DEBUG


def test_config_default_relay(monkeypatch: Any) -> None:
    monkeypatch.delenv("BUNKER_DEFAULT_RELAY", raising=False)
    assert Config().DEFAULT_RELAY == "wss://relay.nsec.app"


def test_config_loader_overrides(tmp_path: Path) -> None:
    """Test per-client overrides win over the global defaults."""
    loader = ConfigLoader(
        ClientConfig(
            default_relay="wss://mine.example",
            store_path=tmp_path / "store.json",
            max_auth_wait=10.0,
            sign_timeout=20.0,
            interactive=False,
        )
    )

    assert loader.config.DEFAULT_RELAY == "wss://mine.example"
    assert loader.config.MAX_AUTH_WAIT == 10.0  # noqa: PLR2004
    assert loader.config.SIGN_TIMEOUT == 20.0  # noqa: PLR2004
    assert loader.config.KEY_POLL_TIMEOUT == 1.2  # noqa: PLR2004
    assert not loader.interactive
    store = loader.open_store()
    assert isinstance(store, JsonFileStore)
    assert store.file_path == tmp_path / "store.json"


def test_config_loader_defaults() -> None:
    loader = ConfigLoader()
    assert loader.interactive
    assert loader.preflight_budget == 1.5  # noqa: PLR2004
    assert loader.logger.name == "bunkerclient"
