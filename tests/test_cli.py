import json

from click.testing import CliRunner

from bunkerclient.cli import cli
from bunkerclient.client.infrastructure import preflight
from bunkerclient.client.infrastructure.persistence import (
    CLIENT_SECRET_KEY,
    CONNECT_URI_KEY,
    JsonFileStore,
    SessionRepository,
)
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.models import SessionRecord

# x coordinate of the secp256k1 generator
KEY = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"


def test_cli_help():
    """Test CLI help command."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Usage:" in result.output
    for command in ("parse", "keygen", "preflight", "status", "forget"):
        assert command in result.output


def test_cli_parse():
    """Test parse command prints the descriptor."""
    runner = CliRunner()
    result = runner.invoke(cli, ["parse", f"bunker://{KEY}?relay=wss://example&secret=abc"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["remote_pubkey"] == KEY
    assert data["relays"] == ["wss://example"]
    assert data["secret"] == "abc"
    assert data["npub"] == CryptoUtils.npub_encode(KEY)


def test_cli_parse_malformed():
    """Test parse command fails on a bad string."""
    runner = CliRunner()
    result = runner.invoke(cli, ["parse", "bunker://nope"])

    assert result.exit_code != 0
    assert "Error" in result.output


def test_cli_keygen(tmp_path):
    """Test keygen command creates and reuses the client key."""
    store_path = tmp_path / "store.json"
    runner = CliRunner()

    first = runner.invoke(cli, ["keygen", "--store", str(store_path)])
    second = runner.invoke(cli, ["keygen", "--store", str(store_path)])

    assert first.exit_code == 0
    secret_hex = JsonFileStore(store_path).get(CLIENT_SECRET_KEY)
    assert secret_hex is not None
    pubkey = CryptoUtils.public_key_hex(bytes.fromhex(secret_hex))
    assert f"pubkey: {pubkey}" in first.output
    assert f"pubkey: {pubkey}" in second.output
    assert "npub1" in first.output


def test_cli_status_and_forget(tmp_path):
    """Test status hides the secret and forget clears the record."""
    store_path = tmp_path / "store.json"
    store = JsonFileStore(store_path)
    store.set(CLIENT_SECRET_KEY, "11" * 32)
    SessionRepository(store).save(
        SessionRecord(
            connected=True,
            remote_pubkey=KEY,
            connection_string=f"bunker://{KEY}?relay=wss://x&secret=hunter2",
        )
    )
    runner = CliRunner()

    status = runner.invoke(cli, ["status", "--store", str(store_path)])
    forget = runner.invoke(cli, ["forget", "--store", str(store_path)])
    after = runner.invoke(cli, ["status", "--store", str(store_path)])

    assert status.exit_code == 0
    assert f"remote pubkey: {KEY}" in status.output
    assert "restorable: True" in status.output
    assert "hunter2" not in status.output
    assert "secret=***" in status.output
    assert forget.exit_code == 0
    assert JsonFileStore(store_path).get(CONNECT_URI_KEY) is None
    assert JsonFileStore(store_path).get(CLIENT_SECRET_KEY) == "11" * 32
    assert "No remote signer session stored" in after.output


def test_cli_preflight(monkeypatch):
    """Test preflight prints the first reachable relay."""

    class Response:
        status_code = 200

    def fake_head(url, timeout, allow_redirects):
        if "down" in url:
            raise preflight.requests.ConnectionError("refused")
        return Response()

    monkeypatch.setattr(preflight.requests, "head", fake_head)
    runner = CliRunner()

    ok = runner.invoke(cli, ["preflight", "wss://down.example", "wss://up.example"])
    failed = runner.invoke(cli, ["preflight", "wss://down.example", "--budget", "0.5"])

    assert ok.exit_code == 0
    assert "wss://up.example" in ok.output
    assert failed.exit_code != 0
    assert "No reachable relay" in failed.output
