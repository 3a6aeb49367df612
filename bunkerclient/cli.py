"""
Command-line interface for the remote signer client.
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path

import click

from bunkerclient.client.infrastructure.config_loader import ConfigLoader
from bunkerclient.client.infrastructure.descriptor_parser import parse_connection_string
from bunkerclient.client.infrastructure.identity_store import KeyPairStore
from bunkerclient.client.infrastructure.persistence import (
    LAST_AUTH_URL_KEY,
    JsonFileStore,
    SessionRepository,
)
from bunkerclient.client.infrastructure.preflight import select_relay
from bunkerclient.common.crypto import CryptoUtils
from bunkerclient.common.exceptions import BunkerError
from bunkerclient.common.models import ClientConfig

SECRET_RE = re.compile(r"(secret=)[^&]*")

store_option = click.option(
    "--store",
    "store_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Session store file (default: from BUNKER_STORE_PATH env or ~/.bunkerclient.json)",
)


def _open_store(store_path: Path | None) -> JsonFileStore:
    return ConfigLoader(ClientConfig(store_path=store_path)).open_store()


@click.group()
def cli() -> None:
    """Remote signer (NIP-46 bunker) client CLI"""


@cli.command()
@click.argument("connection_string")
def parse(connection_string: str) -> None:
    """Parse a bunker:// or nostrconnect:// connection string"""
    try:
        descriptor = parse_connection_string(connection_string)
    except BunkerError as err:
        raise click.ClickException(str(err)) from err
    data = descriptor.model_dump(mode="json")
    data["npub"] = CryptoUtils.npub_encode(descriptor.remote_pubkey)
    data["canonical"] = descriptor.to_connection_string()
    click.echo(json.dumps(data, indent=2))


@cli.command()
@store_option
def keygen(store_path: Path | None) -> None:
    """Show the client key, generating it on first use"""
    store = _open_store(store_path)
    try:
        keys = asyncio.run(KeyPairStore(store).get_or_create_keypair())
    except BunkerError as err:
        raise click.ClickException(str(err)) from err
    click.echo(f"pubkey: {keys.public_key}")
    click.echo(f"npub: {CryptoUtils.npub_encode(keys.public_key)}")


@cli.command()
@click.argument("relays", nargs=-1, required=True)
@click.option("--budget", default=None, type=float, help="Total check time in seconds")
def preflight(relays: tuple[str, ...], budget: float | None) -> None:
    """Check relays and print the first reachable one"""
    loader = ConfigLoader(ClientConfig(preflight_budget=budget))
    selected = asyncio.run(select_relay(list(relays), loader.preflight_budget))
    if selected is None:
        msg = f"No reachable relay, the client would use {loader.default_relay}"
        raise click.ClickException(msg)
    click.echo(selected)


@cli.command()
@store_option
def status(store_path: Path | None) -> None:
    """Show the persisted session"""
    store = _open_store(store_path)
    record = SessionRepository(store).load()
    if record is None:
        click.echo("No remote signer session stored")
        return
    click.echo(f"connected: {record.connected}")
    if record.remote_pubkey:
        click.echo(f"remote pubkey: {record.remote_pubkey}")
    if record.connection_string:
        redacted = SECRET_RE.sub(r"\1***", record.connection_string)
        click.echo(f"connection: {redacted}")
    click.echo(f"restorable: {record.is_restorable()}")
    last_url = store.get(LAST_AUTH_URL_KEY)
    if last_url:
        click.echo(f"last authorization URL: {last_url}")


@cli.command()
@store_option
def forget(store_path: Path | None) -> None:
    """Forget the persisted session (the client key is kept)"""
    SessionRepository(_open_store(store_path)).clear()
    click.echo("Session forgotten")


if __name__ == "__main__":
    cli()
