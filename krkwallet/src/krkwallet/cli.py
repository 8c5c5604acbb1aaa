"""
Kryptokrona Wallet CLI - Generate keys, inspect the daemon and sync a wallet.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys

import typer
from loguru import logger
from pydantic import ValidationError

from krkcore.address import AddressError, validate_address
from krkcore.constants import COIN, DECIMAL_PLACES
from krkcore.models import WalletKeys
from krkwallet.config import Settings, get_settings

app = typer.Typer(
    name="krk-wallet",
    help="Kryptokrona Wallet Sync",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def format_amount(atomic: int) -> str:
    """Human readable amount, e.g. ``XKR 12,345.01``"""
    whole, fraction = divmod(atomic, COIN)
    return f"XKR {whole:,}.{fraction:0{DECIMAL_PLACES}d}"


def load_keys(
    private_spend_key: str | None,
    private_view_key: str | None = None,
    public_spend_key: str | None = None,
) -> WalletKeys:
    """
    Build the wallet key set.

    With only the private spend key, the wallet is treated as deterministic
    and the view key is derived from it.
    """
    if not private_spend_key:
        raise ValueError("Private spend key required")
    if private_view_key is None and public_spend_key is None:
        return WalletKeys.from_private_spend_key(private_spend_key)
    if private_view_key is None or public_spend_key is None:
        raise ValueError("Provide both the private view key and public spend key, or neither")
    return WalletKeys(
        private_view_key=private_view_key,
        public_spend_key=public_spend_key,
        private_spend_key=private_spend_key,
    )


@app.command()
def generate() -> None:
    """Generate a new deterministic wallet key set."""
    setup_logging()

    keys = WalletKeys.generate()
    typer.echo("\n" + "=" * 80)
    typer.echo("GENERATED WALLET KEYS - KEEP THE PRIVATE KEYS SAFE!")
    typer.echo("=" * 80)
    typer.echo(f"\nPrivate spend key: {keys.private_spend_key}")
    typer.echo(f"Private view key:  {keys.private_view_key}")
    typer.echo(f"Public spend key:  {keys.public_spend_key}")
    typer.echo(f"Public view key:   {keys.public_view_key}")
    typer.echo(f"Address:           {keys.address}\n")
    typer.echo("=" * 80)
    typer.echo("Anyone with the private spend key can spend your coins.")
    typer.echo("=" * 80 + "\n")


@app.command("validate-address")
def validate_address_command(
    address: str = typer.Argument(..., help="XKR address to check"),
    standard_only: bool = typer.Option(
        False, "--standard-only", help="Reject integrated addresses"
    ),
) -> None:
    """Check an address and show the keys it encodes."""
    setup_logging()

    try:
        parsed = validate_address(address, integrated_allowed=not standard_only)
    except AddressError as e:
        logger.error(f"Invalid address: {e}")
        raise typer.Exit(1)

    typer.echo(f"\nPublic spend key:  {parsed.public_spend_key}")
    typer.echo(f"Public view key:   {parsed.public_view_key}")
    if parsed.is_integrated:
        typer.echo(f"Payment ID:        {parsed.payment_id}")


@app.command()
def info(
    daemon_host: str | None = typer.Option(None, "--daemon-host", envvar="DAEMON_HOST"),
    daemon_port: int | None = typer.Option(None, "--daemon-port", envvar="DAEMON_PORT"),
    height: int | None = typer.Option(None, "--height", help="Also show the hash at this height"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Show the daemon's chain height."""
    setup_logging(log_level)
    settings = _settings_with_overrides(daemon_host=daemon_host, daemon_port=daemon_port)
    asyncio.run(_show_node_info(settings, height))


async def _show_node_info(settings: Settings, height: int | None) -> None:
    from krkwallet.backends.base import BackendError
    from krkwallet.backends.daemon import DaemonBackend

    backend = DaemonBackend(
        host=settings.daemon_host,
        port=settings.daemon_port,
        ssl=settings.daemon_ssl,
        timeout=settings.request_timeout,
    )
    try:
        node_info = await backend.get_node_info()
        typer.echo(f"\nDaemon:          {settings.daemon_url}")
        typer.echo(f"Height:          {node_info.height:,}")
        typer.echo(f"Network height:  {node_info.network_height:,}")
        typer.echo(f"Synced:          {node_info.synced}")

        if height is not None:
            details = await backend.get_block_details_by_height(height)
            typer.echo(f"Block {height:,}:  {details.hash}")
    except BackendError as e:
        logger.error(f"Failed to query daemon: {e}")
        raise typer.Exit(1)
    finally:
        await backend.close()


@app.command()
def sync(
    private_spend_key: str = typer.Option(
        None, "--private-spend-key", envvar="PRIVATE_SPEND_KEY", help="Private spend key (hex)"
    ),
    private_view_key: str | None = typer.Option(
        None, "--private-view-key", envvar="PRIVATE_VIEW_KEY", help="Private view key (hex)"
    ),
    public_spend_key: str | None = typer.Option(
        None, "--public-spend-key", envvar="PUBLIC_SPEND_KEY", help="Public spend key (hex)"
    ),
    start_height: int | None = typer.Option(None, "--start-height", "-s"),
    daemon_host: str | None = typer.Option(None, "--daemon-host", envvar="DAEMON_HOST"),
    daemon_port: int | None = typer.Option(None, "--daemon-port", envvar="DAEMON_PORT"),
    until_synced: bool = typer.Option(
        False, "--until-synced", help="Exit once the wallet has caught up with the daemon"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Sync the wallet and report the outputs that belong to it."""
    setup_logging(log_level)

    try:
        keys = load_keys(private_spend_key, private_view_key, public_spend_key)
    except (ValueError, ValidationError) as e:
        logger.error(f"Invalid wallet keys: {e}")
        raise typer.Exit(1)

    settings = _settings_with_overrides(
        daemon_host=daemon_host, daemon_port=daemon_port, start_height=start_height
    )
    asyncio.run(_run_sync(settings, keys, until_synced))


def _settings_with_overrides(**overrides: object) -> Settings:
    settings = get_settings()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return settings
    return Settings.model_validate({**settings.model_dump(), **updates})


async def _run_sync(settings: Settings, keys: WalletKeys, until_synced: bool) -> None:
    from krkwallet.backends.base import BackendError
    from krkwallet.backends.daemon import DaemonBackend
    from krkwallet.wallet.scanner import OutputScanner
    from krkwallet.wallet.service import SyncEngine, SyncState
    from krkwallet.wallet.store import OwnedInputStore

    backend = DaemonBackend(
        host=settings.daemon_host,
        port=settings.daemon_port,
        ssl=settings.daemon_ssl,
        timeout=settings.request_timeout,
    )
    engine = SyncEngine(
        backend,
        start_height=settings.start_height,
        fetch_interval=settings.fetch_interval,
        height_poll_interval=settings.height_poll_interval,
        block_count=settings.block_count,
        skip_coinbase_transactions=settings.skip_coinbase_transactions,
    )
    scanner = OutputScanner(engine, keys, unlock_confirmations=settings.unlock_confirmations)
    store = OwnedInputStore()

    try:
        await engine.start()
    except BackendError as e:
        logger.error(f"Failed to start sync: {e}")
        await backend.close()
        raise typer.Exit(1)

    loop = asyncio.get_running_loop()

    def shutdown_handler() -> None:
        logger.info("Received shutdown signal")
        asyncio.create_task(engine.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    scan_task = asyncio.create_task(scanner.run(settings.scan_interval))
    store_task = asyncio.create_task(store.consume(scanner.owned_inputs))

    try:
        if until_synced:
            while engine.state is SyncState.RUNNING and not engine.is_synced():
                await asyncio.sleep(settings.scan_interval)
        else:
            await engine.wait()
    finally:
        for task in (scan_task, store_task):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        store.drain(scanner.owned_inputs)
        await engine.close()

    height = engine.get_synced_height()
    typer.echo(f"\nSynced height:    {height:,}")
    typer.echo(f"Outputs found:    {len(store)}")
    typer.echo(f"Balance:          {format_amount(store.balance())}")
    typer.echo(f"Unlocked balance: {format_amount(store.unlocked_balance(height))}")

    for owned in store.inputs():
        state = "unlocked" if owned.is_unlocked(height) else f"locked until {owned.unlock_height}"
        typer.echo(
            f"  {owned.block_height:>9}  {owned.transaction_hash}:{owned.output_index}"
            f"  {format_amount(owned.amount):>20}  {state}"
        )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
