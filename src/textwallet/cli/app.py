"""CLI for textwallet - run the text-message wallet bot from the terminal."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from textwallet.config import (
    BotConfig,
    CONFIG_ENV_VAR,
    default_config_path,
    load_config,
    save_config,
)
from textwallet.errors import WalletBotError

app = typer.Typer(
    name="textwallet",
    help="Text-message wallet bot: gas-sponsored smart accounts driven by chat commands.",
    no_args_is_help=True,
)
users_app = typer.Typer(help="Inspect and manage registered users.", no_args_is_help=True)
app.add_typer(users_app, name="users")
console = Console()

_config_path: Path | None = None


def _version_callback(value: bool):
    if value:
        from textwallet import __version__
        console.print(f"textwallet {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    if not verbose:
        for noisy in ("httpx", "httpcore", "web3", "urllib3", "aiosqlite"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


@app.callback()
def main(
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the YAML config file",
        envvar=CONFIG_ENV_VAR,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Text-message wallet bot: gas-sponsored smart accounts driven by chat commands."""
    global _config_path
    _config_path = config
    _setup_logging(verbose)


def _run(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _load() -> BotConfig:
    try:
        return load_config(_config_path)
    except (WalletBotError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)


# ------------------------------------------------------------------
# init
# ------------------------------------------------------------------


@app.command()
def init(
    network: str = typer.Option("nero-testnet", "--network", "-n", help="Chain preset"),
    channel: str = typer.Option("log", "--channel", help="Reply channel: applescript, webhook or log"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
):
    """Write a starter config file."""
    from textwallet.wallet.chains import list_chain_names

    path = _config_path or default_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    if network not in list_chain_names():
        console.print(f"[red]Unknown network '{network}'.[/red] Choose from: {', '.join(list_chain_names())}")
        raise typer.Exit(1)

    try:
        config = BotConfig.model_validate(
            {
                "chain": {"network": network},
                "account_abstraction": {"paymaster_api_key": "${NERO_AA_API_KEY}"},
                "notifications": {"channel": channel},
            }
        )
    except ValueError as e:
        console.print(f"[red]Invalid option:[/red] {e}")
        raise typer.Exit(1)
    save_config(config, path)

    chain = config.resolve_chain()
    console.print(Panel(
        f"[bold green]Config written to {path}[/bold green]\n\n"
        f"Network: [cyan]{chain.display_name}[/cyan] (chain {chain.chain_id})\n"
        f"Reply channel: [cyan]{config.notifications.channel}[/cyan]\n\n"
        "Set [bold]NERO_AA_API_KEY[/bold] and run [bold]textwallet run[/bold].",
        title="textwallet",
    ))


# ------------------------------------------------------------------
# run / serve
# ------------------------------------------------------------------


@app.command()
def run(
    interval: int = typer.Option(None, "--interval", "-i", help="Polling interval in milliseconds"),
):
    """Poll the message store and answer commands until interrupted."""
    from textwallet.core.bot import WalletBot

    config = _load()

    async def _run_bot():
        bot = await WalletBot.create(config)
        try:
            await bot.start_polling(interval)
        finally:
            await bot.shutdown()

    try:
        _run(_run_bot())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    except WalletBotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default from config)"),
):
    """Start the admin HTTP API (and the poller, unless admin.poll is false)."""
    from textwallet.dashboard.server import run_server

    config = _load()
    host = host or config.admin.host
    port = port or config.admin.port
    console.print(f"[bold]Admin API:[/bold] http://{host}:{port}/api/status")
    run_server(host=host, port=port, config_path=_config_path)


# ------------------------------------------------------------------
# parse / send
# ------------------------------------------------------------------


@app.command()
def parse(text: str = typer.Argument(..., help="Message text to interpret")):
    """Show how a message would be interpreted, without touching the network."""
    from textwallet.commands import parse as parse_command

    command = parse_command(text)
    console.print(f"[cyan]{type(command).__name__}[/cyan] {command!r}")


@app.command()
def send(
    identity: str = typer.Argument(..., help="Sender handle (phone number or email)"),
    text: str = typer.Argument(..., help="Message text"),
):
    """Append an incoming message to the configured message store (local testing)."""
    from textwallet.messaging.store import ChatDbMessageStore

    config = _load()
    store = ChatDbMessageStore(config.messages.path)
    message = _run(store.append(identity, text))
    console.print(
        f"[green]Queued[/green] message {message.message_id} from {identity} "
        f"at {message.timestamp} in {store.db_path}"
    )


# ------------------------------------------------------------------
# users
# ------------------------------------------------------------------


async def _with_store(config: BotConfig, action):
    from textwallet.storage.database import get_database
    from textwallet.storage.wallet_store import WalletStore

    db = get_database(config.storage.path)
    await db.connect()
    try:
        return await action(WalletStore(db))
    finally:
        await db.close()


@users_app.command("list")
def users_list():
    """List registered identities and their wallet addresses."""
    config = _load()

    async def _list(store):
        records = []
        for identity in await store.list_identities():
            record = await store.get(identity)
            if record is not None:
                records.append(record)
        return records

    records = _run(_with_store(config, _list))
    if not records:
        console.print("[yellow]No registered users.[/yellow]")
        return

    table = Table(title="Registered Users")
    table.add_column("Identity", style="bold", no_wrap=True)
    table.add_column("Wallet", style="cyan")
    table.add_column("Deployed")
    table.add_column("Network")
    table.add_column("Registered", style="dim")
    for r in records:
        table.add_row(
            r.identity,
            r.wallet_address,
            "yes" if r.is_deployed else "no",
            r.network,
            r.registered_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@users_app.command("show")
def users_show(identity: str = typer.Argument(..., help="Sender handle")):
    """Show one user's wallet record (secret masked)."""
    config = _load()
    record = _run(_with_store(config, lambda store: store.get(identity)))
    if record is None:
        console.print(f"[red]{identity} is not registered.[/red]")
        raise typer.Exit(1)

    chain = config.resolve_chain()
    console.print(Panel(
        f"Wallet: [cyan]{record.wallet_address}[/cyan]\n"
        f"Signer: {record.signer_address}\n"
        f"Secret: {record.masked_secret()}\n"
        f"Deployed: {'yes' if record.is_deployed else 'no (counterfactual)'}\n"
        f"Network: {record.network} (chain {record.chain_id})\n"
        f"Registered: {record.registered_at.isoformat()}\n"
        f"Explorer: {chain.address_url(record.wallet_address)}",
        title=identity,
    ))


@users_app.command("unregister")
def users_unregister(
    identity: str = typer.Argument(..., help="Sender handle"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a user's wallet record. The on-chain account is not affected."""
    from textwallet.core.bot import WalletBot

    if not yes:
        typer.confirm(f"Remove the wallet record for {identity}?", abort=True)
    config = _load()

    async def _unregister():
        bot = await WalletBot.create(config)
        try:
            return await bot.registration.unregister_user(identity)
        finally:
            await bot.shutdown()

    try:
        removed = _run(_unregister())
    except WalletBotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if not removed:
        console.print(f"[yellow]{identity} is not registered.[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Unregistered {identity}.[/green]")


if __name__ == "__main__":
    app()
