"""CLI for EVM Wallet Hub - import keys, check balances and sweep wallets from the terminal."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="evm-wallet-hub",
    help="Manage imported EVM wallets and mass-send native tokens.",
    no_args_is_help=True,
)
console = Console()

_base_path: Optional[Path] = None
_owner_override: Optional[str] = None

_STATUS_COLORS = {"pending": "yellow", "confirmed": "green", "failed": "red"}


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"evm-wallet-hub {version('evm-wallet-hub')}")
        raise typer.Exit()


@app.callback()
def main(
    base: Path = typer.Option(
        None,
        "--base",
        "-B",
        help="Directory containing .evm-wallet-hub (default: current directory)",
        envvar="WALLET_HUB_BASE",
    ),
    owner: str = typer.Option(
        None,
        "--owner",
        "-O",
        help="Owner id to act as (default: owner_id from config)",
        envvar="WALLET_HUB_OWNER",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Manage imported EVM wallets and mass-send native tokens."""
    global _base_path, _owner_override
    _base_path = base
    _owner_override = owner
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _run(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _owner(hub) -> str:
    return _owner_override or hub.config.owner_id


async def _with_hub(fn):
    """Load the hub, call ``fn(hub)`` and always shut down."""
    from evm_wallet_hub.hub import WalletHub

    hub = await WalletHub.load(_base_path)
    try:
        return await fn(hub)
    finally:
        await hub.shutdown()


def _call(fn):
    """Run ``fn(hub)``; hub errors are printed in red and exit 1."""
    from evm_wallet_hub.errors import WalletHubError

    try:
        return _run(_with_hub(fn))
    except (WalletHubError, ValueError, KeyError, FileNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


# ------------------------------------------------------------------
# init / serve
# ------------------------------------------------------------------


@app.command()
def init(
    name: str = typer.Option("EVM Wallet Hub", "--name", "-n", help="Hub name"),
):
    """Create .evm-wallet-hub/config.yaml with defaults."""
    from evm_wallet_hub.hub import WalletHub

    try:
        config_path = WalletHub.init(_base_path, name=name)
    except FileExistsError as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[bold green]Wallet hub initialized![/bold green]\n\n"
        f"Config: [cyan]{config_path}[/cyan]\n\n"
        f"[dim]Set WALLET_HUB_ENCRYPTION_KEY before importing keys.\n"
        f"RPC endpoints can be overridden with <NETWORK>_RPC_URL.[/dim]",
        title="EVM Wallet Hub",
    ))


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default: from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default: from config)"),
):
    """Start the REST backend."""
    from evm_wallet_hub.api.server import run_server
    from evm_wallet_hub.config import get_hub_dir, load_config

    config_path = get_hub_dir(_base_path, create=False) / "config.yaml"
    if not config_path.exists():
        console.print("[red]No wallet hub found.[/red] Run 'evm-wallet-hub init' first.")
        raise typer.Exit(1)
    dashboard = load_config(config_path).dashboard
    run_server(host=host or dashboard.host, port=port or dashboard.port, base_path=_base_path)


# ------------------------------------------------------------------
# wallet sub-commands
# ------------------------------------------------------------------

wallet_app = typer.Typer(
    name="wallet",
    help="Import, list and remove wallets.",
    no_args_is_help=True,
)
app.add_typer(wallet_app, name="wallet")


@wallet_app.command("import")
def wallet_import(
    name: str = typer.Option(..., "--name", "-n", help="Display name"),
    network: str = typer.Option("sepolia", "--network", "-N", help="Network id"),
):
    """Import a private key (prompted, never echoed)."""
    raw_key = console.input("[bold]Private key: [/bold]", password=True)

    async def _import(hub):
        return await hub.wallet_manager.import_wallet(_owner(hub), name, raw_key, network)

    wallet = _call(_import)
    console.print(Panel(
        f"[bold green]Wallet imported![/bold green]\n\n"
        f"ID:      {wallet.id}\n"
        f"Address: [cyan]{wallet.address}[/cyan]\n"
        f"Network: {wallet.network}\n"
        f"Balance: {wallet.cached_balance}",
        title=wallet.display_name,
    ))


@wallet_app.command("list")
def wallet_list(
    offline: bool = typer.Option(False, "--offline", help="Show cached balances without RPC calls"),
):
    """Show wallets with their balances."""

    async def _list(hub):
        return await hub.wallet_manager.list_wallets(_owner(hub), refresh=not offline)

    wallets = _call(_list)
    if not wallets:
        console.print("[yellow]No wallets yet.[/yellow] Use 'evm-wallet-hub wallet import' to add one.")
        return

    table = Table(title="Wallets")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Address", style="cyan")
    table.add_column("Network")
    table.add_column("Balance", justify="right")
    for w in wallets:
        table.add_row(w.id, w.display_name, w.address, w.network, w.cached_balance)
    console.print(table)


@wallet_app.command("remove")
def wallet_remove(
    wallet_id: str = typer.Argument(help="Wallet ID to remove"),
):
    """Remove a wallet. Transfer history is kept."""
    typer.confirm(f"Remove wallet {wallet_id}?", abort=True)

    async def _remove(hub):
        await hub.wallet_manager.delete_wallet(_owner(hub), wallet_id)

    _call(_remove)
    console.print(f"[bold]Wallet {wallet_id} removed.[/bold]")


# ------------------------------------------------------------------
# transfers
# ------------------------------------------------------------------


@app.command()
def send(
    amount: str = typer.Argument(help="Amount to send (e.g. 0.01)"),
    wallet_id: str = typer.Option(..., "--from", "-f", help="Source wallet ID"),
    to: str = typer.Option(..., "--to", "-t", help="Recipient address (0x...)"),
):
    """Send native tokens from one wallet."""
    console.print(f"\n[bold]Send {amount} from {wallet_id}[/bold]")
    console.print(f"  To: {to}\n")
    typer.confirm("Confirm this transaction?", abort=True)

    async def _send(hub):
        return await hub.wallet_manager.send(_owner(hub), wallet_id, to, amount)

    with console.status("Waiting for confirmation..."):
        record = _call(_send)

    if record.status.value == "confirmed":
        console.print(Panel(
            f"[bold green]Transaction confirmed![/bold green]\n\n"
            f"Tx:  [cyan]{record.submitted_hash}[/cyan]\n"
            f"Fee: {record.fee_used}",
            title="Transaction Sent",
        ))
    else:
        console.print(f"[red]Transaction failed: {record.failure_reason}[/red]")
        raise typer.Exit(1)


@app.command("mass-send")
def mass_send(
    to: str = typer.Option(..., "--to", "-t", help="Destination address (0x...)"),
    wallet_ids: Optional[list[str]] = typer.Option(
        None, "--wallet", "-w", help="Wallet ID to include (repeatable; default: all)"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", help="Native asset symbol (default: the wallets' network)"
    ),
):
    """Sweep each selected wallet's balance (minus fee and reserve) to one address."""
    selection = ", ".join(wallet_ids) if wallet_ids else "all wallets"
    console.print(f"\n[bold]Mass send {token or 'native balance'} from {selection}[/bold]")
    console.print(f"  To: {to}\n")
    typer.confirm("Send the full available balance of each wallet?", abort=True)

    async def _mass(hub):
        return await hub.wallet_manager.mass_send(
            _owner(hub), to, asset_symbol=token, wallet_ids=wallet_ids or None
        )

    with console.status("[bold green]Sending from each wallet..."):
        summary = _call(_mass)

    table = Table(title=f"Mass send {summary.operation_id}")
    table.add_column("Wallet", style="dim")
    table.add_column("Address", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Tx / Reason")
    for r in summary.per_wallet_results:
        color = _STATUS_COLORS[r.outcome]
        table.add_row(
            r.wallet_id,
            r.address,
            r.amount or "-",
            f"[{color}]{r.outcome}[/{color}]",
            r.hash if r.outcome == "confirmed" else (r.reason or ""),
        )
    console.print(table)

    color = _STATUS_COLORS[summary.status.value]
    console.print(Panel(
        f"Status:    [{color}]{summary.status.value}[/{color}]\n"
        f"Total:     [bold]{summary.total_amount} {summary.asset_symbol}[/bold]\n"
        f"Processed: {summary.wallets_processed} "
        f"({summary.confirmed_count} confirmed, {summary.failed_count} failed, "
        f"{len(summary.skipped_wallet_ids)} skipped)",
        title="Mass Send Summary",
    ))
    if summary.status.value != "confirmed":
        raise typer.Exit(1)


@app.command()
def history(
    limit: int = typer.Option(25, "--limit", "-l", help="Rows to show"),
):
    """Show recent transfers."""

    async def _history(hub):
        return await hub.wallet_manager.list_transfers(_owner(hub))

    records = _call(_history)
    if not records:
        console.print("[dim]No transfers yet.[/dim]")
        return

    table = Table(title="Transfers")
    table.add_column("ID", style="dim")
    table.add_column("Kind")
    table.add_column("Amount", justify="right")
    table.add_column("Network", style="cyan")
    table.add_column("To", style="dim")
    table.add_column("Status")
    table.add_column("Tx / Reason")
    for r in records[:limit]:
        color = _STATUS_COLORS.get(r.status.value, "white")
        table.add_row(
            r.id,
            r.kind.value,
            r.amount,
            r.network,
            r.destination_address[:12] + "...",
            f"[{color}]{r.status.value}[/{color}]",
            r.submitted_hash or (r.failure_reason or "")[:40],
        )
    console.print(table)


# ------------------------------------------------------------------
# network sub-commands
# ------------------------------------------------------------------

network_app = typer.Typer(
    name="network",
    help="List built-in networks and manage custom ones.",
    no_args_is_help=True,
)
app.add_typer(network_app, name="network")


@network_app.command("list")
def network_list():
    """Show all known networks."""

    async def _list(hub):
        return hub.wallet_manager.list_networks(_owner(hub))

    networks = _call(_list)
    table = Table(title="Networks")
    table.add_column("Name", style="cyan")
    table.add_column("Chain ID", justify="right")
    table.add_column("Symbol")
    table.add_column("Type", style="dim")
    for n in networks:
        kind = "custom" if n["custom"] else ("testnet" if n["is_testnet"] else "mainnet")
        table.add_row(n["name"], str(n["chain_id"]), n["native_symbol"], kind)
    console.print(table)


@network_app.command("add")
def network_add(
    name: str = typer.Argument(help="Network id"),
    rpc_url: str = typer.Option(..., "--rpc", help="RPC endpoint URL"),
    chain_id: int = typer.Option(..., "--chain-id", help="EIP-155 chain id"),
    symbol: str = typer.Option("ETH", "--symbol", help="Native token symbol"),
    explorer_url: str = typer.Option("", "--explorer", help="Block explorer URL"),
    mainnet: bool = typer.Option(False, "--mainnet", help="Mark as a mainnet"),
):
    """Register a custom network."""

    async def _add(hub):
        return await hub.wallet_manager.add_custom_network(
            _owner(hub), name, rpc_url, chain_id, symbol, explorer_url, not mainnet
        )

    record = _call(_add)
    console.print(f"[bold green]Network '{record.name}' added[/bold green] (chain {record.chain_id}).")


@network_app.command("remove")
def network_remove(
    name: str = typer.Argument(help="Custom network id"),
):
    """Remove a custom network."""

    async def _remove(hub):
        await hub.wallet_manager.remove_custom_network(_owner(hub), name)

    _call(_remove)
    console.print(f"[bold]Network '{name}' removed.[/bold]")


if __name__ == "__main__":
    app()
