"""CLI entry point for voxelcraft."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import click

from voxelcraft.config import load_config
from voxelcraft.daemon import VoxelcraftApp, run_daemon
from voxelcraft.models.config import AppConfig
from voxelcraft.models.events import EventType
from voxelcraft.models.operations import (
    BuyFromMarket,
    CastVote,
    ClaimReward,
    ListOnMarket,
    LoadWorldSnapshot,
    MintCollectible,
    SagaResult,
    SaveWorldSnapshot,
    TransferFungible,
)
from voxelcraft.models.errors import OperationError
from voxelcraft.stellar.validation import from_base_units


def _require_secret(cfg: AppConfig) -> None:
    """Exit with error if no keypair secret is configured."""
    if not cfg.keypair_secret:
        click.echo("Error: No keypair secret configured.", err=True)
        click.echo("Set VOXELCRAFT_SECRET env var or [wallet] keypair_secret in config.", err=True)
        sys.exit(1)


def _confirm_signature(purpose: str) -> bool:
    return click.confirm(f"Sign {purpose}?", default=True)


def _with_app(
    cfg: AppConfig,
    body: Callable[[VoxelcraftApp], Awaitable[Any]],
    connect_wallet: bool = True,
    yes: bool = False,
) -> Any:
    """Build the app, run ``body`` against it, always close it."""

    async def _run():
        app = VoxelcraftApp(cfg, confirm=None if yes else _confirm_signature)
        try:
            await app.open(connect_wallet=connect_wallet)
            return await body(app)
        finally:
            await app.close()

    try:
        return asyncio.run(_run())
    except OperationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _report(result: SagaResult) -> None:
    """Print a saga outcome; exits non-zero on failure."""
    saga = result.saga
    if result.success:
        click.echo(f"{result.kind.value} succeeded")
        if result.data is not None:
            for key, value in dataclasses.asdict(result.data).items():
                if key in ("snapshot", "record"):
                    continue
                click.echo(f"  {key + ':':<16}{value}")
        return

    click.echo(f"{result.kind.value} failed", err=True)
    click.echo(f"  Step:    {saga.failed_step or '-'}", err=True)
    if result.error is not None:
        click.echo(f"  Error:   {result.error.kind.value}: {result.error.message}", err=True)
    if saga.tx_hash:
        click.echo(f"  Tx hash: {saga.tx_hash}", err=True)
    sys.exit(1)


def _load_json(path: str) -> Any:
    with open(path) as f:
        return json.load(f)


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """voxelcraft - ledger, content store and backend coordination for VoxelCraft."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Per-request lines from httpx are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ── Daemon ─────────────────────────────────────────────


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Start the event synchronizer daemon."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(f"Starting voxelcraft sync daemon on {cfg.network}")
    asyncio.run(run_daemon(cfg))


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration and reachability of ledger, store and backend."""
    cfg = load_config(ctx.obj["config_path"])
    network = cfg.active_network()
    click.echo(f"Network:    {network.name}")
    click.echo(f"RPC URL:    {network.rpc_url}")
    click.echo(f"Backend:    {cfg.backend.base_url}")
    click.echo(f"Store:      {cfg.store.provider.value}")
    click.echo(f"DB path:    {cfg.sync.db_path}")
    click.echo(f"Secret:     {'***configured***' if cfg.keypair_secret else '(not set)'}")

    async def _status(app: VoxelcraftApp):
        click.echo(f"Contracts:  {len(app.registry)} configured")
        for contract in app.registry:
            click.echo(f"  {contract.key:<22}{contract.address}")
        st = await app.orchestrator.sync_status()
        click.echo("")
        click.echo(f"Ledger:     {'reachable' if st.ledger else 'UNREACHABLE'}")
        click.echo(f"Store:      {'reachable' if st.store else 'UNREACHABLE'}")
        click.echo(f"Backend:    {'reachable' if st.backend else 'UNREACHABLE'}")
        click.echo(f"Last sync:  {st.last_sync or '(unknown)'}")

    _with_app(cfg, _status, connect_wallet=False)


@cli.command()
@click.option("--address", default=None, help="Account to inspect (defaults to the wallet)")
@click.pass_context
def info(ctx: click.Context, address: str | None) -> None:
    """Query balances and owned collectibles."""
    cfg = load_config(ctx.obj["config_path"])
    if address is None:
        _require_secret(cfg)

    async def _info(app: VoxelcraftApp):
        target = address or app.session.require_address()
        snapshot = await app.session.balances(target)
        click.echo(f"Address:    {target}")
        if snapshot.native is not None:
            click.echo(f"XLM:        {from_base_units(snapshot.native)}")
        for asset, units in snapshot.balances.items():
            click.echo(f"{asset + ':':<12}{from_base_units(units)}")

        counts = await app.orchestrator.collectible_counts(target)
        if counts:
            click.echo("")
            click.echo("Collectibles:")
            for category, count in counts.items():
                click.echo(f"  {category:<10}{count}")

    _with_app(cfg, _info, connect_wallet=address is None, yes=True)


# ── Operations ─────────────────────────────────────────


@cli.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.argument("metadata", type=click.Path(exists=True, dir_okay=False))
@click.option("--category", default="item", help="item | building | vehicle | land")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def mint(ctx: click.Context, image: str, metadata: str, category: str, yes: bool) -> None:
    """Upload IMAGE + METADATA template and mint a collectible."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)
    spec = MintCollectible(
        category=category,
        image=Path(image).read_bytes(),
        metadata=_load_json(metadata),
        image_name=Path(image).name,
    )

    def _progress(sent: int, total: int) -> None:
        if total:
            click.echo(f"\r  Uploading image: {sent * 100 // total}%", nl=sent >= total)

    async def _mint(app: VoxelcraftApp):
        return await app.orchestrator.mint_collectible(spec, progress=_progress)

    _report(_with_app(cfg, _mint, yes=yes))


@cli.command("list-item")
@click.argument("item_id", type=int)
@click.argument("price")
@click.option("--category", default="item", help="item | building | vehicle | land")
@click.option("--duration", type=int, default=None, help="Listing duration in seconds")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def list_item(
    ctx: click.Context, item_id: int, price: str, category: str, duration: int | None, yes: bool,
) -> None:
    """List collectible ITEM_ID on the marketplace for PRICE tokens."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)
    if not yes:
        click.confirm(f"List {category} #{item_id} for {price}?", abort=True)
    spec = ListOnMarket(category=category, item_id=item_id, price=price, duration=duration)

    async def _list(app: VoxelcraftApp):
        return await app.orchestrator.list_on_market(spec)

    _report(_with_app(cfg, _list, yes=yes))


@cli.command()
@click.argument("listing_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def buy(ctx: click.Context, listing_id: int, yes: bool) -> None:
    """Buy marketplace listing LISTING_ID."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)
    if not yes:
        click.confirm(f"Buy listing #{listing_id}?", abort=True)

    async def _buy(app: VoxelcraftApp):
        return await app.orchestrator.buy_from_market(BuyFromMarket(listing_id=listing_id))

    _report(_with_app(cfg, _buy, yes=yes))


@cli.command()
@click.argument("asset")
@click.argument("to")
@click.argument("amount")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def transfer(ctx: click.Context, asset: str, to: str, amount: str, yes: bool) -> None:
    """Send AMOUNT of fungible ASSET (VXC, PTX) to TO."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)
    if not yes:
        click.confirm(f"Send {amount} {asset.upper()} to {to}?", abort=True)
    spec = TransferFungible(asset=asset.upper(), to=to, amount=amount)

    async def _transfer(app: VoxelcraftApp):
        return await app.orchestrator.transfer_fungible(spec)

    _report(_with_app(cfg, _transfer, yes=yes))


@cli.command()
@click.argument("reward_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def claim(ctx: click.Context, reward_id: int, yes: bool) -> None:
    """Claim reward REWARD_ID from the reward vault."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)

    async def _claim(app: VoxelcraftApp):
        return await app.orchestrator.claim_reward(ClaimReward(reward_id=reward_id))

    _report(_with_app(cfg, _claim, yes=yes))


@cli.command()
@click.argument("proposal_id", type=int)
@click.option("--against", is_flag=True, help="Vote against instead of for")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def vote(ctx: click.Context, proposal_id: int, against: bool, yes: bool) -> None:
    """Cast a DAO vote on PROPOSAL_ID."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)
    spec = CastVote(proposal_id=proposal_id, support=not against)

    async def _vote(app: VoxelcraftApp):
        return await app.orchestrator.cast_vote(spec)

    _report(_with_app(cfg, _vote, yes=yes))


@cli.command("save-world")
@click.argument("world_id")
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def save_world(ctx: click.Context, world_id: str, snapshot: str) -> None:
    """Upload world SNAPSHOT (JSON file) and record it for WORLD_ID."""
    cfg = load_config(ctx.obj["config_path"])
    spec = SaveWorldSnapshot(world_id=world_id, snapshot=_load_json(snapshot))

    async def _save(app: VoxelcraftApp):
        return await app.orchestrator.save_world_snapshot(spec)

    _report(_with_app(cfg, _save, connect_wallet=False))


@cli.command("load-world")
@click.argument("world_id")
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None,
              help="Write the snapshot here instead of stdout")
@click.pass_context
def load_world(ctx: click.Context, world_id: str, output: str | None) -> None:
    """Fetch the latest saved snapshot of WORLD_ID."""
    cfg = load_config(ctx.obj["config_path"])

    async def _load(app: VoxelcraftApp):
        return await app.orchestrator.load_world_snapshot(LoadWorldSnapshot(world_id=world_id))

    result = _with_app(cfg, _load, connect_wallet=False)
    _report(result)
    document = json.dumps(result.data.snapshot, indent=2)
    if output:
        Path(output).write_text(document)
        click.echo(f"Snapshot written to {output}")
    else:
        click.echo(document)


# ── Events ─────────────────────────────────────────────


@cli.group()
def events() -> None:
    """Historical event queries."""


@events.command("tx")
@click.argument("tx_hash")
@click.pass_context
def events_tx(ctx: click.Context, tx_hash: str) -> None:
    """Show every recognizable event emitted by TX_HASH."""
    cfg = load_config(ctx.obj["config_path"])

    async def _tx(app: VoxelcraftApp):
        await app.sync.start(app.network.name, app.registry)
        return await app.sync.events_for_transaction(tx_hash)

    found = _with_app(cfg, _tx, connect_wallet=False)
    if not found:
        click.echo("No recognizable events.")
    for event in found:
        click.echo(json.dumps(event.to_payload()))


@events.command("range")
@click.argument("contract_key")
@click.argument("from_ledger", type=int)
@click.argument("to_ledger", type=int)
@click.option("--type", "event_type", type=click.Choice([t.value for t in EventType]),
              default=None, help="Only this event type")
@click.pass_context
def events_range(
    ctx: click.Context, contract_key: str, from_ledger: int, to_ledger: int, event_type: str | None,
) -> None:
    """Show events of CONTRACT_KEY (e.g. token:VXC, marketplace) in a ledger range."""
    cfg = load_config(ctx.obj["config_path"])
    wanted = EventType(event_type) if event_type else None

    async def _range(app: VoxelcraftApp):
        await app.sync.start(app.network.name, app.registry)
        return await app.sync.events_in_range(contract_key, wanted, from_ledger, to_ledger)

    found = _with_app(cfg, _range, connect_wallet=False)
    click.echo(f"{len(found)} events")
    for event in found:
        click.echo(json.dumps(event.to_payload()))


@cli.command()
@click.option("--limit", type=int, default=20, help="Number of entries to show")
@click.pass_context
def activity(ctx: click.Context, limit: int) -> None:
    """Show recent activity log entries."""
    cfg = load_config(ctx.obj["config_path"])

    async def _activity(app: VoxelcraftApp):
        return await app.store.get_recent_activity(limit)

    entries = _with_app(cfg, _activity, connect_wallet=False)
    if not entries:
        click.echo("No activity recorded.")
    for entry in entries:
        tx = f" tx={entry.tx_hash[:16]}" if entry.tx_hash else ""
        click.echo(f"{entry.created_at}  {entry.event_type:<20}{entry.message}{tx}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
