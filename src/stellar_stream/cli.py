"""CLI entry point for the stellar_stream service."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

import click

from stellar_stream.api.streams import stream_to_dict
from stellar_stream.config import load_config
from stellar_stream.errors import (
    ConfigurationError,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
    ValidationError,
)
from stellar_stream.models.records import StreamStatus
from stellar_stream.service import StreamService, run_service


def _ts(seconds: int | None) -> str:
    if seconds is None:
        return "-"
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _require_contract(cfg):
    """Exit with error if no contract ID is configured."""
    if not cfg.contract_id:
        click.echo("Error: No contract ID configured.", err=True)
        click.echo("Set STELLAR_STREAM_CONTRACT_ID or check deployments.json.", err=True)
        sys.exit(1)


def _require_secret(cfg):
    """Exit with error if no signing secret is configured."""
    if not cfg.signing_secret:
        click.echo("Error: No signing secret configured.", err=True)
        click.echo("Set STELLAR_STREAM_SECRET env var or signing_secret in config.", err=True)
        sys.exit(1)


async def _with_service(cfg, fn):
    """Initialize a service (one reconciliation pass included), run fn, shut down."""
    service = StreamService(cfg)
    try:
        await service.initialize()
        return await fn(service)
    finally:
        await service.shutdown()


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """stellar-stream - Stream lifecycle and Soroban sync service."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    cfg = load_config(config_path)
    level = logging.DEBUG if verbose else getattr(logging, cfg.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Service ────────────────────────────────────────────


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Start the sync service (reconciliation + event indexer)."""
    cfg = load_config(ctx.obj["config_path"])
    _require_contract(cfg)

    click.echo(f"Starting stellar-stream service (network: {cfg.network})")
    asyncio.run(run_service(cfg))


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show service configuration."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(f"Network:    {cfg.network}")
    click.echo(f"RPC URL:    {cfg.rpc_url}")
    click.echo(f"Contract:   {cfg.contract_id or '(not set)'}")
    click.echo(f"Assets:     {', '.join(cfg.allowed_assets)}")
    for code, token in sorted(cfg.token_contracts.items()):
        click.echo(f"  {code:<8} {token}")
    click.echo(f"Sync every: {cfg.sync_interval}s")
    click.echo(f"Indexer:    {'every %.0fs' % cfg.indexer.interval if cfg.indexer.enabled else 'disabled'}")
    click.echo(f"DB path:    {cfg.db_path}")
    click.echo(f"Secret:     {'***configured***' if cfg.signing_secret else '(not set)'}")


# ── Streams ────────────────────────────────────────────


@cli.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Run one reconciliation pass against the ledger."""
    cfg = load_config(ctx.obj["config_path"])
    _require_contract(cfg)

    async def _sync(service: StreamService):
        report = await service.synchronizer.sync_streams()
        if report.skipped:
            click.echo("Sync skipped: ledger unavailable.")
            return
        click.echo(f"On-chain streams: {report.total}")
        click.echo(f"Synced:           {report.synced}")
        click.echo(f"Failed:           {report.failed}")
        if report.failed_ids:
            click.echo(f"  Failed ids: {', '.join(str(i) for i in report.failed_ids)}")

    asyncio.run(_with_service(cfg, _sync))


@cli.command()
@click.option("--status", "status_filter", type=click.Choice([s.value for s in StreamStatus]), default=None)
@click.option("--asset", default=None, help="Filter by asset code")
@click.option("--sender", default=None, help="Filter by sender account")
@click.option("--recipient", default=None, help="Filter by recipient account")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def streams(ctx, status_filter, asset, sender, recipient, as_json) -> None:
    """List cached streams with their current progress."""
    cfg = load_config(ctx.obj["config_path"])

    async def _list(service: StreamService):
        rows = service.api.list_streams_with_progress(
            status=status_filter, asset=asset, sender=sender, recipient=recipient,
        )
        if as_json:
            click.echo(json.dumps([stream_to_dict(s, p) for s, p in rows], indent=2))
            return
        if not rows:
            click.echo("No streams.")
            return
        for stream, prog in rows:
            click.echo(
                f"#{stream.id:<6} {prog.status.value:<10} {stream.total_amount} {stream.asset_code}"
                f"  vested={prog.vested_amount} ({prog.percent_complete}%)"
                f"  {stream.sender[:8]}... -> {stream.recipient[:8]}..."
                f"  start={_ts(stream.start_at)}"
            )

    asyncio.run(_with_service(cfg, _list))


@cli.command()
@click.option("--sender", required=True, help="Sender account (must match the signing key)")
@click.option("--recipient", required=True, help="Recipient account")
@click.option("--asset", "asset_code", required=True, help="Asset code, e.g. USDC")
@click.option("--amount", "total_amount", required=True, help="Total amount to stream")
@click.option("--duration", "duration_seconds", required=True, type=int, help="Duration in seconds")
@click.option("--start-at", "start_at", default=None, type=int, help="Start time (unix seconds)")
@click.pass_context
def create(ctx, sender, recipient, asset_code, total_amount, duration_seconds, start_at) -> None:
    """Create a stream on-chain."""
    cfg = load_config(ctx.obj["config_path"])
    _require_contract(cfg)
    _require_secret(cfg)

    payload = {
        "sender": sender,
        "recipient": recipient,
        "assetCode": asset_code,
        "totalAmount": total_amount,
        "durationSeconds": duration_seconds,
        "startAt": start_at,
    }

    async def _create(service: StreamService):
        try:
            stream = await service.api.create_stream(payload)
        except ValidationError as exc:
            for field, message in exc.issues:
                click.echo(f"Invalid {field}: {message}", err=True)
            sys.exit(2)
        except LedgerTimeout as exc:
            click.echo(f"Unconfirmed: {exc}", err=True)
            click.echo("The stream may still be created. Run 'stellar-stream sync' before retrying.", err=True)
            sys.exit(3)
        except (LedgerRejected, LedgerUnavailable, ConfigurationError) as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)
        click.echo(f"Created stream #{stream.id}")

    asyncio.run(_with_service(cfg, _create))


@cli.command()
@click.argument("stream_id")
@click.pass_context
def cancel(ctx: click.Context, stream_id: str) -> None:
    """Mark a stream canceled in the local cache."""
    cfg = load_config(ctx.obj["config_path"])

    async def _cancel(service: StreamService):
        stream = await service.api.cancel_stream(stream_id)
        if stream is None:
            click.echo(f"Stream {stream_id} not found.", err=True)
            sys.exit(1)
        click.echo(f"Stream #{stream.id} canceled at {_ts(stream.canceled_at)}")

    asyncio.run(_with_service(cfg, _cancel))


# ── History ────────────────────────────────────────────


@cli.command()
@click.argument("stream_id")
@click.pass_context
def history(ctx: click.Context, stream_id: str) -> None:
    """Show the indexed event history of a stream."""
    cfg = load_config(ctx.obj["config_path"])

    async def _history(service: StreamService):
        events = await service.api.get_stream_history(stream_id)
        if not events:
            click.echo(f"No events for stream {stream_id}.")
            return
        for ev in events:
            amount = f" amount={ev.amount}" if ev.amount is not None else ""
            actor = f" by {ev.actor[:8]}..." if ev.actor else ""
            click.echo(f"{_ts(ev.timestamp)}  {ev.event_type.value:<20}{actor}{amount}")

    asyncio.run(_with_service(cfg, _history))


@cli.command()
@click.option("--limit", default=20, type=int)
@click.option("--offset", default=0, type=int)
@click.pass_context
def events(ctx: click.Context, limit: int, offset: int) -> None:
    """Show the most recent indexed events across all streams."""
    cfg = load_config(ctx.obj["config_path"])

    async def _events(service: StreamService):
        rows = await service.api.get_all_events(limit=limit, offset=offset)
        if not rows:
            click.echo("No events indexed yet.")
            return
        for ev in rows:
            amount = f" amount={ev.amount}" if ev.amount is not None else ""
            click.echo(f"{_ts(ev.timestamp)}  stream #{ev.stream_id:<6} {ev.event_type.value}{amount}")

    asyncio.run(_with_service(cfg, _events))


if __name__ == "__main__":
    cli()
