"""CLI interface for the recap scheduler.

Usage:
    python -m recap.pipeline.cli run
    python -m recap.pipeline.cli run --interval 3600 --max-cycles 3
    python -m recap.pipeline.cli once
    python -m recap.pipeline.cli add-summary "Some upstream summary"
    python -m recap.pipeline.cli digests --limit 5
    python -m recap.pipeline.cli status
    python -m recap.pipeline.cli vacuum
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Optional

import click
from dateutil.parser import parse as dateparse
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from recap.config import DEFAULT_CONFIG_PATH, load_config
from recap.errors import RecapError
from recap.pipeline.scheduler import CycleOutcome, CycleResult, RecapScheduler
from recap.pipeline.watermark import PendingSetLoader, WatermarkResolver
from recap.storage.db import DatabaseManager

console = Console()

DEFAULT_DB_PATH = "data/recap.db"


def run_async(coro):
    """Run an async function to completion."""
    return asyncio.run(coro)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def _load_config_or_exit(path: str) -> dict:
    try:
        return load_config(path)
    except RecapError as e:
        console.print(f"[red]Config error:[/red] {e}")
        sys.exit(2)


def _print_cycle(result: CycleResult) -> None:
    if result.outcome == CycleOutcome.EMPTY:
        console.print("[yellow]No summaries to recap.[/yellow]")
    elif result.outcome == CycleOutcome.COMPLETED:
        notified = "[green]sent" if result.notified else "[yellow]not sent"
        console.print(
            f"[green]Digest {result.digest_id} saved[/green] covering "
            f"{len(result.covered_summary_ids)} summaries; notification {notified}"
        )
    else:
        stage = result.failed_stage.value if result.failed_stage else "?"
        console.print(f"[red]Cycle failed while {stage}:[/red] {result.error}")


@click.group()
@click.option("--db", default=DEFAULT_DB_PATH, help="Database path")
@click.option("--config", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--log-level", default="INFO", help="Logging level")
@click.pass_context
def cli(ctx, db: str, config: str, log_level: str):
    """Periodic recap (digest) scheduler CLI."""
    configure_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db
    ctx.obj["config_path"] = config


@cli.command()
@click.option("--interval", type=float, default=None, help="Seconds between cycles (overrides config)")
@click.option("--max-cycles", type=int, default=None, help="Stop after N cycles")
@click.pass_context
def run(ctx, interval: Optional[float], max_cycles: Optional[int]):
    """Run the recap scheduler until interrupted."""
    config = _load_config_or_exit(ctx.obj["config_path"])
    if interval is not None:
        if interval <= 0:
            console.print("[red]Error:[/red] --interval must be positive")
            sys.exit(1)
        config["scheduler"]["interval_seconds"] = interval

    async def _run():
        db = DatabaseManager(ctx.obj["db_path"], busy_timeout=config["timeouts"]["storage_seconds"])
        await db.initialize()
        try:
            scheduler = RecapScheduler(db, config)
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, scheduler.stop)
                except (NotImplementedError, RuntimeError):
                    pass
            cycles = await scheduler.run(max_cycles=max_cycles)
            console.print(f"Scheduler stopped after {cycles} cycle(s).")
        finally:
            await db.close()

    run_async(_run())


@cli.command()
@click.pass_context
def once(ctx):
    """Run a single recap cycle and report what it did."""
    config = _load_config_or_exit(ctx.obj["config_path"])

    async def _run():
        db = DatabaseManager(ctx.obj["db_path"], busy_timeout=config["timeouts"]["storage_seconds"])
        await db.initialize()
        try:
            scheduler = RecapScheduler(db, config)
            with console.status("[bold green]Running recap cycle..."):
                result = await scheduler.run_cycle()
            _print_cycle(result)
            return result
        finally:
            await db.close()

    result = run_async(_run())
    if not result.success:
        sys.exit(1)


@cli.command("add-summary")
@click.argument("text")
@click.option("--timestamp", default=None, help="ISO timestamp (default: now, UTC)")
@click.pass_context
def add_summary(ctx, text: str, timestamp: Optional[str]):
    """Append a summary to the log (stands in for the upstream writer)."""
    ts = None
    if timestamp:
        try:
            ts = dateparse(timestamp)
        except (ValueError, OverflowError):
            console.print(f"[red]Invalid timestamp:[/red] {timestamp}")
            sys.exit(1)

    async def _run():
        db = DatabaseManager(ctx.obj["db_path"])
        await db.initialize()
        try:
            summary = await db.insert_summary(text, ts)
            console.print(f"[green]Added summary {summary.id}[/green] at {summary.timestamp.isoformat()}")
        finally:
            await db.close()

    run_async(_run())


@cli.command()
@click.option("--limit", "-n", default=10, help="Max digests to show")
@click.pass_context
def digests(ctx, limit: int):
    """List the most recent digests."""

    async def _run():
        db = DatabaseManager(ctx.obj["db_path"])
        await db.initialize()
        try:
            rows = await db.get_digests(limit=limit)
            if not rows:
                console.print("[yellow]No digests yet.[/yellow]")
                return

            table = Table(title="Daily Digests")
            table.add_column("ID", style="cyan", justify="right")
            table.add_column("Created", width=20)
            table.add_column("Covers", justify="right")
            table.add_column("Text", max_width=80)
            for d in rows:
                table.add_row(
                    str(d.id),
                    d.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                    ", ".join(str(i) for i in d.covered_summary_ids),
                    d.text[:200],
                )
            console.print(table)
        finally:
            await db.close()

    run_async(_run())


@cli.command()
@click.pass_context
def status(ctx):
    """Show database counts, the current watermark and the pending set size."""
    config = _load_config_or_exit(ctx.obj["config_path"])

    async def _run():
        db = DatabaseManager(ctx.obj["db_path"], busy_timeout=config["timeouts"]["storage_seconds"])
        await db.initialize()
        try:
            stats = await db.get_stats()
            watermark = await WatermarkResolver(db, config).resolve()
            pending = await PendingSetLoader(db, config).load(watermark)

            console.print("\n[bold]Recap Status[/bold]")
            console.print(f"  Path: {ctx.obj['db_path']}")
            console.print(f"  Size: {stats['db_size_bytes'] / 1024:.1f} KB")
            console.print(f"  Summaries: {stats['total_summaries']}")
            console.print(f"  Digests: {stats['total_digests']}")
            console.print(f"  Never covered: {stats['uncovered_summaries']}")
            console.print(f"  Watermark mode: {config['watermark']['mode']}")
            if watermark:
                console.print(
                    f"  Watermark: digest {watermark.digest_id} at {watermark.timestamp.isoformat()}"
                )
            else:
                console.print("  Watermark: none (no digest yet)")
            console.print(f"  Pending for next cycle: {len(pending)}")
        finally:
            await db.close()

    run_async(_run())


@cli.command()
@click.pass_context
def vacuum(ctx):
    """Vacuum the database."""

    async def _run():
        db = DatabaseManager(ctx.obj["db_path"])
        await db.initialize()
        try:
            with console.status("[bold green]Vacuuming database..."):
                await db.vacuum()
            console.print("[green]Database vacuumed successfully")
            ok = await db.integrity_check()
            console.print(f"Integrity check: {'[green]ok' if ok else '[red]FAILED'}")
        finally:
            await db.close()

    run_async(_run())


def main():
    cli()


if __name__ == "__main__":
    main()
