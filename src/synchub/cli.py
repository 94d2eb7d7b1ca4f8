"""CLI entry point for SyncHub.

This module provides the command-line interface for SyncHub: running the
scheduler, triggering syncs by hand, and inspecting or fixing provider
records in the shared workspace.

Commands:
    init: Create a default .synchub.yaml
    run: Run the scheduler until interrupted
    tick: Run one scheduler tick and wait for its runs (for cron)
    sync: Sync one provider, or all of them
    status: Show every provider record
    log: Show a provider's activity log
    reset-stuck: Return providers stuck in "syncing" to idle
    enable / disable / interval: Change a provider's settings

Providers are loaded from the "synchub.providers" entry-point group.

Example:
    synchub init
    synchub sync github-sync --full
    synchub status
"""

from __future__ import annotations

import asyncio
import signal
import sys
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from synchub import __version__
from synchub.constants import CONFIG_FILE_NAME
from synchub.exceptions import SyncHubError
from synchub.logging import LogContext, get_logger, setup_logging

logger = get_logger(__name__)

T = TypeVar("T")


def _success(msg: str) -> str:
    """Format success message with green checkmark."""
    return click.style("✓", fg="green") + " " + msg


def _error(msg: str) -> str:
    """Format error message with red X."""
    return click.style("✗", fg="red") + " " + msg


def _info(msg: str) -> str:
    """Format info message with blue arrow."""
    return click.style("→", fg="blue") + " " + msg


def _load_config(ctx: click.Context) -> Any:
    from synchub.config import load_config

    config_path: Path | None = ctx.obj.get("config_path")
    try:
        return load_config(config_path)
    except SyncHubError as e:
        click.echo(_error(str(e)), err=True)
        sys.exit(1)


def _with_hub(
    ctx: click.Context,
    action: Callable[[Any], Awaitable[T]],
    *,
    discover: bool = False,
) -> T:
    """Start a hub without its scheduler, run action(hub), close the hub.

    Exits with status 1 on SyncHub errors.
    """
    from synchub.hub import SyncHub

    config = _load_config(ctx)
    verbose = ctx.obj.get("verbose", False)

    async def runner() -> T:
        hub = SyncHub(config)
        await hub.start(start_scheduler=False)
        try:
            if discover:
                await hub.discover_providers()
            return await action(hub)
        finally:
            await hub.close()

    try:
        return asyncio.run(runner())
    except SyncHubError as e:
        if verbose:
            import traceback

            click.echo(traceback.format_exc(), err=True)
        click.echo(_error(str(e)), err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="synchub")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Config file (default: nearest {CONFIG_FILE_NAME})",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """SyncHub - schedule and run sync providers over a shared workspace."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path

    setup_logging("DEBUG" if verbose else "WARNING", include_timestamp=verbose)


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def init(force: bool) -> None:
    """Create .synchub.yaml with default settings."""
    from synchub.config import write_default_config

    config_path = Path(CONFIG_FILE_NAME)

    if config_path.exists() and not force:
        click.echo(f"Config file already exists: {config_path}")
        if not click.confirm("Overwrite?", default=False):
            click.echo("Aborted.")
            return

    write_default_config(config_path)
    click.echo(_success(f"Created {config_path}"))
    click.echo(_info("Install provider packages, then run 'synchub run'"))


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the scheduler until interrupted (Ctrl+C)."""
    from synchub.hub import SyncHub

    config = _load_config(ctx)
    verbose = ctx.obj.get("verbose", False)
    setup_logging(config.logging.level if not verbose else "DEBUG")

    async def run_hub() -> None:
        hub = SyncHub(config)
        stopped = asyncio.Event()

        # Handle Ctrl+C gracefully
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stopped.set)

        await hub.start(start_scheduler=True)
        try:
            providers = await hub.discover_providers()
            click.echo(_info(f"Loaded {len(providers)} provider(s)"))
            click.echo(_success("Scheduler started. Press Ctrl+C to stop."))
            await hub.tick()
            await stopped.wait()
        finally:
            await hub.close()

    with LogContext(logger, instance=uuid.uuid4().hex[:8]):
        try:
            asyncio.run(run_hub())
        except SyncHubError as e:
            click.echo(_error(f"Hub error: {e}"), err=True)
            sys.exit(1)

    click.echo()
    click.echo(_success("Scheduler stopped."))


@cli.command()
@click.pass_context
def tick(ctx: click.Context) -> None:
    """Run one scheduler tick, wait for its runs, exit.

    Useful for cron jobs: each invocation is a separate instance that
    coordinates with the others through the record locks.
    """

    async def action(hub: Any) -> list[str]:
        dispatched = await hub.tick()
        await hub.drain()
        return dispatched

    with LogContext(logger, instance=uuid.uuid4().hex[:8]):
        dispatched = _with_hub(ctx, action, discover=True)

    if dispatched:
        click.echo(_success(f"Ran {len(dispatched)} provider(s): {', '.join(dispatched)}"))
    else:
        click.echo(_info("Nothing due."))


@cli.command()
@click.argument("plugin_id", required=False)
@click.option("--full", is_flag=True, help="Forget last_run and fetch everything")
@click.option("--all", "sync_all", is_flag=True, help="Sync every enabled provider")
@click.pass_context
def sync(ctx: click.Context, plugin_id: str | None, full: bool, sync_all: bool) -> None:
    """Sync PLUGIN_ID now, or every enabled provider with --all."""
    if sync_all == bool(plugin_id):
        raise click.UsageError("Give either PLUGIN_ID or --all.")

    if sync_all:
        outcomes = _with_hub(ctx, lambda hub: hub.sync_all(), discover=True)
    else:
        outcomes = [
            _with_hub(
                ctx,
                lambda hub: hub.request_sync(plugin_id, full=full, manual=True),
                discover=True,
            )
        ]

    failed = False
    for outcome in outcomes:
        if outcome.state == "error":
            failed = True
            click.echo(_error(f"{outcome.plugin_id}: {outcome.error}"))
        elif outcome.state == "skipped":
            click.echo(_info(f"{outcome.plugin_id}: skipped ({outcome.skipped_reason})"))
        else:
            summary = outcome.result.summary if outcome.result else "Sync complete"
            click.echo(_success(f"{outcome.plugin_id}: {summary}"))

    if not outcomes:
        click.echo(_info("No syncs enabled."))

    if failed:
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show every provider record and the overall hub state."""
    from synchub.utils import format_timestamp

    async def action(hub: Any) -> tuple[list[Any], Any, dict[str, str]]:
        records = await hub.store.list_records()
        locks: dict[str, str] = {}
        for record in records:
            if record.sync_lock is None:
                locks[record.plugin_id] = "-"
            elif hub.locks.is_stale(record.sync_lock):
                locks[record.plugin_id] = "stale"
            else:
                locks[record.plugin_id] = "held"
        return records, await hub.summary(), locks

    records, summary, locks = _with_hub(ctx, action)

    click.echo()
    click.echo(click.style("SyncHub Status", bold=True))
    click.echo()

    if not records:
        click.echo("  No providers registered yet.")
        return

    click.echo(
        f"  {'PROVIDER':<24} {'ENABLED':<8} {'STATUS':<8} {'INTERVAL':<9} {'LAST RUN':<17} LOCK"
    )
    for record in records:
        last_run = format_timestamp(record.last_run) if record.last_run else "never"
        enabled = "yes" if record.enabled else "no"
        click.echo(
            f"  {record.plugin_id:<24} {enabled:<8} {record.status:<8} {record.interval:<9} "
            f"{last_run:<17} {locks[record.plugin_id]}"
        )
        if record.last_error:
            click.echo(f"    {click.style(record.last_error, fg='red')}")

    click.echo()
    click.echo(f"  {summary.message}")


@cli.command()
@click.argument("plugin_id")
@click.option("--limit", "-n", type=int, default=None, help="Show only the newest N entries")
@click.pass_context
def log(ctx: click.Context, plugin_id: str, limit: int | None) -> None:
    """Show PLUGIN_ID's activity log, oldest first."""

    async def action(hub: Any) -> list[Any]:
        return await hub.activity.entries(plugin_id, limit)

    entries = _with_hub(ctx, action)

    if not entries:
        click.echo(_info(f"No activity for {plugin_id}."))
        return

    for entry in entries:
        click.echo(entry.render())


@cli.command("reset-stuck")
@click.pass_context
def reset_stuck(ctx: click.Context) -> None:
    """Return every provider stuck in "syncing" to idle."""
    count = _with_hub(ctx, lambda hub: hub.reset_stuck_syncs())

    if count:
        click.echo(_success(f"Reset {count} stuck sync(s)"))
    else:
        click.echo(_info("No stuck syncs found"))


@cli.command()
@click.argument("plugin_id")
@click.pass_context
def enable(ctx: click.Context, plugin_id: str) -> None:
    """Let the scheduler and manual triggers run PLUGIN_ID."""
    _with_hub(ctx, lambda hub: hub.set_enabled(plugin_id, True))
    click.echo(_success(f"Enabled {plugin_id}"))


@cli.command()
@click.argument("plugin_id")
@click.pass_context
def disable(ctx: click.Context, plugin_id: str) -> None:
    """Stop PLUGIN_ID from running."""
    _with_hub(ctx, lambda hub: hub.set_enabled(plugin_id, False))
    click.echo(_success(f"Disabled {plugin_id}"))


@cli.command()
@click.argument("plugin_id")
@click.argument("value")
@click.pass_context
def interval(ctx: click.Context, plugin_id: str, value: str) -> None:
    """Set PLUGIN_ID's interval to VALUE ("manual", "30s", "15m", "2h", "1d")."""
    _with_hub(ctx, lambda hub: hub.set_interval(plugin_id, value))
    click.echo(_success(f"{plugin_id} interval set to {value}"))


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
