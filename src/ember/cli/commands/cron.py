"""Cron job management commands."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Annotated, Any

import typer

from ember.cli.console import console, create_table, dim, error, success, warning

if TYPE_CHECKING:
    from ember.config import EmberConfig
    from ember.cron import CronService

app = typer.Typer(
    name="cron",
    help="Manage scheduled jobs.",
    no_args_is_help=True,
)


def register(root: typer.Typer) -> None:
    root.add_typer(app, name="cron")


def _run(coro: Coroutine[Any, Any, None]) -> None:
    """Run an async cron operation, reporting rejected input as an error."""
    try:
        asyncio.run(coro)
    except ValueError as e:
        error(str(e))
        raise typer.Exit(1) from None


def _get_config(ctx: typer.Context) -> EmberConfig:
    from ember.config import EmberConfig, get_default_config

    obj = ctx.find_root().obj
    return obj if isinstance(obj, EmberConfig) else get_default_config()


def _create_service(config: EmberConfig) -> CronService:
    from ember.cron import CronService

    return CronService(config.cron.store_path, timezone=config.timezone)


def format_countdown(target_ms: int | None, now_ms: int | None = None) -> str:
    """Format a countdown string for the next run time."""
    if target_ms is None:
        return "[dim]-[/dim]"

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if target_ms <= now_ms:
        return "[green]now[/green]"

    total_seconds = (target_ms - now_ms) // 1000
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours, minutes = divmod(total_minutes, 60)
    if hours < 24:
        return f"in {hours}h {minutes}m" if minutes else f"in {hours}h"

    days, hours = divmod(hours, 24)
    return f"in {days}d {hours}h" if hours else f"in {days}d"


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    show_all: Annotated[
        bool, typer.Option("--all", "-a", help="Include disabled jobs")
    ] = False,
) -> None:
    """List scheduled jobs."""
    _run(_cron_list(_get_config(ctx), show_all))


@app.command("add")
def add_cmd(
    ctx: typer.Context,
    name: Annotated[str, typer.Option("--name", "-n", help="Job name")],
    message: Annotated[
        str, typer.Option("--message", "-m", help="Message for the agent")
    ],
    every: Annotated[
        int | None, typer.Option("--every", "-e", help="Run every N seconds")
    ] = None,
    cron_expr: Annotated[
        str | None,
        typer.Option("--cron", help="Cron expression (e.g. '0 9 * * *')"),
    ] = None,
    tz: Annotated[
        str | None,
        typer.Option("--tz", help="IANA timezone for --cron (e.g. 'Europe/Paris')"),
    ] = None,
    at: Annotated[
        str | None, typer.Option("--at", help="Run once at time (ISO 8601)")
    ] = None,
    deliver: Annotated[
        bool, typer.Option("--deliver", "-d", help="Deliver response to channel")
    ] = False,
    to: Annotated[
        str | None, typer.Option("--to", help="Recipient for delivery")
    ] = None,
    channel: Annotated[
        str | None,
        typer.Option("--channel", help="Channel for delivery (e.g. 'telegram')"),
    ] = None,
    delete_after_run: Annotated[
        bool,
        typer.Option("--delete-after-run", help="Remove a one-time job after it runs"),
    ] = False,
) -> None:
    """Add a scheduled job."""
    if tz and not cron_expr:
        error("--tz can only be used with --cron")
        raise typer.Exit(1)

    chosen = [opt for opt in (every, cron_expr, at) if opt is not None]
    if len(chosen) != 1:
        error("Specify exactly one of --every, --cron, or --at")
        raise typer.Exit(1)

    _run(
        _cron_add(
            _get_config(ctx),
            name=name,
            message=message,
            every=every,
            cron_expr=cron_expr,
            tz=tz,
            at=at,
            deliver=deliver,
            to=to,
            channel=channel,
            delete_after_run=delete_after_run,
        )
    )


@app.command("remove")
def remove_cmd(
    ctx: typer.Context,
    job_id: Annotated[str, typer.Argument(help="Job ID to remove")],
) -> None:
    """Remove a scheduled job."""
    _run(_cron_remove(_get_config(ctx), job_id))


@app.command("enable")
def enable_cmd(
    ctx: typer.Context,
    job_id: Annotated[str, typer.Argument(help="Job ID")],
    disable: Annotated[
        bool, typer.Option("--disable", help="Disable instead of enable")
    ] = False,
) -> None:
    """Enable (or disable) a job."""
    _run(_cron_enable(_get_config(ctx), job_id, not disable))


@app.command("run")
def run_cmd(
    ctx: typer.Context,
    job_id: Annotated[str, typer.Argument(help="Job ID to run")],
) -> None:
    """Run a job now, even if it is disabled."""
    _run(_cron_run(_get_config(ctx), job_id))


@app.command("status")
def status_cmd(ctx: typer.Context) -> None:
    """Show job counts and the next scheduled wake."""
    _run(_cron_status(_get_config(ctx)))


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


async def _cron_list(config: EmberConfig, show_all: bool) -> None:
    service = _create_service(config)
    jobs = await service.list_jobs(include_disabled=show_all)

    if not jobs:
        warning("No scheduled jobs.")
        return

    table = create_table(
        "Scheduled Jobs",
        [
            ("ID", "dim"),
            ("Name", {}),
            ("Schedule", {}),
            ("Status", {}),
            ("Next Run", {}),
            ("Last", {}),
        ],
    )
    for job in jobs:
        status = "[green]enabled[/green]" if job.enabled else "[dim]disabled[/dim]"
        last = job.state.last_status or "-"
        if job.state.last_status == "error":
            last = "[red]error[/red]"
        table.add_row(
            job.id,
            job.name,
            job.schedule.describe(),
            status,
            format_countdown(job.state.next_run_at_ms),
            last,
        )

    console.print(table)
    dim(f"Total: {len(jobs)} job(s)")


async def _cron_add(
    config: EmberConfig,
    *,
    name: str,
    message: str,
    every: int | None,
    cron_expr: str | None,
    tz: str | None,
    at: str | None,
    deliver: bool,
    to: str | None,
    channel: str | None,
    delete_after_run: bool,
) -> None:
    from ember.cron import JobDefinition, Schedule, parse_at

    if every is not None:
        schedule = Schedule.every(every * 1000)
    elif cron_expr is not None:
        schedule = Schedule.cron(cron_expr, tz)
    elif at is not None:
        schedule = Schedule.at(parse_at(at, config.timezone))
    else:
        error("Specify exactly one of --every, --cron, or --at")
        raise typer.Exit(1)

    service = _create_service(config)
    job = await service.add_job(
        JobDefinition(
            name=name,
            schedule=schedule,
            message=message,
            deliver=deliver,
            channel=channel,
            to=to,
            delete_after_run=delete_after_run,
        )
    )
    success(f"Added job '{job.name}' ({job.id})")
    if job.state.next_run_at_ms is None:
        warning("Job has no upcoming run")


async def _cron_remove(config: EmberConfig, job_id: str) -> None:
    service = _create_service(config)
    if await service.remove_job(job_id):
        success(f"Removed job {job_id}")
        return
    error(f"Job {job_id} not found")
    raise typer.Exit(1)


async def _cron_enable(config: EmberConfig, job_id: str, enabled: bool) -> None:
    service = _create_service(config)
    job = await service.enable_job(job_id, enabled)
    if job is None:
        error(f"Job {job_id} not found")
        raise typer.Exit(1)
    success(f"Job '{job.name}' {'enabled' if enabled else 'disabled'}")


async def _cron_run(config: EmberConfig, job_id: str) -> None:
    if not config.cron.enabled:
        error("Cron is disabled in configuration")
        raise typer.Exit(1)

    service = _create_service(config)
    if not await service.run_job(job_id):
        error(f"Job {job_id} not found")
        raise typer.Exit(1)

    job = await service.get_job(job_id)
    if job is not None and job.state.last_status == "error":
        error(f"Job failed: {job.state.last_error}")
        raise typer.Exit(1)
    success("Job executed")


async def _cron_status(config: EmberConfig) -> None:
    service = _create_service(config)
    status = await service.get_status()
    if not config.cron.enabled:
        warning("Cron is disabled in configuration")
    console.print(f"Store: {service.store.path}")
    console.print(f"Jobs: {status.total_jobs} ({status.enabled_jobs} enabled)")
    if status.next_wake_at is not None:
        console.print(
            f"Next wake: {status.next_wake_at.isoformat(timespec='seconds')} "
            f"({format_countdown(status.next_wake_at_ms)})"
        )
    else:
        dim("Next wake: none")
