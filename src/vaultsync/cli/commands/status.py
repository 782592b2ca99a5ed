# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/cli/commands/status.py

"""Status command for querying run state and the run journal."""

import typer
from typing import Optional

from vaultsync.cli.common import cli_errors, echo_json, open_environment


def main(
    ctx: typer.Context,
    logs: bool = typer.Option(False, "--logs", "-l", help="Show journal entries"),
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Only entries from this day (YYYY-MM-DD)"),
    level: str = typer.Option("info", "--level", help="Minimum level: info, warning or error"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Only the newest N entries"),
    reset: bool = typer.Option(False, "--reset", help="Reset the job to idle"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
):
    """Show run status and the run journal."""
    if level.lower() not in ("info", "warning", "error"):
        raise typer.BadParameter("level must be info, warning or error", param_hint="--level")

    with cli_errors(), open_environment(ctx) as environment:
        orchestrator = environment.orchestrator
        if reset:
            orchestrator.reset()
            typer.echo(f"Job {orchestrator.job} reset to idle")
        status = orchestrator.get_status()
        entries = orchestrator.read_logs(date=date, limit=limit, min_level=level) if logs else []

    if as_json:
        echo_json({"status": status, "logs": entries} if logs else {"status": status})
        return

    typer.echo(f"Job:       {status['job']}")
    typer.echo(f"State:     {status['state']}")
    if status.get("stage"):
        typer.echo(f"Stage:     {status['stage']}")
    if status.get("message"):
        typer.echo(f"Message:   {status['message']}")
    typer.echo(f"Progress:  {status['processed']:,} / {status['total']:,}")
    for field in ("started_at", "updated_at", "finished_at"):
        if status.get(field):
            typer.echo(f"{field + ':':<10} {status[field]}")

    for entry in entries:
        stage = f" [{entry['stage']}]" if entry.get("stage") else ""
        typer.echo(f"{entry['created_at']} | {entry['level'].upper():<8}{stage} {entry['message']}")
