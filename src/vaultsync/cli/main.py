# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/cli/main.py

"""Main CLI entry point for vaultsync."""

import typer
from typing import Optional

from vaultsync.cli.commands.catalog import main as catalog_command
from vaultsync.cli.commands.remote_status import main as remote_status_command
from vaultsync.cli.commands.status import main as status_command
from vaultsync.cli.commands.transfer import main as transfer_command
from vaultsync.logging.setup import setup_logging

app = typer.Typer(
    name="vaultsync",
    help="Catalog source files into a vault and replicate them to remote peers",
    no_args_is_help=True,
)

app.command("catalog", help="Run the configured file catalogs")(catalog_command)
app.command("transfer", help="Transfer databases, directories or pending items")(transfer_command)
app.command("status", help="Show run status and the run journal")(status_command)
app.command("remote-status", help="Query the status of remote peers")(remote_status_command)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", envvar="VAULTSYNC_CONFIG", help="Path to config file (default: ./vaultsync.yaml)"
    ),
):
    """vaultsync: file vault catalog and replication."""
    setup_logging(verbose=verbose)
    ctx.obj = {"verbose": verbose, "config": config}


if __name__ == "__main__":
    app()
