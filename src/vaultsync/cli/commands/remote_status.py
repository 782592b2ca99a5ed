# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/cli/commands/remote_status.py

"""Remote status command: poll the configured peers."""

import typer

from vaultsync.cli.common import EXIT_ERROR, cli_errors, echo_json, open_environment


def main(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
):
    """Query the status of remote peers."""
    with cli_errors(), open_environment(ctx) as environment:
        if not environment.config.remote.enabled:
            typer.echo("Remote peer monitoring is disabled")
            return
        peers = environment.remote_peers()
        if not peers:
            typer.echo("No remote peers configured")
            return
        records = environment.remote_client().fetch_all_status(peers)

    if as_json:
        echo_json(records)
    else:
        for record in records:
            if record["status"] == "ok":
                data = record["data"]
                typer.echo(
                    f"{record['name']}: {data['state']} "
                    f"({data['processed']}/{data['total']}) {data['message']}".rstrip()
                )
            else:
                typer.echo(f"{record['name']}: ERROR {record['error']}")

    if any(record["status"] != "ok" for record in records):
        raise typer.Exit(code=EXIT_ERROR)
