# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/cli/commands/catalog.py

"""Catalog command: walk sources, update catalog rows, copy into vaults."""

import typer
from typing import List, Optional

from vaultsync.cli.common import EXIT_ERROR, cli_errors, open_environment


def main(
    ctx: typer.Context,
    names: Optional[List[str]] = typer.Option(None, "--name", "-n", help="Catalog to run (repeatable, default: all)"),
):
    """Run the configured file catalogs."""
    with cli_errors(), open_environment(ctx) as environment:
        status = environment.run_catalogs(names)

    summary = status.get("summary") or {}
    for name, result in (summary.get("stages") or {}).items():
        if "error" in result:
            typer.echo(f"{name}: FAILED ({result['error']})")
            continue
        typer.echo(
            f"{name}: processed={result['processed']:,} inserted={result['inserted']:,} "
            f"updated={result['updated']:,} unchanged={result['unchanged']:,} "
            f"skipped={result['skipped']:,} copied={result['copied']:,}"
        )
        for error in result.get("errors", []):
            typer.echo(f"  skipped {error['path']}: {error['error']}")

    if summary.get("failed_stages"):
        raise typer.Exit(code=EXIT_ERROR)
