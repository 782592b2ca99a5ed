# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/cli/common.py

"""Helpers shared by the CLI commands."""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import typer
from loguru import logger

from vaultsync.config import load_config
from vaultsync.exceptions import BusyError, VaultSyncError
from vaultsync.logging.setup import setup_logging
from vaultsync.service.environment import Environment

EXIT_ERROR = 1
EXIT_BUSY = 2


@contextmanager
def cli_errors() -> Iterator[None]:
    """Turn vaultsync errors into a message and an exit code."""
    try:
        yield
    except BusyError as e:
        typer.echo(f"Busy: {e}", err=True)
        raise typer.Exit(code=EXIT_BUSY)
    except VaultSyncError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_ERROR)


@contextmanager
def open_environment(ctx: typer.Context) -> Iterator[Environment]:
    """Load the configuration named on the command line and build an Environment."""
    options = ctx.obj or {}
    config_path = Path(options.get("config") or "vaultsync.yaml")
    config = load_config(config_path)
    if config.log_file is not None:
        log_file = config.log_file
        if not log_file.is_absolute() and config.project_root is not None:
            log_file = config.project_root / log_file
        setup_logging(verbose=options.get("verbose", False), log_file=log_file)

    environment = Environment(config)
    try:
        yield environment
    finally:
        environment.close()


def echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))
