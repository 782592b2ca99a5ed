# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/logging/setup.py

"""Loguru configuration shared by the CLI and long-running jobs."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}"


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure loguru for console output, plus an optional rotating file.

    Args:
        verbose: Log DEBUG and above instead of INFO and above
        log_file: Optional file sink, rotated daily and kept for 30 days
    """
    logger.remove()  # Remove default handler
    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stdout, format=LOG_FORMAT, level=level)

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            format=LOG_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="30 days",
            enqueue=False,
        )
        logger.debug(f"Logging to {log_file}")
