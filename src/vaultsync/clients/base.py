# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/clients/base.py

"""Base client interface for vaultsync."""

from abc import ABC, abstractmethod
from typing import List, NamedTuple


class FileRecord(NamedTuple):
    """Metadata for one discovered source file."""
    path: str  # Absolute path
    relative_path: str  # Path below the search root, "/"-separated
    dir: str  # Parent directory
    file_name: str  # Base name with extension
    name_stem: str  # Base name without extension
    ext: str  # Lower-case extension, no dot
    size: int  # Bytes
    mtime: str  # ISO-8601 with offset
    mtime_raw: int  # Epoch seconds
    mime: str  # Sniffed or extension-derived MIME type


class BaseClient(ABC):
    """Abstract base class for file sources."""

    @abstractmethod
    def discover_files(self) -> List[FileRecord]:
        """Discover files and return one FileRecord per regular file.

        Returns:
            FileRecords sorted by relative path
        """
        pass
