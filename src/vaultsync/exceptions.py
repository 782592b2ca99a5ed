# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/exceptions.py

"""Exception types for vaultsync.

ConfigurationError and BusyError are fatal for the call that raised them.
StorageError is fatal when it affects the shared upsert statement, otherwise
it is counted per row. FileError is always recoverable at the item level.
"""


class VaultSyncError(Exception):
    """Base class for vaultsync errors."""


class ConfigurationError(VaultSyncError):
    """Missing or invalid setting, or an unreadable required path."""


class StorageError(VaultSyncError):
    """Statement preparation or execution failed."""


class FileError(VaultSyncError):
    """Missing source file, directory creation or copy failure."""


class BusyError(VaultSyncError):
    """A run is already active for this status store."""
