# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/transfer/columns.py

"""Column resolution for pending-artifact tables.

Deployments name their columns differently (ID vs id, Bildname vs filename,
uploaded vs update). A ColumnMap is resolved once per table, from explicit
overrides or by probing the table's columns, and then passed around as an
immutable value.
"""

from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from loguru import logger

from vaultsync.exceptions import ConfigurationError
from vaultsync.service.database.connection import Database

CANDIDATES: Dict[str, List[str]] = {
    "id": ["id", "image_id", "document_id", "bild_id", "dokument_id"],
    "flag": ["uploaded", "transferred", "synced", "delivered", "exported", "update", "pending"],
    "filename": ["filename", "file_name", "bildname", "dateiname", "name"],
    "title": ["title", "titel"],
    "stored_file": ["stored_file"],
    "stored_path": ["stored_path"],
    "hash": ["hash", "checksum", "file_hash", "sha256", "md5"],
}

# Flags named like these are 0 while pending and 1 once delivered;
# anything else (update, pending, ...) is 1 while pending.
CLEARED_WHEN_SET = frozenset(["uploaded", "transferred", "synced", "delivered", "exported"])


class ColumnMap(NamedTuple):
    """Resolved column names for one table; None when the table lacks one."""
    table: str
    id: str
    flag: str
    filename: Optional[str]
    title: Optional[str]
    stored_file: Optional[str]
    stored_path: Optional[str]
    hash: Optional[str]
    pending_value: Any
    cleared_value: Any


def pending_semantics(flag_column: str) -> tuple:
    """(pending, cleared) values implied by a flag column's name."""
    if flag_column.lower() in CLEARED_WHEN_SET:
        return 0, 1
    return 1, 0


class ColumnResolver:
    """Builds ColumnMaps from table introspection."""

    def __init__(self, database: Database):
        self.database = database

    def resolve(self, table: str, overrides: Optional[Mapping[str, Any]] = None) -> ColumnMap:
        """Resolve the column map for a table.

        Args:
            table: Table name
            overrides: Column names (and optionally pending_value /
                cleared_value) that take precedence over probing

        Raises:
            ConfigurationError: no id or flag column, no filename or
                stored_file column, or an override names a missing column
        """
        if not table:
            raise ConfigurationError("No table configured for pending transfers")
        overrides = dict(overrides or {})
        available = {name.lower(): name for name in self.database.columns(table)}

        resolved: Dict[str, Optional[str]] = {}
        for field, candidates in CANDIDATES.items():
            override = overrides.get(field)
            if override:
                actual = available.get(str(override).lower())
                if actual is None:
                    raise ConfigurationError(f"{table}: configured {field} column {override!r} does not exist")
                resolved[field] = actual
                continue
            resolved[field] = next(
                (available[name] for name in candidates if name in available),
                None,
            )

        if resolved["id"] is None:
            raise ConfigurationError(f"{table}: no id column found")
        if resolved["flag"] is None:
            raise ConfigurationError(f"{table}: no pending flag column found")
        if resolved["filename"] is None and resolved["stored_file"] is None:
            raise ConfigurationError(f"{table}: no filename or stored_file column found")

        pending, cleared = pending_semantics(resolved["flag"])
        if "pending_value" in overrides:
            pending = overrides["pending_value"]
        if "cleared_value" in overrides:
            cleared = overrides["cleared_value"]

        columns = ColumnMap(table=table, pending_value=pending, cleared_value=cleared, **resolved)
        logger.debug(f"Resolved columns for {table}: {columns}")
        return columns
