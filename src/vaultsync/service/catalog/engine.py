# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/catalog/engine.py

"""File vault catalog.

Walks a source tree, builds one catalog row per file from the configured
mapping, classifies it against the stored row, upserts it and runs the
configured copy actions into the vault.
"""

import os
import shutil
import stat
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from loguru import logger
from pydantic import BaseModel, Field

from vaultsync.clients.base import BaseClient, FileRecord
from vaultsync.clients.source_tree import SourceTreeClient
from vaultsync.config import CatalogConfig, parse_catalog_config, resolve_path
from vaultsync.exceptions import ConfigurationError, FileError
from vaultsync.expressions import ExpressionEvaluator, now_iso
from vaultsync.service.database.connection import Database, UpsertStatement
from vaultsync.service.delta import Delta, UpsertPlan

MAX_COPIED_EXAMPLES = 5


class CatalogSummary(BaseModel):
    """Counters and itemized errors for one catalog run."""
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    copied: int = 0
    copied_examples: List[str] = Field(default_factory=list)
    errors: List[Dict[str, str]] = Field(default_factory=list)

    def count(self, delta: Delta) -> None:
        if delta == Delta.CREATED:
            self.inserted += 1
        elif delta == Delta.MODIFIED:
            self.updated += 1
        else:
            self.unchanged += 1

    def record_copy(self, destination: str) -> None:
        self.copied += 1
        if len(self.copied_examples) < MAX_COPIED_EXAMPLES:
            self.copied_examples.append(destination)


class VaultCatalog:
    """Keeps a catalog table and a vault directory in sync with a source tree."""

    def __init__(
        self,
        config,
        database: Database,
        project_root: Optional[Path] = None,
        client: Optional[BaseClient] = None,
        clock: Callable[[], str] = now_iso,
    ):
        """Validate the configuration and prepare the vault.

        Args:
            config: CatalogConfig or the equivalent mapping
            database: Catalog database
            project_root: Base for relative source and vault paths
            client: File source; defaults to walking source.search_path
            clock: Source of ISO-8601 timestamps

        Raises:
            ConfigurationError: source missing, vault not creatable, or empty
                key/insert column lists
        """
        self.config: CatalogConfig = parse_catalog_config(config)
        self.database = database
        self.name = self.config.name

        self.source_path = resolve_path(self.config.source.search_path, project_root)
        if not self.source_path.is_dir():
            raise ConfigurationError(f"Source directory not found: {self.source_path}")

        vault = self.config.vault
        self.vault_path = resolve_path(vault.base_path, project_root)
        self.dir_mode = vault.dir_mode
        self.file_mode = vault.file_mode
        if not self.vault_path.is_dir():
            try:
                self.vault_path.mkdir(mode=self.dir_mode, parents=True, exist_ok=True)
                os.chmod(self.vault_path, self.dir_mode)
            except OSError as e:
                raise ConfigurationError(f"Cannot create vault directory {self.vault_path}: {e}") from e
            logger.info(f"Created vault directory {self.vault_path}")

        self.table = self.config.table.name
        self.logic = self.config.table.logic
        self.plan = UpsertPlan.from_logic(self.config.table.keys, self.logic)
        self.evaluator = ExpressionEvaluator.for_vault(vault, self.vault_path, clock=clock)
        self.client = client or SourceTreeClient.from_config(self.config.source, self.source_path)

    # -- row building ------------------------------------------------------------

    def key_values(self, src: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Natural-key values for a source file, None if any is null."""
        values = {}
        for key in self.plan.keys:
            if key in self.logic.map:
                value = self.evaluator.evaluate(self.logic.map[key], {"src": src})
            else:
                value = src.get(key)
            if value is None:
                return None
            values[key] = value
        return values

    def load_existing(self, src: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        values = self.key_values(src)
        if values is None:
            return None
        clauses = " AND ".join(
            f"{self.database.quote_ident(key)} = :k{index}" for index, key in enumerate(self.plan.keys)
        )
        params = {f"k{index}": values[key] for index, key in enumerate(self.plan.keys)}
        sql = f"SELECT * FROM {self.database.quote_ident(self.table)} WHERE {clauses}"
        return self.database.fetch_one(sql, params)

    def build_row(self, context: Dict[str, Any]) -> Dict[str, Any]:
        row: Dict[str, Any] = {}
        for column, expression in self.logic.map.items():
            if not column:
                continue
            row[column] = self.evaluator.evaluate(expression, {**context, "row": row})

        if row.get("stored_file") is None:
            row["stored_file"] = self.evaluator.vault_filename(context, row)
        if row.get("stored_path") is None:
            row["stored_path"] = ""
        row.setdefault("stored_at", None)
        return row

    def apply_flags(self, row: Dict[str, Any], delta: Delta) -> None:
        assignments = getattr(self.logic.flags, self.plan.flag_set(delta))
        context = {"row": dict(row)}
        for column, expression in assignments.items():
            row[column] = self.evaluator.evaluate(expression, context)

    # -- actions -------------------------------------------------------------------

    def copy_file(self, source: str, destination: str) -> None:
        """Copy into the vault, replacing any existing file.

        Raises:
            FileError: directory creation, removal of the old file or the
                copy itself failed
        """
        target = Path(destination)
        try:
            if not target.parent.is_dir():
                target.parent.mkdir(mode=self.dir_mode, parents=True, exist_ok=True)
                os.chmod(target.parent, self.dir_mode)
            if target.exists() or target.is_symlink():
                if not os.access(target, os.W_OK):
                    os.chmod(target, self.file_mode | stat.S_IWUSR)
                target.unlink()
            shutil.copyfile(source, target)
            os.chmod(target, self.file_mode)
        except OSError as e:
            raise FileError(f"Copy failed ({source} -> {destination}): {e}") from e

    def perform_actions(
        self,
        row: Mapping[str, Any],
        src: Mapping[str, Any],
        changed: bool,
        summary: CatalogSummary,
    ) -> None:
        context = {"row": dict(row), "src": src}
        for action in self.logic.actions:
            if action.type.strip().lower() != "file_copy":
                continue
            source = self.evaluator.evaluate(action.from_, context)
            destination = self.evaluator.evaluate(action.to, context)
            if not isinstance(source, str) or not source or not isinstance(destination, str) or not destination:
                logger.trace(f"Copy action without source or destination for {src.get('path')}")
                continue
            if action.only_when_changed and not changed and os.path.exists(destination):
                continue
            self.copy_file(source, destination)
            summary.record_copy(destination)
            logger.debug(f"Copied {source} -> {destination}")

    # -- run -----------------------------------------------------------------------

    def process(self, record: FileRecord, statement: UpsertStatement, summary: CatalogSummary) -> Delta:
        """Catalog one file and run its actions."""
        src = record._asdict()
        existing = self.load_existing(src)
        context: Dict[str, Any] = {"src": src}
        if existing is not None:
            context["existing"] = existing

        row = self.build_row(context)
        delta = self.plan.classify(row, existing)
        self.apply_flags(row, delta)
        if row.get("updated_at") is None:
            row["updated_at"] = self.evaluator.now()

        with self.database.transaction():
            self.database.upsert(statement, row)
        summary.count(delta)
        logger.trace(f"{record.relative_path}: {delta.value}")

        self.perform_actions(row, src, delta != Delta.UNCHANGED, summary)
        return delta

    def run(self) -> CatalogSummary:
        """Catalog every file under the source directory.

        Raises:
            StorageError: the upsert statement cannot be prepared
            ConfigurationError: a mapping expression is invalid
        """
        statement = self.database.prepare_upsert(
            self.table,
            self.plan.keys,
            self.plan.insert_columns,
            self.plan.update_columns,
        )
        records = self.client.discover_files()
        logger.info(f"Catalog {self.name}: {len(records):,} files in {self.source_path}")

        summary = CatalogSummary()
        for record in records:
            summary.processed += 1
            try:
                self.process(record, statement, summary)
            except ConfigurationError:
                raise
            except Exception as e:
                summary.skipped += 1
                summary.errors.append({"path": record.path, "error": str(e)})
                logger.warning(f"Skipped {record.path}: {e}")

        logger.info(
            f"Catalog {self.name}: processed={summary.processed:,} inserted={summary.inserted:,} "
            f"updated={summary.updated:,} unchanged={summary.unchanged:,} "
            f"skipped={summary.skipped:,} copied={summary.copied:,}"
        )
        return summary
