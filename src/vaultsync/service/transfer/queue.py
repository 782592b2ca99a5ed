# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/transfer/queue.py

"""Replication of catalog artifacts to a target location.

Whole-store and whole-directory copies, plus per-item transfers of rows
whose pending flag is set. A single item is re-checked for pending state,
copied, size-verified and only then marked cleared. Nothing prevents two
callers from transferring the same id at the same time.
"""

import hmac
import os
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger
from pydantic import BaseModel, Field

from vaultsync.config import TransferConfig, resolve_path
from vaultsync.exceptions import ConfigurationError, FileError, VaultSyncError
from vaultsync.service.database.connection import Database

from .columns import ColumnMap, ColumnResolver

KINDS = ("images", "documents")


class TransferOutcome(BaseModel):
    """Result of transferring one pending item."""
    success: bool
    id: Any = None
    filename: str = ""
    size: int = 0
    duration: float = 0.0
    skipped: bool = False
    error: Optional[str] = None
    target: Optional[str] = None


class BatchResult(BaseModel):
    """Aggregate of a pending-set transfer."""
    success: bool = True
    total: int = 0
    transferred: int = 0
    skipped: int = 0
    failed: int = 0
    total_size: int = 0
    duration: float = 0.0
    errors: List[Dict[str, Any]] = Field(default_factory=list)


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class ReplicationQueue:
    """Ships databases, directories and pending items to their targets."""

    def __init__(
        self,
        config: TransferConfig,
        database: Optional[Database] = None,
        columns: Optional[Mapping[str, ColumnMap]] = None,
        orchestrator=None,
        project_root: Optional[Path] = None,
    ):
        """Initialize the queue.

        Args:
            config: Transfer settings
            database: Catalog database holding the pending tables
            columns: Column maps per kind ("images", "documents")
            orchestrator: RunOrchestrator whose journal records transfers
            project_root: Base for relative source and target paths
        """
        self.config = config
        self.database = database
        self.orchestrator = orchestrator
        self.project_root = project_root
        self._columns: Dict[str, ColumnMap] = dict(columns or {})

    # -- helpers -------------------------------------------------------------

    def validate_api_key(self, provided: Optional[str]) -> bool:
        configured = self.config.api_key or ""
        if not configured or not provided:
            return False
        return hmac.compare_digest(configured.encode("utf-8"), provided.encode("utf-8"))

    def _path(self, value: str) -> Path:
        return resolve_path(value, self.project_root)

    def columns(self, kind: str) -> ColumnMap:
        """Column map for a kind, resolved on first use when none was given."""
        if kind not in KINDS:
            raise ConfigurationError(f"Unknown transfer kind: {kind}")
        if kind not in self._columns:
            if self.database is None:
                raise ConfigurationError("Pending transfers need a catalog database")
            media = self.config.media(kind)
            self._columns[kind] = ColumnResolver(self.database).resolve(media.table, media.columns)
        return self._columns[kind]

    def _log_transfer(self, kind: str, result: Mapping[str, Any]) -> None:
        if not self.config.log_transfers or self.orchestrator is None:
            return
        context = {
            "type": kind,
            "success": bool(result.get("success", False)),
            "duration": result.get("duration", 0),
        }
        for key in ("size", "files_copied", "directories_created", "total_size", "transferred", "failed"):
            if key in result:
                context[key] = result[key]
        if result.get("errors"):
            context["errors"] = len(result["errors"])
        self.orchestrator.info(f"Transfer {kind}", context=context, stage="transfer")

    def _require_paths(self, kind: str, source: str, target: str) -> None:
        if not source or not target:
            raise ConfigurationError(f"{kind}: source or target path not configured")

    # -- whole-store / whole-directory transfers -------------------------------

    def transfer_database(self) -> Dict[str, Any]:
        """Copy the configured database file to its target.

        Raises:
            ConfigurationError: source or target not configured
            FileError: missing source, target directory not creatable,
                file over the size cap, or failed copy
        """
        settings = self.config.database
        if not settings.enabled:
            return {"success": False, "skipped": True, "message": "Database transfer is disabled"}
        self._require_paths("database", settings.source, settings.target)

        source = self._path(settings.source)
        target = self._path(settings.target)
        if not source.is_file():
            raise FileError(f"Source database not found: {source}")
        try:
            target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise FileError(f"Cannot create target directory {target.parent}: {e}") from e

        size = source.stat().st_size
        if size > self.config.max_file_size:
            raise FileError(f"Database too large: {size} bytes (max {self.config.max_file_size})")

        start = time.monotonic()
        try:
            shutil.copyfile(source, target)
        except OSError as e:
            raise FileError(f"Database transfer failed: {source} -> {target}: {e}") from e

        result = {
            "success": True,
            "source": str(source),
            "target": str(target),
            "size": size,
            "duration": round(time.monotonic() - start, 3),
            "timestamp": _timestamp(),
        }
        logger.info(f"Transferred database {source} -> {target} ({size:,} bytes)")
        self._log_transfer("database", result)
        return result

    def transfer_directory(self, kind: str) -> Dict[str, Any]:
        """Copy a media directory recursively, skipping oversized files."""
        settings = self.config.media(kind)
        if not settings.enabled:
            return {"success": False, "skipped": True, "message": f"{kind} transfer is disabled"}
        self._require_paths(kind, settings.source, settings.target)

        source = self._path(settings.source)
        target = self._path(settings.target)
        if not source.is_dir():
            raise FileError(f"Source directory not found: {source}")
        try:
            target.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise FileError(f"Cannot create target directory {target}: {e}") from e

        start = time.monotonic()
        files = dirs = total_size = 0
        errors: List[str] = []
        for dirpath, dirnames, filenames in os.walk(source):
            dirnames.sort()
            relative_dir = Path(dirpath).relative_to(source)
            for name in dirnames:
                destination = target / relative_dir / name
                if destination.is_dir():
                    continue
                try:
                    destination.mkdir(mode=0o755, parents=True)
                    dirs += 1
                except OSError as e:
                    errors.append(f"Cannot create directory {destination}: {e}")
            for name in sorted(filenames):
                item = Path(dirpath) / name
                try:
                    size = item.stat().st_size
                except OSError as e:
                    # dangling symlink or removed during the walk
                    errors.append(f"Cannot read {item}: {e}")
                    continue
                if size > self.config.max_file_size:
                    errors.append(f"File too large (skipped): {item} ({size} bytes)")
                    continue
                try:
                    shutil.copyfile(item, target / relative_dir / name)
                except OSError as e:
                    errors.append(f"Cannot copy {item}: {e}")
                    continue
                files += 1
                total_size += size

        result: Dict[str, Any] = {
            "success": True,
            "source": str(source),
            "target": str(target),
            "files_copied": files,
            "directories_created": dirs,
            "total_size": total_size,
            "duration": round(time.monotonic() - start, 3),
            "timestamp": _timestamp(),
        }
        if errors:
            result["errors"] = errors
            for error in errors:
                logger.warning(error)
        logger.info(f"Transferred {files:,} {kind} files ({total_size:,} bytes), {len(errors)} errors")
        self._log_transfer(kind, result)
        return result

    def transfer_all(self) -> Dict[str, Dict[str, Any]]:
        """Database plus both directories; one failing does not stop the others."""
        results: Dict[str, Dict[str, Any]] = {}
        try:
            results["database"] = self.transfer_database()
        except (VaultSyncError, OSError) as e:
            logger.error(f"Database transfer failed: {e}")
            results["database"] = {"success": False, "error": str(e)}
        for kind in KINDS:
            try:
                results[kind] = self.transfer_directory(kind)
            except (VaultSyncError, OSError) as e:
                logger.error(f"{kind} transfer failed: {e}")
                results[kind] = {"success": False, "error": str(e)}
        return results

    # -- pending items -----------------------------------------------------------

    def _select_list(self, columns: ColumnMap) -> str:
        quote = self.database.quote_ident
        parts = [f"{quote(columns.id)} AS id"]
        for field in ("filename", "title", "stored_file", "stored_path", "hash"):
            name = getattr(columns, field)
            parts.append(f"{quote(name)} AS {field}" if name else f"NULL AS {field}")
        return ", ".join(parts)

    def get_pending(self, kind: str) -> List[Dict[str, Any]]:
        """Rows whose flag holds the pending value, ordered by id."""
        columns = self.columns(kind)
        quote = self.database.quote_ident
        sql = (
            f"SELECT {self._select_list(columns)} FROM {quote(columns.table)} "
            f"WHERE {quote(columns.flag)} = :pending ORDER BY {quote(columns.id)}"
        )
        return self.database.fetch_all(sql, {"pending": columns.pending_value})

    def get_pending_images(self) -> List[Dict[str, Any]]:
        return self.get_pending("images")

    def get_pending_documents(self) -> List[Dict[str, Any]]:
        return self.get_pending("documents")

    def mark_cleared(self, kind: str, item_id: Any) -> bool:
        """Set an item's flag to the cleared value."""
        columns = self.columns(kind)
        quote = self.database.quote_ident
        sql = f"UPDATE {quote(columns.table)} SET {quote(columns.flag)} = :cleared WHERE {quote(columns.id)} = :id"
        return self.database.execute(sql, {"cleared": columns.cleared_value, "id": item_id}) > 0

    @staticmethod
    def relative_path(item: Mapping[str, Any]) -> str:
        """stored_path/stored_file when a stored file is known, else filename."""
        stored_file = str(item.get("stored_file") or "").strip()
        if stored_file:
            stored_path = str(item.get("stored_path") or "").strip().strip("/\\")
            return f"{stored_path}/{stored_file}" if stored_path else stored_file
        return str(item.get("filename") or "").strip().lstrip("/\\")

    def transfer_single(self, kind: str, item_id: Any) -> TransferOutcome:
        """Transfer one pending item; failures come back as outcomes."""
        start = time.monotonic()
        outcome = TransferOutcome(success=False, id=item_id)
        try:
            columns = self.columns(kind)
            settings = self.config.media(kind)
            self._require_paths(kind, settings.source, settings.target)

            sql = (
                f"SELECT {self._select_list(columns)} FROM {self.database.quote_ident(columns.table)} "
                f"WHERE {self.database.quote_ident(columns.id)} = :id "
                f"AND {self.database.quote_ident(columns.flag)} = :pending"
            )
            item = self.database.fetch_one(sql, {"id": item_id, "pending": columns.pending_value})
            if item is None:
                outcome.error = f"{kind} item {item_id} is not pending"
                return outcome

            relative = self.relative_path(item)
            outcome.filename = relative
            if not relative:
                outcome.error = f"{kind} item {item_id} has no file name"
                return outcome

            source = self._path(settings.source) / relative
            target = self._path(settings.target) / relative
            if not source.is_file():
                raise FileError(f"Source file not found: {source}")
            size = source.stat().st_size
            if size > self.config.max_file_size:
                outcome.skipped = True
                outcome.error = f"File too large: {size} bytes (max {self.config.max_file_size})"
                return outcome

            try:
                target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
                shutil.copyfile(source, target)
            except OSError as e:
                raise FileError(f"Copy failed ({source} -> {target}): {e}") from e
            if target.stat().st_size != size:
                raise FileError(f"Size mismatch after copy: {target}")

            self.mark_cleared(kind, item_id)
            outcome.success = True
            outcome.size = size
            outcome.target = str(target)
            logger.debug(f"Transferred {kind} {item_id}: {relative}")
        except (VaultSyncError, OSError) as e:
            outcome.error = str(e)
            logger.warning(f"Transfer of {kind} {item_id} failed: {e}")
        finally:
            outcome.duration = round(time.monotonic() - start, 3)
        return outcome

    def transfer_single_image(self, item_id: Any) -> TransferOutcome:
        return self.transfer_single("images", item_id)

    def transfer_single_document(self, item_id: Any) -> TransferOutcome:
        return self.transfer_single("documents", item_id)

    def transfer_pending(self, kind: str) -> BatchResult:
        """Transfer every pending item of a kind, never aborting on one item."""
        start = time.monotonic()
        pending = self.get_pending(kind)
        result = BatchResult(total=len(pending))
        for item in pending:
            outcome = self.transfer_single(kind, item["id"])
            if outcome.success:
                result.transferred += 1
                result.total_size += outcome.size
            elif outcome.skipped:
                result.skipped += 1
            else:
                result.failed += 1
                result.errors.append({
                    "id": item["id"],
                    "filename": outcome.filename or item.get("filename"),
                    "error": outcome.error,
                })
        result.duration = round(time.monotonic() - start, 3)
        logger.info(
            f"Pending {kind}: {result.transferred} transferred, {result.skipped} skipped, "
            f"{result.failed} failed of {result.total}"
        )
        self._log_transfer(f"pending_{kind}", result.model_dump())
        return result

    def transfer_pending_images(self) -> BatchResult:
        return self.transfer_pending("images")

    def transfer_pending_documents(self) -> BatchResult:
        return self.transfer_pending("documents")
