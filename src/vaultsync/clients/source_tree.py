# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/clients/source_tree.py

"""Local directory client: walks a source tree and describes each file."""

import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import magic
from loguru import logger

from .base import BaseClient, FileRecord

DEFAULT_MIME = "application/octet-stream"

MIME_BY_EXTENSION = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def mime_from_extension(ext: str) -> str:
    return MIME_BY_EXTENSION.get(ext.lower(), DEFAULT_MIME)


def sniff_mime(path: Path) -> Optional[str]:
    """Get the MIME type from file content using python-magic."""
    try:
        return magic.from_file(str(path), mime=True) or None
    except Exception as e:
        logger.trace(f"MIME sniffing failed for {path}: {e}")
        return None


def format_mtime(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).astimezone().isoformat(timespec="seconds")


class SourceTreeClient(BaseClient):
    """Client that discovers regular files below a local directory."""

    def __init__(
        self,
        root_path: Path,
        recursive: bool = True,
        follow_symlinks: bool = False,
        include_ext: Optional[Iterable[str]] = None,
        mime_by_extension: bool = False,
    ):
        """Initialize the source tree client.

        Args:
            root_path: Directory to scan
            recursive: Descend into subdirectories
            follow_symlinks: Descend into symlinked directories
            include_ext: Extension allowlist, case-insensitive; empty allows all
            mime_by_extension: Skip content sniffing and use the extension table
        """
        self.root_path = Path(root_path)
        self.recursive = recursive
        self.follow_symlinks = follow_symlinks
        self.include_ext = {ext.lower().lstrip(".") for ext in (include_ext or [])}
        self.mime_by_extension = mime_by_extension

    @classmethod
    def from_config(cls, source, root_path: Path) -> "SourceTreeClient":
        return cls(
            root_path=root_path,
            recursive=source.recursive,
            follow_symlinks=source.follow_symlinks,
            include_ext=source.include_ext,
            mime_by_extension=source.mime_by_extension,
        )

    def _iter_paths(self) -> Iterator[Path]:
        if not self.recursive:
            with os.scandir(self.root_path) as entries:
                for entry in entries:
                    yield Path(entry.path)
            return
        for dirpath, _dirnames, filenames in os.walk(self.root_path, followlinks=self.follow_symlinks):
            for name in filenames:
                yield Path(dirpath) / name

    def _mime_for(self, path: Path, ext: str) -> str:
        if self.mime_by_extension:
            return mime_from_extension(ext)
        return sniff_mime(path) or mime_from_extension(ext)

    def describe(self, path: Path) -> FileRecord:
        """Build the FileRecord for one file below the root."""
        stat = path.stat()
        ext = path.suffix[1:].lower() if path.suffix else ""
        return FileRecord(
            path=str(path),
            relative_path=path.relative_to(self.root_path).as_posix(),
            dir=str(path.parent),
            file_name=path.name,
            name_stem=path.stem,
            ext=ext,
            size=stat.st_size,
            mtime=format_mtime(stat.st_mtime),
            mtime_raw=int(stat.st_mtime),
            mime=self._mime_for(path, ext),
        )

    def discover_files(self) -> List[FileRecord]:
        """Walk the source tree, hidden files included."""
        logger.debug(f"Scanning {self.root_path} (recursive={self.recursive})")
        records = []
        for path in self._iter_paths():
            if not path.is_file():
                continue
            ext = path.suffix[1:].lower() if path.suffix else ""
            if self.include_ext and ext not in self.include_ext:
                continue
            records.append(self.describe(path))

        records.sort(key=lambda record: record.relative_path)
        logger.debug(f"Discovered {len(records):,} files under {self.root_path}")
        return records
