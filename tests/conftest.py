# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# tests/conftest.py

from pathlib import Path

import pytest

from vaultsync.service.database.connection import Database
from vaultsync.service.database.operations import StatusStore

CATALOG_TABLE = """
CREATE TABLE catalog (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_name TEXT NOT NULL UNIQUE,
    size INTEGER,
    mtime TEXT,
    checksum TEXT,
    mime TEXT,
    stored_file TEXT,
    stored_path TEXT,
    stored_at TEXT,
    uploaded INTEGER DEFAULT 0,
    "update" INTEGER DEFAULT 0,
    updated_at TEXT
)
"""

UPSERT_COLUMNS = [
    "file_name", "size", "mtime", "checksum", "mime",
    "stored_file", "stored_path", "stored_at", "uploaded", "update", "updated_at",
]


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'catalog.db'}")
    yield db
    db.dispose()


@pytest.fixture
def catalog_table(database):
    database.execute(CATALOG_TABLE)
    return "catalog"


@pytest.fixture
def status_store(tmp_path):
    store = StatusStore(f"sqlite:///{tmp_path / 'status.db'}", job="test")
    yield store
    store.dispose()


@pytest.fixture
def source_dir(tmp_path) -> Path:
    source = tmp_path / "source"
    source.mkdir()
    (source / "a.jpg").write_bytes(b"a" * 100)
    (source / "b.pdf").write_bytes(b"%PDF-1.4\n" + b"b" * 50)
    return source


@pytest.fixture
def vault_dir(tmp_path) -> Path:
    return tmp_path / "vault"


@pytest.fixture
def catalog_config(source_dir, vault_dir):
    """Catalog of jpg files keyed by file name, copying changed files into the vault."""
    return {
        "name": "images",
        "source": {"search_path": str(source_dir), "include_ext": ["jpg"]},
        "vault": {"base_path": str(vault_dir), "checksum": {"algo": "sha256"}},
        "table": {
            "name": "catalog",
            "keys": ["file_name"],
            "logic": {
                "map": {
                    "file_name": "$src.file_name",
                    "size": "$src.size",
                    "mtime": "$src.mtime",
                    "checksum": "$func.easy_checksum($src.mtime_raw, $src.size)",
                    "mime": "$src.mime",
                    "uploaded": "$existing.uploaded",
                    "update": "$existing.update",
                },
                "delta": {"fields": ["checksum"]},
                "upsert": {"insert": UPSERT_COLUMNS, "update": UPSERT_COLUMNS[1:]},
                "flags": {
                    "on_insert": {"uploaded": "=0", "update": "=1"},
                    "on_update_when_delta_changed": {"uploaded": "=0", "update": "=1"},
                    "on_update_when_no_change": {"update": "=0"},
                },
                "actions": [
                    {
                        "type": "file_copy",
                        "from": "$src.path",
                        "to": "$func.vault_path($row.stored_path, $row.stored_file)",
                        "only_when_changed": True,
                    }
                ],
            },
        },
    }
