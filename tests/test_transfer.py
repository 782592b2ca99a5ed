# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# tests/test_transfer.py

import pytest

from vaultsync.config import TransferConfig
from vaultsync.exceptions import ConfigurationError, FileError, StorageError
from vaultsync.service.orchestrator import RunOrchestrator
from vaultsync.service.transfer.columns import ColumnResolver, pending_semantics
from vaultsync.service.transfer.queue import ReplicationQueue

IMAGES_TABLE = """
CREATE TABLE images (
    id INTEGER PRIMARY KEY,
    filename TEXT,
    stored_file TEXT,
    stored_path TEXT,
    hash TEXT,
    uploaded INTEGER DEFAULT 0
)
"""

DOCUMENTS_TABLE = """
CREATE TABLE documents (
    ID INTEGER PRIMARY KEY,
    Titel TEXT,
    Dateiname TEXT,
    "update" INTEGER DEFAULT 1
)
"""


@pytest.fixture
def media_tables(database):
    database.execute(IMAGES_TABLE)
    database.execute(DOCUMENTS_TABLE)
    for row in (
        {"id": 1, "filename": "one.jpg", "stored_file": "one.jpg", "stored_path": "2026", "uploaded": 0},
        {"id": 2, "filename": "two.jpg", "stored_file": "two.jpg", "stored_path": "", "uploaded": 0},
        {"id": 3, "filename": "gone.jpg", "stored_file": "gone.jpg", "stored_path": "", "uploaded": 0},
        {"id": 4, "filename": "done.jpg", "stored_file": "done.jpg", "stored_path": "", "uploaded": 1},
    ):
        database.execute(
            "INSERT INTO images (id, filename, stored_file, stored_path, uploaded) "
            "VALUES (:id, :filename, :stored_file, :stored_path, :uploaded)",
            row,
        )
    database.execute(
        'INSERT INTO documents (ID, Titel, Dateiname, "update") VALUES (10, \'Manual\', \'manual.pdf\', 1)'
    )
    database.execute(
        'INSERT INTO documents (ID, Titel, Dateiname, "update") VALUES (11, \'Old\', \'old.pdf\', 0)'
    )
    return database


@pytest.fixture
def media_dirs(tmp_path):
    images = tmp_path / "media" / "images"
    (images / "2026").mkdir(parents=True)
    (images / "2026" / "one.jpg").write_bytes(b"1" * 10)
    (images / "two.jpg").write_bytes(b"2" * 20)
    (images / "done.jpg").write_bytes(b"d" * 5)
    documents = tmp_path / "media" / "documents"
    documents.mkdir(parents=True)
    (documents / "manual.pdf").write_bytes(b"m" * 30)
    return tmp_path


def transfer_config(root, **overrides):
    data = {
        "api_key": "s3cret",
        "max_file_size": 1000,
        "database": {"enabled": False, "source": "catalog.db", "target": "out/catalog.db"},
        "images": {"enabled": True, "source": "media/images", "target": "out/images", "table": "images"},
        "documents": {"enabled": True, "source": "media/documents", "target": "out/documents", "table": "documents"},
    }
    data.update(overrides)
    return TransferConfig.model_validate(data)


@pytest.fixture
def queue(media_tables, media_dirs):
    return ReplicationQueue(transfer_config(media_dirs), database=media_tables, project_root=media_dirs)


def flags(database):
    return {row["id"]: row["uploaded"] for row in database.fetch_all("SELECT id, uploaded FROM images")}


class TestColumnResolver:
    """Probing and overrides."""

    def test_probes_lowercase_names(self, media_tables):
        columns = ColumnResolver(media_tables).resolve("images")
        assert columns.id == "id"
        assert columns.flag == "uploaded"
        assert columns.filename == "filename"
        assert columns.title is None
        assert columns.stored_path == "stored_path"
        assert (columns.pending_value, columns.cleared_value) == (0, 1)

    def test_probing_is_case_insensitive(self, media_tables):
        columns = ColumnResolver(media_tables).resolve("documents")
        assert columns.id == "ID"
        assert columns.filename == "Dateiname"
        assert columns.title == "Titel"
        assert columns.flag == "update"
        assert columns.stored_file is None
        assert (columns.pending_value, columns.cleared_value) == (1, 0)

    def test_overrides_win(self, media_tables):
        columns = ColumnResolver(media_tables).resolve(
            "images", {"filename": "stored_file", "pending_value": 5, "cleared_value": 6}
        )
        assert columns.filename == "stored_file"
        assert (columns.pending_value, columns.cleared_value) == (5, 6)

    def test_missing_override_column(self, media_tables):
        with pytest.raises(ConfigurationError, match="nope"):
            ColumnResolver(media_tables).resolve("images", {"flag": "nope"})

    def test_table_without_flag(self, database):
        database.execute("CREATE TABLE bare (id INTEGER PRIMARY KEY, filename TEXT)")
        with pytest.raises(ConfigurationError, match="flag"):
            ColumnResolver(database).resolve("bare")

    def test_table_without_file_column(self, database):
        database.execute("CREATE TABLE nameless (id INTEGER PRIMARY KEY, uploaded INTEGER)")
        with pytest.raises(ConfigurationError, match="filename"):
            ColumnResolver(database).resolve("nameless")

    def test_missing_table(self, database):
        with pytest.raises(StorageError):
            ColumnResolver(database).resolve("absent")

    @pytest.mark.parametrize("flag,expected", [
        ("uploaded", (0, 1)),
        ("Transferred", (0, 1)),
        ("update", (1, 0)),
        ("pending", (1, 0)),
    ])
    def test_pending_semantics(self, flag, expected):
        assert pending_semantics(flag) == expected


class TestPendingItems:
    """Per-item transfers driven by the pending flag."""

    def test_get_pending(self, queue):
        assert [item["id"] for item in queue.get_pending_images()] == [1, 2, 3]
        [document] = queue.get_pending_documents()
        assert document["id"] == 10
        assert document["title"] == "Manual"
        assert document["filename"] == "manual.pdf"
        assert document["stored_file"] is None

    def test_relative_path(self):
        assert ReplicationQueue.relative_path({"stored_file": "a.jpg", "stored_path": "/2026/"}) == "2026/a.jpg"
        assert ReplicationQueue.relative_path({"stored_file": "a.jpg", "stored_path": ""}) == "a.jpg"
        assert ReplicationQueue.relative_path({"stored_file": None, "filename": "/b.pdf"}) == "b.pdf"

    def test_single_transfer_copies_and_clears(self, queue, media_tables, media_dirs):
        outcome = queue.transfer_single_image(1)

        assert outcome.success
        assert outcome.size == 10
        assert outcome.filename == "2026/one.jpg"
        assert (media_dirs / "out" / "images" / "2026" / "one.jpg").read_bytes() == b"1" * 10
        assert flags(media_tables)[1] == 1

    def test_not_pending_touches_nothing(self, queue, media_dirs):
        outcome = queue.transfer_single_image(4)

        assert not outcome.success
        assert "not pending" in outcome.error
        assert not (media_dirs / "out").exists()

    def test_unknown_id_is_not_pending(self, queue):
        outcome = queue.transfer_single_image(999)
        assert not outcome.success
        assert "not pending" in outcome.error

    def test_missing_source_fails_and_stays_pending(self, queue, media_tables):
        outcome = queue.transfer_single_image(3)

        assert not outcome.success
        assert not outcome.skipped
        assert "not found" in outcome.error
        assert flags(media_tables)[3] == 0

    def test_oversize_is_skipped(self, media_tables, media_dirs):
        queue = ReplicationQueue(
            transfer_config(media_dirs, max_file_size=15), database=media_tables, project_root=media_dirs
        )
        outcome = queue.transfer_single_image(2)

        assert not outcome.success
        assert outcome.skipped
        assert "too large" in outcome.error
        assert flags(media_tables)[2] == 0

    def test_document_uses_filename_and_update_flag(self, queue, media_tables, media_dirs):
        outcome = queue.transfer_single_document(10)

        assert outcome.success
        assert (media_dirs / "out" / "documents" / "manual.pdf").exists()
        assert media_tables.scalar('SELECT "update" FROM documents WHERE ID = 10') == 0

    def test_pending_batch_continues_past_failures(self, queue, media_tables):
        result = queue.transfer_pending_images()

        assert result.total == 3
        assert result.transferred == 2
        assert result.failed == 1
        assert result.skipped == 0
        assert result.total_size == 30
        assert [error["id"] for error in result.errors] == [3]
        assert result.errors[0]["filename"] == "gone.jpg"
        assert flags(media_tables) == {1: 1, 2: 1, 3: 0, 4: 1}

    def test_second_batch_only_sees_what_is_left(self, queue):
        queue.transfer_pending_images()
        assert [item["id"] for item in queue.get_pending_images()] == [3]

    def test_mark_cleared(self, queue, media_tables):
        assert queue.mark_cleared("images", 2)
        assert not queue.mark_cleared("images", 999)
        assert flags(media_tables)[2] == 1

    def test_unknown_kind(self, queue):
        with pytest.raises(ConfigurationError):
            queue.columns("videos")

    def test_blocks_without_table_use_default_tables(self, media_tables, media_dirs):
        config = TransferConfig.model_validate({
            "images": {"enabled": True, "source": "media/images", "target": "out/images"},
            "documents": {"source": "media/documents", "target": "out/documents"},
        })
        queue = ReplicationQueue(config, database=media_tables, project_root=media_dirs)

        assert [item["id"] for item in queue.get_pending_images()] == [1, 2, 3]
        assert queue.transfer_single_document(10).success

    def test_transfers_are_journaled(self, media_tables, media_dirs, status_store):
        orchestrator = RunOrchestrator(status_store)
        queue = ReplicationQueue(
            transfer_config(media_dirs), database=media_tables, orchestrator=orchestrator, project_root=media_dirs
        )
        queue.transfer_pending_images()

        [entry] = orchestrator.read_logs()
        assert entry["message"] == "Transfer pending_images"
        assert entry["context"]["transferred"] == 2
        assert entry["context"]["errors"] == 1


class TestBulkTransfers:
    """Database and directory copies."""

    def test_database_disabled(self, queue):
        result = queue.transfer_database()
        assert result["skipped"]
        assert not result["success"]

    def test_database_copy(self, media_tables, media_dirs):
        (media_dirs / "catalog.db").write_bytes(b"x" * 64)
        config = transfer_config(
            media_dirs, database={"enabled": True, "source": "catalog.db", "target": "out/db/catalog.db"}
        )
        result = ReplicationQueue(config, project_root=media_dirs).transfer_database()

        assert result["success"]
        assert result["size"] == 64
        assert (media_dirs / "out" / "db" / "catalog.db").stat().st_size == 64

    def test_database_missing_source(self, media_dirs):
        config = transfer_config(media_dirs, database={"enabled": True, "source": "nope.db", "target": "out/x.db"})
        with pytest.raises(FileError, match="not found"):
            ReplicationQueue(config, project_root=media_dirs).transfer_database()

    def test_database_too_large(self, media_dirs):
        (media_dirs / "catalog.db").write_bytes(b"x" * 64)
        config = transfer_config(
            media_dirs,
            max_file_size=10,
            database={"enabled": True, "source": "catalog.db", "target": "out/catalog.db"},
        )
        with pytest.raises(FileError, match="too large"):
            ReplicationQueue(config, project_root=media_dirs).transfer_database()
        assert not (media_dirs / "out" / "catalog.db").exists()

    def test_database_paths_required(self, media_dirs):
        config = transfer_config(media_dirs, database={"enabled": True, "source": "", "target": ""})
        with pytest.raises(ConfigurationError):
            ReplicationQueue(config, project_root=media_dirs).transfer_database()

    def test_directory_copy_skips_oversize(self, media_dirs):
        config = transfer_config(media_dirs, max_file_size=15)
        result = ReplicationQueue(config, project_root=media_dirs).transfer_directory("images")

        assert result["success"]
        assert result["files_copied"] == 2
        assert result["directories_created"] == 1
        assert result["total_size"] == 15
        assert len(result["errors"]) == 1
        assert "two.jpg" in result["errors"][0]
        assert (media_dirs / "out" / "images" / "2026" / "one.jpg").exists()
        assert not (media_dirs / "out" / "images" / "two.jpg").exists()

    def test_directory_copy_survives_dangling_symlink(self, media_dirs):
        images = media_dirs / "media" / "images"
        (images / "broken.jpg").symlink_to(media_dirs / "no-such-file.jpg")

        queue = ReplicationQueue(transfer_config(media_dirs), project_root=media_dirs)
        result = queue.transfer_directory("images")

        assert result["success"]
        assert result["files_copied"] == 3
        assert result["total_size"] == 35
        assert len(result["errors"]) == 1
        assert "broken.jpg" in result["errors"][0]
        assert not (media_dirs / "out" / "images" / "broken.jpg").exists()

        results = queue.transfer_all()
        assert results["images"]["success"]

    def test_transfer_all_isolates_failures(self, media_dirs):
        config = transfer_config(
            media_dirs,
            database={"enabled": True, "source": "missing.db", "target": "out/catalog.db"},
            documents={"enabled": False},
        )
        results = ReplicationQueue(config, project_root=media_dirs).transfer_all()

        assert not results["database"]["success"]
        assert "not found" in results["database"]["error"]
        assert results["images"]["success"]
        assert results["documents"]["skipped"]


class TestApiKey:
    """Shared secret comparison."""

    def test_matching_key(self, queue):
        assert queue.validate_api_key("s3cret")

    @pytest.mark.parametrize("provided", ["", None, "S3CRET", "s3cret "])
    def test_rejected_keys(self, queue, provided):
        assert not queue.validate_api_key(provided)

    def test_empty_configured_key_rejects_everything(self, media_dirs):
        queue = ReplicationQueue(transfer_config(media_dirs, api_key=""))
        assert not queue.validate_api_key("")
        assert not queue.validate_api_key("anything")
