# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# tests/test_config.py

import os

import pytest
import yaml

from vaultsync.config import (
    DEFAULT_MAX_FILE_SIZE,
    ConfigCache,
    TransferConfig,
    VaultConfig,
    load_config,
    parse_catalog_config,
)
from vaultsync.exceptions import ConfigurationError


@pytest.fixture
def config_file(tmp_path, catalog_config):
    path = tmp_path / "vaultsync.yaml"
    path.write_text(yaml.safe_dump({
        "database_url": "sqlite:///data/catalog.db",
        "job": "nightly",
        "catalogs": [catalog_config],
        "transfer": {"api_key": "k", "images": {"enabled": True, "source": "a", "target": "b"}},
        "remote": {"enabled": True, "servers": [{"name": "peer", "url": "https://peer.example.org"}]},
    }))
    return path


class TestLoadConfig:
    """Reading the YAML file into AppConfig."""

    def test_loads_all_sections(self, config_file, tmp_path):
        config = load_config(config_file)

        assert config.job == "nightly"
        assert config.project_root == tmp_path.resolve()
        assert config.status_url == "sqlite:///data/catalog.db"
        assert config.catalog("images").table.keys == ["file_name"]
        assert config.catalogs[0].table.logic.actions[0].from_ == "$src.path"
        assert config.transfer.images.enabled
        assert config.transfer.images.table == "images"
        assert config.transfer.max_file_size == DEFAULT_MAX_FILE_SIZE
        assert config.remote.servers[0].name == "peer"

    def test_unknown_catalog(self, config_file):
        with pytest.raises(ConfigurationError, match="nope"):
            load_config(config_file).catalog("nope")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("catalogs: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "negative.yaml"
        path.write_text("max_log_entries: -1\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_explicit_project_root_is_kept(self, tmp_path):
        path = tmp_path / "rooted.yaml"
        path.write_text("project_root: /srv/vault\n")
        assert str(load_config(path).project_root) == "/srv/vault"


class TestCatalogConfig:
    """Catalog validation and normalization."""

    def test_extensions_and_lists_are_normalized(self, catalog_config):
        catalog_config["source"]["include_ext"] = [".JPG", " png ", ""]
        catalog_config["table"]["keys"] = "file_name"
        config = parse_catalog_config(catalog_config)
        assert config.source.include_ext == ["jpg", "png"]
        assert config.table.keys == ["file_name"]

    def test_blank_search_path(self, catalog_config):
        catalog_config["source"]["search_path"] = "  "
        with pytest.raises(ConfigurationError):
            parse_catalog_config(catalog_config)

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_catalog_config(["nope"])

    @pytest.mark.parametrize("value,expected", [
        ("0755", 0o755),
        ("775", 0o775),
        (0o700, 0o700),
        ("", 0o777),
        (None, 0o777),
        ("rwx", 0o777),
    ])
    def test_dir_mode(self, value, expected):
        assert VaultConfig(base_path="/v", dir_mode=value).dir_mode == expected

    def test_pattern_defaults(self):
        assert VaultConfig(base_path="/v", filename_pattern="").filename_pattern == "{file_name}"
        assert VaultConfig(base_path="/v", checksum="md5").checksum.algo == "sha256"


class TestTransferConfig:
    """Per-kind transfer defaults."""

    def test_partial_blocks_keep_default_tables(self):
        config = TransferConfig.model_validate({
            "images": {"enabled": True, "source": "a", "target": "b"},
            "documents": {"enabled": False},
        })
        assert config.images.table == "images"
        assert config.documents.table == "documents"
        assert config.media("images").enabled

    def test_missing_blocks_get_default_tables(self):
        config = TransferConfig()
        assert config.media("images").table == "images"
        assert config.media("documents").table == "documents"

    def test_explicit_table_wins(self):
        config = TransferConfig.model_validate({"images": {"table": "bilder", "columns": {"flag": "uploaded"}}})
        assert config.images.table == "bilder"
        assert config.images.columns == {"flag": "uploaded"}

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            TransferConfig().media("videos")


class TestConfigCache:
    """mtime-keyed cache of parsed documents."""

    def test_hit_after_first_load(self, config_file):
        cache = ConfigCache()
        load_config(config_file, cache=cache)
        load_config(config_file, cache=cache)
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["hit_rate"] == 50.0

    def test_changed_file_is_reloaded(self, config_file):
        cache = ConfigCache()
        load_config(config_file, cache=cache)

        data = yaml.safe_load(config_file.read_text())
        data["job"] = "changed"
        config_file.write_text(yaml.safe_dump(data))
        stat = config_file.stat()
        os.utime(config_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

        assert load_config(config_file, cache=cache).job == "changed"
        assert cache.stats()["misses"] == 2

    def test_remove_and_clear(self, config_file):
        cache = ConfigCache()
        cache.set(config_file, {"job": "x"})
        assert cache.get(config_file) == {"job": "x"}
        cache.remove(config_file)
        assert cache.get(config_file) is None
        cache.set(config_file, {"job": "x"})
        cache.clear()
        assert cache.stats() == {"hits": 0, "misses": 0, "size": 0, "hit_rate": 0.0}

    def test_missing_file_is_not_cached(self, tmp_path):
        cache = ConfigCache()
        cache.set(tmp_path / "absent.yaml", {"a": 1})
        assert cache.get(tmp_path / "absent.yaml") is None
        assert cache.stats()["size"] == 0
