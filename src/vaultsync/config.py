# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/config.py

"""Configuration models and the YAML loader.

The core only ever sees the pydantic models below. Reading a YAML file is
done once by the caller through load_config(), optionally backed by a
ConfigCache that the caller constructs and keeps.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vaultsync.exceptions import ConfigurationError

DEFAULT_MAX_FILE_SIZE = 104857600  # 100 MiB


def _normalize_list(value: Any) -> List[str]:
    """Trim entries and drop empty ones; a bare string becomes a one-item list."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    result = []
    for item in value:
        text = str(item).strip()
        if text:
            result.append(text)
    return result


def _parse_mode(value: Any, default: int) -> int:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        if 3 <= len(text) <= 4 and all(c in "01234567" for c in text):
            return int(text, 8)
        if text.isdigit():
            return int(text)
    return default


def resolve_path(path: Union[str, Path], root: Optional[Path]) -> Path:
    """Resolve a configured path against the project root unless absolute."""
    candidate = Path(path).expanduser()
    if candidate.is_absolute() or root is None:
        return candidate
    return Path(root) / candidate


# ---------------------------------------------------------------------------
# Catalog configuration
# ---------------------------------------------------------------------------


class SourceConfig(BaseModel):
    search_path: str
    recursive: bool = True
    follow_symlinks: bool = False
    include_ext: List[str] = Field(default_factory=list)
    mime_by_extension: bool = False

    @field_validator("search_path")
    @classmethod
    def _search_path_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("source.search_path is required")
        return value

    @field_validator("include_ext", mode="before")
    @classmethod
    def _lower_extensions(cls, value: Any) -> List[str]:
        return [ext.lower().lstrip(".") for ext in _normalize_list(value)]


class ChecksumConfig(BaseModel):
    algo: str = "sha256"


class VaultConfig(BaseModel):
    base_path: str
    filename_pattern: str = "{file_name}"
    checksum: ChecksumConfig = Field(default_factory=ChecksumConfig)
    dir_mode: int = 0o777
    file_mode: int = 0o666

    @field_validator("base_path")
    @classmethod
    def _base_path_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("vault.base_path is required")
        return value

    @field_validator("filename_pattern", mode="before")
    @classmethod
    def _default_pattern(cls, value: Any) -> str:
        if value is None or str(value) == "":
            return "{file_name}"
        return str(value)

    @field_validator("checksum", mode="before")
    @classmethod
    def _checksum_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, ChecksumConfig)) else {}

    @field_validator("dir_mode", mode="before")
    @classmethod
    def _dir_mode(cls, value: Any) -> int:
        return _parse_mode(value, 0o777)

    @field_validator("file_mode", mode="before")
    @classmethod
    def _file_mode(cls, value: Any) -> int:
        return _parse_mode(value, 0o666)


class UpsertColumns(BaseModel):
    insert: List[str] = Field(default_factory=list)
    update: List[str] = Field(default_factory=list)

    @field_validator("insert", "update", mode="before")
    @classmethod
    def _columns(cls, value: Any) -> List[str]:
        return _normalize_list(value)


class DeltaConfig(BaseModel):
    fields: List[str] = Field(default_factory=list)

    @field_validator("fields", mode="before")
    @classmethod
    def _fields(cls, value: Any) -> List[str]:
        return _normalize_list(value)


class FlagsConfig(BaseModel):
    on_insert: Dict[str, Any] = Field(default_factory=dict)
    on_update_when_delta_changed: Dict[str, Any] = Field(default_factory=dict)
    on_update_when_no_change: Dict[str, Any] = Field(default_factory=dict)


class ActionConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    from_: Any = Field(default="", alias="from")
    to: Any = ""
    only_when_changed: bool = False


class LogicConfig(BaseModel):
    map: Dict[str, Any] = Field(default_factory=dict)
    delta: DeltaConfig = Field(default_factory=DeltaConfig)
    upsert: UpsertColumns = Field(default_factory=UpsertColumns)
    flags: FlagsConfig = Field(default_factory=FlagsConfig)
    actions: List[ActionConfig] = Field(default_factory=list)


class TableConfig(BaseModel):
    name: str
    keys: List[str] = Field(default_factory=list)
    logic: LogicConfig = Field(default_factory=LogicConfig)

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("table.name is required")
        return value.strip()

    @field_validator("keys", mode="before")
    @classmethod
    def _keys(cls, value: Any) -> List[str]:
        return _normalize_list(value)


class CatalogConfig(BaseModel):
    """One file catalog: where to look, where to copy, which table to keep."""

    name: str = "catalog"
    source: SourceConfig
    vault: VaultConfig
    table: TableConfig


# ---------------------------------------------------------------------------
# Transfer configuration
# ---------------------------------------------------------------------------


class TransferTarget(BaseModel):
    enabled: bool = False
    source: str = ""
    target: str = ""


class MediaTransferConfig(TransferTarget):
    table: str = ""
    columns: Dict[str, Any] = Field(default_factory=dict)


class ImagesTransferConfig(MediaTransferConfig):
    table: str = "images"


class DocumentsTransferConfig(MediaTransferConfig):
    table: str = "documents"


class TransferConfig(BaseModel):
    api_key: str = ""
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, ge=0)
    log_transfers: bool = True
    database: TransferTarget = Field(default_factory=TransferTarget)
    images: ImagesTransferConfig = Field(default_factory=ImagesTransferConfig)
    documents: DocumentsTransferConfig = Field(default_factory=DocumentsTransferConfig)

    def media(self, kind: str) -> MediaTransferConfig:
        if kind == "images":
            return self.images
        if kind == "documents":
            return self.documents
        raise ConfigurationError(f"Unknown transfer kind: {kind}")


# ---------------------------------------------------------------------------
# Remote peers
# ---------------------------------------------------------------------------


class RemoteServerConfig(BaseModel):
    name: str = "Unknown"
    url: str = ""
    api_key: str = ""
    database: str = ""


class RemoteConfig(BaseModel):
    enabled: bool = False
    timeout: float = Field(default=5.0, gt=0)
    allow_insecure: bool = False
    servers: List[RemoteServerConfig] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


class AppConfig(BaseModel):
    project_root: Optional[Path] = None
    database_url: str = "sqlite:///data/catalog.db"
    status_database_url: Optional[str] = None
    job: str = "sync"
    max_log_entries: int = Field(default=0, ge=0)  # 0 keeps everything
    log_file: Optional[Path] = None
    catalogs: List[CatalogConfig] = Field(default_factory=list)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)

    @property
    def status_url(self) -> str:
        return self.status_database_url or self.database_url

    def catalog(self, name: str) -> CatalogConfig:
        for catalog in self.catalogs:
            if catalog.name == name:
                return catalog
        raise ConfigurationError(f"No catalog named {name!r} is configured")


def parse_catalog_config(data: Union[CatalogConfig, Dict[str, Any]]) -> CatalogConfig:
    """Validate an already-materialized catalog mapping."""
    if isinstance(data, CatalogConfig):
        return data
    if not isinstance(data, dict):
        raise ConfigurationError("catalog configuration must be a mapping")
    try:
        return CatalogConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid catalog configuration: {e}") from e


class ConfigCache:
    """Parsed configuration documents keyed by path and modification time.

    Constructed once by the caller and passed to load_config(); a document is
    re-read as soon as its modification time changes.
    """

    def __init__(self):
        self._entries: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(path: Union[str, Path]) -> str:
        return str(Path(path).resolve())

    def get(self, path: Union[str, Path]) -> Optional[Dict[str, Any]]:
        file_path = Path(path)
        if not file_path.is_file():
            return None
        key = self._key(file_path)
        cached = self._entries.get(key)
        if cached is None:
            self.misses += 1
            return None
        if cached[0] != file_path.stat().st_mtime_ns:
            self.misses += 1
            del self._entries[key]
            return None
        self.hits += 1
        return cached[1]

    def set(self, path: Union[str, Path], data: Dict[str, Any]) -> None:
        file_path = Path(path)
        if not file_path.is_file():
            return
        self._entries[self._key(file_path)] = (file_path.stat().st_mtime_ns, data)

    def remove(self, path: Union[str, Path]) -> None:
        self._entries.pop(self._key(path), None)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        hit_rate = (self.hits / total) * 100 if total else 0.0
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": len(self._entries),
            "hit_rate": round(hit_rate, 2),
        }


def load_config(path: Union[str, Path], cache: Optional[ConfigCache] = None) -> AppConfig:
    """Read and validate an application configuration file.

    Args:
        path: YAML configuration file
        cache: Optional cache kept by the caller across loads

    Returns:
        The validated AppConfig; project_root defaults to the file's directory
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    data = cache.get(config_path) if cache is not None else None
    if data is None:
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping")
        if cache is not None:
            cache.set(config_path, data)
        logger.debug(f"Loaded configuration from {config_path}")

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    if config.project_root is None:
        config.project_root = config_path.resolve().parent
    return config
