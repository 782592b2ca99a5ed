# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/environment.py

"""Composition root: builds the collaborators for one configuration."""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy.engine import make_url

from vaultsync.clients.remote import RemotePeer, RemotePeerClient
from vaultsync.config import AppConfig, CatalogConfig
from vaultsync.exceptions import ConfigurationError, StorageError
from vaultsync.service.catalog.engine import VaultCatalog
from vaultsync.service.database.connection import Database
from vaultsync.service.database.operations import StatusStore
from vaultsync.service.orchestrator import RunOrchestrator, Stage
from vaultsync.service.transfer.columns import ColumnMap, ColumnResolver
from vaultsync.service.transfer.queue import KINDS, ReplicationQueue


def resolve_database_url(database_url: str, root: Optional[Path]) -> str:
    """Anchor relative SQLite paths at the project root and create their directory."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return database_url
    path = Path(url.database)
    if not path.is_absolute() and root is not None:
        path = Path(root) / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return url.set(database=str(path)).render_as_string(hide_password=False)


class Environment:
    """Owns the catalog database, the status store and everything built on them."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.project_root = Path(config.project_root) if config.project_root else Path.cwd()
        self.database = Database(resolve_database_url(config.database_url, self.project_root))
        self.store = StatusStore(
            resolve_database_url(config.status_url, self.project_root),
            job=config.job,
            max_log_entries=config.max_log_entries,
        )
        self.orchestrator = RunOrchestrator(self.store)
        self._columns: Optional[Dict[str, ColumnMap]] = None

    # -- catalogs ----------------------------------------------------------------

    def catalog(self, config: CatalogConfig) -> VaultCatalog:
        return VaultCatalog(config, self.database, project_root=self.project_root)

    def selected_catalogs(self, names: Optional[Iterable[str]] = None) -> List[CatalogConfig]:
        if not names:
            return list(self.config.catalogs)
        return [self.config.catalog(name) for name in names]

    def check_connection(self) -> None:
        """Setup step: the catalog database must answer a trivial query."""
        self.database.ping()
        logger.debug(f"Catalog database reachable: {self.database.database_url}")

    def run_catalogs(self, names: Optional[Iterable[str]] = None, label: str = "Catalog run") -> Dict[str, Any]:
        """Run the selected catalogs as stages under the orchestrator."""
        catalogs = self.selected_catalogs(names)
        if not catalogs:
            raise ConfigurationError("No catalogs configured")

        def stage_action(catalog_config: CatalogConfig):
            return lambda: self.catalog(catalog_config).run().model_dump()

        stages = [
            Stage(name=catalog.name, action=stage_action(catalog), message=f"Cataloging {catalog.name}")
            for catalog in catalogs
        ]
        return self.orchestrator.run(label, stages, setup=self.check_connection)

    # -- transfers ---------------------------------------------------------------

    def column_maps(self) -> Dict[str, ColumnMap]:
        """Column maps for every media table that exists, resolved once."""
        if self._columns is None:
            resolver = ColumnResolver(self.database)
            columns = {}
            for kind in KINDS:
                media = self.config.transfer.media(kind)
                if not media.table or not self.database.has_table(media.table):
                    continue
                columns[kind] = resolver.resolve(media.table, media.columns)
            self._columns = columns
        return self._columns

    def replication_queue(self) -> ReplicationQueue:
        try:
            columns = self.column_maps()
        except (ConfigurationError, StorageError) as e:
            # directory and database transfers still work without column maps
            logger.warning(f"Pending transfers unavailable: {e}")
            columns = {}
        return ReplicationQueue(
            self.config.transfer,
            database=self.database,
            columns=columns,
            orchestrator=self.orchestrator,
            project_root=self.project_root,
        )

    # -- remote peers ----------------------------------------------------------------

    def remote_client(self) -> RemotePeerClient:
        return RemotePeerClient.from_config(self.config.remote)

    def remote_peers(self) -> List[RemotePeer]:
        return RemotePeerClient.peers(self.config.remote)

    def close(self) -> None:
        self.database.dispose()
        self.store.dispose()
