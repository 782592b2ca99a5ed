# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/database/connection.py

"""Catalog database access.

Thin layer over a SQLAlchemy engine for tables whose schema is defined by
configuration rather than by models: plain SQL with named parameters,
identifier quoting, column introspection and the prepared upsert.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from loguru import logger
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from vaultsync.exceptions import StorageError


def _configure_sqlite(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # WAL for concurrent readers while a run writes
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA temp_store=MEMORY")
    cursor.close()


def build_engine(database_url: str) -> Engine:
    """Create an engine, tuned for SQLite when the URL points at one."""
    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(
        database_url,
        connect_args={
            "timeout": 30.0,
            "check_same_thread": False,
        } if is_sqlite else {},
    )
    if is_sqlite:
        event.listen(engine, "connect", _configure_sqlite)
    return engine


class UpsertStatement:
    """A prepared INSERT ... ON CONFLICT ... DO UPDATE for one table."""

    def __init__(self, table: str, sql: str, insert_params: Dict[str, str], update_params: Dict[str, str]):
        self.table = table
        self.sql = sql
        self.insert_params = insert_params
        self.update_params = update_params

    def parameters(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Bind values for a row; columns absent from the row bind NULL."""
        params = {}
        for column, name in self.insert_params.items():
            params[name] = row.get(column)
        for column, name in self.update_params.items():
            params[name] = row.get(column)
        return params

    def __repr__(self):
        return f"<UpsertStatement(table={self.table})>"


class Database:
    """Engine wrapper used by the catalog engine and the replication queue."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        """Initialize database access.

        Args:
            database_url: SQLAlchemy database URL,
                e.g. "sqlite:///path/to/catalog.db"
            engine: An existing engine, used instead of database_url
        """
        if engine is None:
            if not database_url:
                raise StorageError("A database URL or engine is required")
            engine = build_engine(database_url)
        self.engine = engine
        self.database_url = str(engine.url)
        self._connection: Optional[Connection] = None

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self.engine.begin() as connection:
            yield connection

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run the enclosed statements in one transaction.

        Commits on success and rolls back on any exception. Nested use joins
        the outer transaction.
        """
        if self._connection is not None:
            yield self
            return
        try:
            connection = self.engine.connect()
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot connect to {self.engine.url!r}: {e}") from e
        trans = connection.begin()
        self._connection = connection
        try:
            yield self
            trans.commit()
        except Exception:
            trans.rollback()
            raise
        finally:
            self._connection = None
            connection.close()

    def _run(self, sql: str, params: Optional[Mapping[str, Any]] = None):
        try:
            with self._connect() as connection:
                result = connection.execute(text(sql), dict(params or {}))
                if result.returns_rows:
                    return [dict(row) for row in result.mappings().all()]
                return result.rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Statement failed: {e}") from e

    def fetch_all(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        rows = self._run(sql, params)
        return rows if isinstance(rows, list) else []

    def fetch_one(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def scalar(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        row = self.fetch_one(sql, params)
        if row is None:
            return None
        return next(iter(row.values()), None)

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Execute a statement and return the affected row count."""
        result = self._run(sql, params)
        return result if isinstance(result, int) else len(result)

    def ping(self) -> bool:
        """Check connectivity with a trivial query."""
        self.scalar("SELECT 1")
        return True

    def quote_ident(self, identifier: str) -> str:
        """Quote a possibly schema-qualified identifier for this dialect."""
        preparer = self.engine.dialect.identifier_preparer
        parts = [part.strip() for part in identifier.split(".")]
        return ".".join(preparer.quote_identifier(part) for part in parts if part)

    def columns(self, table: str) -> List[str]:
        """Column names of a table, in table order."""
        schema = None
        name = table
        if "." in table:
            schema, name = table.rsplit(".", 1)
        try:
            names = [column["name"] for column in inspect(self.engine).get_columns(name, schema=schema)]
        except NoSuchTableError as e:
            raise StorageError(f"Table {table} does not exist") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot inspect table {table}: {e}") from e
        if not names:
            raise StorageError(f"Table {table} does not exist")
        return names

    def has_table(self, table: str) -> bool:
        try:
            self.columns(table)
        except StorageError:
            return False
        return True

    def prepare_upsert(
        self,
        table: str,
        keys: Sequence[str],
        insert_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> UpsertStatement:
        """Build the upsert for a table, checking every column exists.

        Raises:
            StorageError: table or any referenced column is missing
        """
        available = {column.lower() for column in self.columns(table)}
        for group, names in (("key", keys), ("insert", insert_columns), ("update", update_columns)):
            missing = [name for name in names if name.lower() not in available]
            if missing:
                raise StorageError(f"{table}: {group} column(s) not found: {', '.join(missing)}")

        insert_params = {column: f"i{index}" for index, column in enumerate(insert_columns)}
        update_params = {column: f"u{index}" for index, column in enumerate(update_columns)}

        sql = "INSERT INTO {table} ({columns}) VALUES ({values}) ON CONFLICT({keys}) DO UPDATE SET {updates}".format(
            table=self.quote_ident(table),
            columns=", ".join(self.quote_ident(column) for column in insert_columns),
            values=", ".join(f":{name}" for name in insert_params.values()),
            keys=", ".join(self.quote_ident(key) for key in keys),
            updates=", ".join(
                f"{self.quote_ident(column)} = :{name}" for column, name in update_params.items()
            ),
        )
        logger.debug(f"Prepared upsert for {table}: {sql}")
        return UpsertStatement(table, sql, insert_params, update_params)

    def upsert(self, statement: UpsertStatement, row: Mapping[str, Any]) -> None:
        self.execute(statement.sql, statement.parameters(row))

    def dispose(self) -> None:
        self.engine.dispose()
