# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/database/operations.py

"""Status store operations for vaultsync."""

from datetime import date as date_type
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from vaultsync.exceptions import StorageError
from vaultsync.expressions import now_iso

from .connection import build_engine
from .models import Base, LogEntry, RunStatus

STATUS_FIELDS = ("state", "stage", "message", "processed", "total", "started_at", "finished_at")


def _default_status(job: str) -> Dict[str, Any]:
    return {
        "job": job,
        "state": "idle",
        "stage": None,
        "message": None,
        "processed": 0,
        "total": 0,
        "started_at": None,
        "updated_at": None,
        "finished_at": None,
        "summary": {},
    }


class StatusStore:
    """Persists run status and the run journal for one job."""

    def __init__(
        self,
        database_url: str,
        job: str = "sync",
        max_log_entries: int = 0,
        clock: Callable[[], str] = now_iso,
    ):
        """Initialize the status store.

        Args:
            database_url: SQLAlchemy database URL
                e.g., "sqlite:///path/to/status.db"
            job: Job name; each job has its own status row and journal
            max_log_entries: Keep at most this many journal rows (0 keeps all)
            clock: Source of ISO-8601 timestamps
        """
        self.database_url = database_url
        self.job = job
        self.max_log_entries = max(0, int(max_log_entries or 0))
        self.clock = clock
        self.engine = build_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.create_tables()

    def create_tables(self):
        """Create the status tables if they do not exist."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot create status tables: {e}") from e
        logger.debug(f"Status tables ready in {self.database_url}")

    def get_session(self) -> Session:
        """Get a database session."""
        return self.SessionLocal()

    def _row(self, session: Session, lock: bool = False) -> RunStatus:
        query = session.query(RunStatus).filter(RunStatus.job == self.job)
        if lock:
            query = query.with_for_update()
        status = query.first()
        if status is None:
            status = RunStatus(job=self.job, state="idle", processed=0, total=0)
            session.add(status)
        return status

    def load(self) -> Dict[str, Any]:
        """Current status, idle defaults when the job never ran."""
        try:
            with self.get_session() as session:
                status = session.query(RunStatus).filter(RunStatus.job == self.job).first()
                return status.to_dict() if status is not None else _default_status(self.job)
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot read status for {self.job}: {e}") from e

    def update(self, fields: Dict[str, Any], summary: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Apply status fields and stamp updated_at."""
        try:
            with self.get_session() as session:
                status = self._row(session, lock=True)
                self._apply(status, fields, summary)
                session.commit()
                return status.to_dict()
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot update status for {self.job}: {e}") from e

    def claim(self, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply fields unless a run is active.

        The state check and the write happen in one transaction. Returns the
        new status, or None when the job is already running (nothing changes).
        """
        try:
            with self.get_session() as session:
                status = self._row(session, lock=True)
                if status.state == "running":
                    session.rollback()
                    return None
                self._apply(status, fields, {})
                session.commit()
                return status.to_dict()
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot claim status for {self.job}: {e}") from e

    def _apply(self, status: RunStatus, fields: Dict[str, Any], summary: Optional[Dict[str, Any]]):
        for name, value in fields.items():
            if name in STATUS_FIELDS:
                setattr(status, name, value)
        if summary is not None:
            status.summary = dict(summary)
        status.updated_at = self.clock()

    def append_log(
        self,
        level: str,
        message: str,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Append one journal entry, trimming old entries when capped."""
        try:
            with self.get_session() as session:
                entry = LogEntry(
                    job=self.job,
                    created_at=self.clock(),
                    level=level.lower(),
                    stage=stage,
                    message=message,
                    context=context or None,
                )
                session.add(entry)
                session.flush()
                if self.max_log_entries:
                    self._trim_logs(session)
                session.commit()
                return entry.to_dict()
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot write log entry for {self.job}: {e}") from e

    def _trim_logs(self, session: Session):
        count = session.query(func.count(LogEntry.id)).filter(LogEntry.job == self.job).scalar() or 0
        excess = count - self.max_log_entries
        if excess <= 0:
            return
        oldest = (
            session.query(LogEntry.id)
            .filter(LogEntry.job == self.job)
            .order_by(LogEntry.id.asc())
            .limit(excess)
            .all()
        )
        ids = [row.id for row in oldest]
        session.query(LogEntry).filter(LogEntry.id.in_(ids)).delete(synchronize_session=False)
        logger.trace(f"Trimmed {len(ids)} journal entries for {self.job}")

    def read_logs(
        self,
        date: Optional[Union[str, date_type]] = None,
        limit: Optional[int] = None,
        levels: Optional[Iterable[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Journal entries in ascending order.

        Args:
            date: Only entries created on this day (YYYY-MM-DD)
            limit: Keep only the newest N entries
            levels: Only entries with one of these levels
        """
        try:
            with self.get_session() as session:
                query = session.query(LogEntry).filter(LogEntry.job == self.job)
                if date is not None:
                    day = date.isoformat() if isinstance(date, date_type) else str(date)
                    query = query.filter(LogEntry.created_at.like(f"{day}%"))
                if levels is not None:
                    query = query.filter(LogEntry.level.in_([level.lower() for level in levels]))
                query = query.order_by(LogEntry.id.desc())
                if limit is not None and limit > 0:
                    query = query.limit(limit)
                entries = [entry.to_dict() for entry in query.all()]
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot read log entries for {self.job}: {e}") from e
        entries.reverse()
        return entries

    def clear_logs(self) -> int:
        try:
            with self.get_session() as session:
                deleted = session.query(LogEntry).filter(LogEntry.job == self.job).delete()
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot clear log entries for {self.job}: {e}") from e
        logger.info(f"Cleared {deleted:,} journal entries for {self.job}")
        return deleted

    def dispose(self) -> None:
        self.engine.dispose()
