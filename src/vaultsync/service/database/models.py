# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/database/models.py

"""SQLAlchemy models for the run status store."""

from sqlalchemy import (
    JSON,
    Column,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class RunStatus(Base):
    """Current state of one job; a single row per job name."""

    __tablename__ = "run_status"

    # Primary key
    job = Column(String(64), primary_key=True)

    # State machine
    state = Column(String(16), nullable=False, default="idle")  # idle, running, done, error
    stage = Column(Text, nullable=True)
    message = Column(Text, nullable=True)

    # Progress
    processed = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)

    # Timing, ISO-8601 strings with offset
    started_at = Column(String(40), nullable=True)
    updated_at = Column(String(40), nullable=True)
    finished_at = Column(String(40), nullable=True)

    # Extras passed to complete()
    summary = Column(JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "job": self.job,
            "state": self.state,
            "stage": self.stage,
            "message": self.message,
            "processed": self.processed or 0,
            "total": self.total or 0,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "finished_at": self.finished_at,
            "summary": self.summary or {},
        }

    def __repr__(self):
        return f"<RunStatus(job={self.job}, state={self.state}, stage={self.stage})>"


class LogEntry(Base):
    """Append-only run journal."""

    __tablename__ = "run_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job = Column(String(64), nullable=False)
    created_at = Column(String(40), nullable=False)
    level = Column(String(16), nullable=False)  # info, warning, error
    stage = Column(Text, nullable=True)
    message = Column(Text, nullable=False)
    context = Column(JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "level": self.level,
            "stage": self.stage,
            "message": self.message,
            "context": self.context or {},
        }

    def __repr__(self):
        return f"<LogEntry(id={self.id}, level={self.level}, message={self.message!r})>"


# Lookup indexes
Index("idx_run_log_job_created", LogEntry.job, LogEntry.created_at)
Index("idx_run_log_level", LogEntry.level)
