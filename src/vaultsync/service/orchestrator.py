# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/orchestrator.py

"""Staged run orchestration with an observable status and a journal.

    idle --begin--> running --complete--> done
                       |
                       +----fail-------> error

done and error go back to idle only through reset(). begin() while running
raises BusyError and changes nothing.
"""

from datetime import date as date_type
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Union

from loguru import logger

from vaultsync.exceptions import BusyError
from vaultsync.service.database.operations import STATUS_FIELDS, StatusStore

LEVELS = {"info": 1, "warning": 2, "error": 3}


class Stage(NamedTuple):
    """A named unit of work inside a run."""
    name: str
    action: Callable[[], Optional[Mapping[str, Any]]]
    message: Optional[str] = None
    total: Optional[int] = None  # Items this stage will process, when known upfront


class RunOrchestrator:
    """Drives one job's run state machine and writes its journal."""

    def __init__(self, store: StatusStore):
        self.store = store
        self.job = store.job

    # -- state machine -------------------------------------------------------

    def begin(self, label: str) -> Dict[str, Any]:
        status = self.store.claim({
            "state": "running",
            "stage": None,
            "message": label,
            "processed": 0,
            "total": 0,
            "started_at": self.store.clock(),
            "finished_at": None,
        })
        if status is None:
            raise BusyError(f"Job {self.job} is already running")
        logger.info(f"[{self.job}] {label}")
        return status

    def advance(
        self,
        stage: Optional[str],
        message: Optional[str] = None,
        total: Optional[int] = None,
        processed: Optional[int] = None,
    ) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"stage": stage, "state": "running"}
        if message is not None:
            fields["message"] = message
        if total is not None:
            fields["total"] = int(total)
        if processed is not None:
            current = self.store.load().get("processed") or 0
            fields["processed"] = max(int(processed), current)
        return self.store.update(fields)

    def complete(self, extra: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        extra = dict(extra or {})
        fields: Dict[str, Any] = {
            "state": "done",
            "stage": None,
            "message": "Run finished",
            "finished_at": self.store.clock(),
        }
        for name in STATUS_FIELDS:
            if name in extra and name != "state":
                fields[name] = extra[name]
        status = self.store.update(fields, summary=extra)
        logger.info(f"[{self.job}] {fields['message']}")
        return status

    def fail(self, message: str, stage: Optional[str] = None) -> Dict[str, Any]:
        status = self.store.update({
            "state": "error",
            "stage": stage,
            "message": message,
            "finished_at": self.store.clock(),
        })
        logger.error(f"[{self.job}] {message}")
        return status

    def reset(self) -> Dict[str, Any]:
        """Return to idle, e.g. after a crashed process left the job running."""
        return self.store.update({
            "state": "idle",
            "stage": None,
            "message": None,
            "processed": 0,
            "total": 0,
            "started_at": None,
            "finished_at": None,
        }, summary={})

    def get_status(self) -> Dict[str, Any]:
        return self.store.load()

    # -- journal ---------------------------------------------------------------

    def log(
        self,
        level: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        stage: Optional[str] = None,
    ) -> Dict[str, Any]:
        level = level.lower()
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        prefix = f"[{self.job}:{stage}]" if stage else f"[{self.job}]"
        logger.log(level.upper(), f"{prefix} {message}")
        return self.store.append_log(level, message, stage=stage, context=context)

    def info(self, message: str, context: Optional[Dict[str, Any]] = None, stage: Optional[str] = None):
        return self.log("info", message, context, stage)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None, stage: Optional[str] = None):
        return self.log("warning", message, context, stage)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None, stage: Optional[str] = None):
        return self.log("error", message, context, stage)

    def read_logs(
        self,
        date: Optional[Union[str, date_type]] = None,
        limit: Optional[int] = None,
        min_level: str = "info",
    ) -> List[Dict[str, Any]]:
        """Journal entries at or above min_level, oldest first."""
        threshold = LEVELS.get(min_level.lower())
        if threshold is None:
            raise ValueError(f"Unknown log level: {min_level}")
        levels = [name for name, priority in LEVELS.items() if priority >= threshold]
        return self.store.read_logs(date=date, limit=limit, levels=levels)

    # -- staged runs -------------------------------------------------------------

    def run(
        self,
        label: str,
        stages: Iterable[Stage],
        setup: Optional[Callable[[], Any]] = None,
    ) -> Dict[str, Any]:
        """Run stages in order under the busy guard.

        A failing setup marks the run as error and re-raises. A failing stage
        is journaled as a warning and the remaining stages still run.

        Returns:
            The final status; its summary holds per-stage results and the
            names of failed stages
        """
        stages = list(stages)
        self.begin(label)

        if setup is not None:
            try:
                setup()
            except Exception as e:
                self.fail(str(e), stage="setup")
                self.error(f"Setup failed: {e}", context={"error": type(e).__name__}, stage="setup")
                raise

        current: Optional[str] = None
        try:
            total = sum(stage.total or 0 for stage in stages)
            processed = 0
            results: Dict[str, Any] = {}
            failed: List[str] = []
            for stage in stages:
                current = stage.name
                self.advance(stage.name, message=stage.message or f"Running {stage.name}", total=total)
                try:
                    result = dict(stage.action() or {})
                except Exception as e:
                    failed.append(stage.name)
                    results[stage.name] = {"error": str(e)}
                    self.warning(
                        f"Stage {stage.name} failed: {e}",
                        context={"stage": stage.name, "error": type(e).__name__},
                        stage=stage.name,
                    )
                    continue

                processed += int(result.get("processed") or 0)
                total = max(total, processed)
                results[stage.name] = result
                self.advance(stage.name, message=f"{stage.name} finished", total=total, processed=processed)
                self.info(f"Stage {stage.name} finished", context=result, stage=stage.name)
            current = None

            message = "Run finished" if not failed else f"Run finished, {len(failed)} stage(s) failed"
            return self.complete({
                "message": message,
                "processed": processed,
                "total": total,
                "stages": results,
                "failed_stages": failed,
            })
        except Exception as e:
            self.fail(str(e), stage=current)
            self.error(f"Run aborted: {e}", context={"error": type(e).__name__}, stage=current)
            raise
