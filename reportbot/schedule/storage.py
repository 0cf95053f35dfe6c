"""Schedule repository: schedule definitions and the run ledger."""

import json
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

try:
    import fcntl  # Unix only
except ImportError:
    fcntl = None

from loguru import logger

from reportbot.schedule.types import Run, RunStatus, RunTrigger, Schedule, ScheduleStore
from reportbot.utils.helpers import utc_now


class RunStateError(ValueError):
    """A terminal run was asked to change state again."""


class ScheduleRepository(ABC):
    """What the scheduler core needs from persistence."""

    @abstractmethod
    def list_active_schedules(self) -> list[Schedule]:
        pass

    @abstractmethod
    def get_schedule(self, schedule_id: str) -> Schedule | None:
        pass

    @abstractmethod
    def create_run(self, schedule_id: str, trigger: RunTrigger = "tick") -> Run:
        pass

    @abstractmethod
    def update_run(
        self,
        run_id: str,
        status: RunStatus,
        recipient_count: int | None = None,
        error_message: str | None = None,
        completed_at: datetime | None = None,
    ) -> Run:
        pass


class JsonScheduleStore(ScheduleRepository):
    """
    File-backed repository.

    Schedules and runs live in one JSON document that is rewritten on every
    change. The CLI and a running server may share the file, so the cached
    copy is dropped whenever the file changes on disk, and every write
    re-reads the file under an exclusive lock before applying its change.
    """

    def __init__(self, store_path: Path):
        self.store_path = store_path
        self.lock_path = store_path.with_name(store_path.name + ".lock")
        self._store: ScheduleStore | None = None
        self._stamp: tuple[int, int] | None = None

    def _disk_stamp(self) -> tuple[int, int] | None:
        try:
            stat = self.store_path.stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def _load_store(self) -> ScheduleStore:
        stamp = self._disk_stamp()
        if self._store is not None and stamp == self._stamp:
            return self._store

        if stamp is not None:
            try:
                data = json.loads(self.store_path.read_text(encoding="utf-8"))
                self._store = ScheduleStore.model_validate(data)
            except ValueError as e:
                corrupt_path = self.store_path.with_name(self.store_path.name + ".corrupt")
                logger.warning(f"Failed to load schedule store {self.store_path}: {e}; moved to {corrupt_path}")
                self.store_path.replace(corrupt_path)
                self._store = ScheduleStore()
                stamp = None
        else:
            self._store = ScheduleStore()

        self._stamp = stamp
        return self._store

    def _save_store(self) -> None:
        if not self._store:
            return

        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        data = self._store.model_dump(mode="json", by_alias=True)
        tmp_path = self.store_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.store_path)
        self._stamp = self._disk_stamp()

    @contextmanager
    def _writing(self) -> Iterator[ScheduleStore]:
        """Exclusive read-modify-write of the store file."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a") as lock_file:
            if fcntl is not None:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield self._load_store()
                self._save_store()
            finally:
                if fcntl is not None:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def reload(self) -> None:
        """Drop the in-memory copy so the next read hits the disk."""
        self._store = None
        self._stamp = None

    # ========== Core interface ==========

    def list_active_schedules(self) -> list[Schedule]:
        return [s for s in self._load_store().schedules if s.is_active]

    def get_schedule(self, schedule_id: str) -> Schedule | None:
        for schedule in self._load_store().schedules:
            if schedule.id == schedule_id:
                return schedule
        return None

    def create_run(self, schedule_id: str, trigger: RunTrigger = "tick") -> Run:
        run = Run(schedule_id=schedule_id, status="running", trigger=trigger)
        with self._writing() as store:
            store.runs.append(run)
        logger.debug(f"Run {run.id} created for schedule {schedule_id}")
        return run

    def update_run(
        self,
        run_id: str,
        status: RunStatus,
        recipient_count: int | None = None,
        error_message: str | None = None,
        completed_at: datetime | None = None,
    ) -> Run:
        with self._writing() as store:
            run = next((r for r in store.runs if r.id == run_id), None)
            if run is None:
                raise KeyError(f"run not found: {run_id}")
            if run.is_terminal:
                raise RunStateError(f"run {run_id} is already {run.status}")

            run.status = status
            if recipient_count is not None:
                run.recipient_count = recipient_count
            if error_message is not None:
                run.error_message = error_message
            if completed_at is not None:
                run.completed_at = completed_at
            elif run.is_terminal:
                run.completed_at = utc_now()

        logger.debug(f"Run {run_id} is now {status}")
        return run

    # ========== Administration ==========

    def list_schedules(self, include_inactive: bool = True) -> list[Schedule]:
        schedules = self._load_store().schedules
        if not include_inactive:
            schedules = [s for s in schedules if s.is_active]
        return sorted(schedules, key=lambda s: (s.subject_name.lower(), s.hour, s.minute))

    def add_schedule(self, schedule: Schedule) -> Schedule:
        with self._writing() as store:
            if any(s.id == schedule.id for s in store.schedules):
                raise ValueError(f"schedule already exists: {schedule.id}")
            store.schedules.append(schedule)
        logger.info(f"Added schedule '{schedule.name}' ({schedule.id}), {schedule.describe()}")
        return schedule

    def update_schedule(self, schedule_id: str, **changes: Any) -> Schedule | None:
        """Apply field changes; the result is validated as a whole."""
        with self._writing() as store:
            for index, schedule in enumerate(store.schedules):
                if schedule.id == schedule_id:
                    data = schedule.model_dump()
                    data.update(changes)
                    data["updated_at"] = utc_now()
                    updated = Schedule.model_validate(data)
                    store.schedules[index] = updated
                    return updated
        return None

    def set_active(self, schedule_id: str, active: bool = True) -> Schedule | None:
        return self.update_schedule(schedule_id, is_active=active)

    def remove_schedule(self, schedule_id: str) -> bool:
        """Remove a schedule together with its run history."""
        with self._writing() as store:
            before = len(store.schedules)
            store.schedules = [s for s in store.schedules if s.id != schedule_id]
            removed = len(store.schedules) < before
            if removed:
                store.runs = [r for r in store.runs if r.schedule_id != schedule_id]

        if removed:
            logger.info(f"Removed schedule {schedule_id}")
        return removed

    def get_run(self, run_id: str) -> Run | None:
        for run in self._load_store().runs:
            if run.id == run_id:
                return run
        return None

    def list_runs(self, schedule_id: str | None = None, limit: int | None = None) -> list[Run]:
        """Runs, newest first."""
        runs = self._load_store().runs
        if schedule_id:
            runs = [r for r in runs if r.schedule_id == schedule_id]
        runs = sorted(runs, key=lambda r: r.started_at, reverse=True)
        return runs[:limit] if limit else runs
