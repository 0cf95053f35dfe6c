"""Scheduler service: the periodic tick that launches due reports."""

import asyncio
import math
import time
from datetime import datetime, tzinfo
from typing import Any, Callable

from loguru import logger

from reportbot.schedule.executor import ScheduleExecutor
from reportbot.schedule.lock import ExecutionLock
from reportbot.schedule.matcher import business_now, should_run
from reportbot.schedule.storage import ScheduleRepository
from reportbot.schedule.types import Run, Schedule


class SchedulerService:
    """
    Evaluates every active schedule once per tick.

    Ticks are aligned to the wall-clock interval boundary (the start of each
    minute for the default 60s). Each tick runs as its own task, launches one
    task per due schedule and then waits for all of them to settle, so a slow
    report never delays the next tick and a failing one never stops the loop.
    When the loop wakes after a boundary's interval has already passed (process
    paused, clock jump), that tick is logged and skipped, never replayed late;
    the interval the loop woke in is evaluated instead.
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        executor: ScheduleExecutor,
        lock: ExecutionLock,
        timezone: tzinfo,
        tick_interval_s: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.executor = executor
        self.lock = lock
        self.timezone = timezone
        self.tick_interval_s = tick_interval_s
        self._clock = clock
        self._running = False
        self._loop_task: asyncio.Task | None = None
        self._tick_tasks: set[asyncio.Task] = set()
        self._last_tick_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the tick loop."""
        if self._loop_task and not self._loop_task.done():
            logger.info("Scheduler already running")
            return

        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(f"Scheduler started - checking every {self.tick_interval_s}s ({self.timezone})")

    async def stop(self) -> None:
        """Stop ticking and wait for in-flight executions to settle."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._tick_tasks:
            logger.info(f"Waiting for {len(self._tick_tasks)} tick(s) to finish...")
            await asyncio.gather(*self._tick_tasks, return_exceptions=True)
        logger.info("Scheduler stopped")

    def _next_tick_at(self, now_ts: float) -> float:
        interval = self.tick_interval_s
        target = (math.floor(now_ts / interval) + 1) * interval
        if self._last_tick_at is not None:
            target = max(target, self._last_tick_at + interval)
        return target

    async def _run_loop(self) -> None:
        while self._running:
            await self._wait_and_tick()

    async def _wait_and_tick(self) -> asyncio.Task | None:
        """Sleep to the next boundary and spawn the tick for the interval we woke in."""
        target = self._next_tick_at(self._clock())
        await asyncio.sleep(max(0.0, target - self._clock()))
        if not self._running:
            return None

        woke_at = self._clock()
        boundary = self._current_boundary(target, woke_at)
        if boundary != target:
            missed = int((boundary - target) // self.tick_interval_s)
            logger.warning(
                f"Woke {woke_at - target:.0f}s late, skipping {missed} missed tick(s) from "
                f"{datetime.fromtimestamp(target, tz=self.timezone):%Y-%m-%d %H:%M}"
            )
        self._last_tick_at = boundary

        task = asyncio.create_task(self.tick(datetime.fromtimestamp(max(boundary, woke_at), tz=self.timezone)))
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_tasks.discard)
        return task

    def _current_boundary(self, target: float, woke_at: float) -> float:
        """``target`` unless its interval has already passed, then the boundary ``woke_at`` falls in."""
        if woke_at < target + self.tick_interval_s:
            return target
        return math.floor(woke_at / self.tick_interval_s) * self.tick_interval_s

    async def tick(self, now: datetime | None = None) -> list[Run]:
        """Launch every due schedule and wait for all of them to settle.

        Returns the terminal runs of the executions that completed.
        """
        moment = business_now(self.timezone, now)
        try:
            schedules = self.repository.list_active_schedules()
        except Exception as e:
            logger.error(f"Error checking schedules: {e}")
            return []

        launched: dict[asyncio.Task, Schedule] = {}
        for schedule in schedules:
            if not should_run(schedule, moment):
                continue
            if not self.lock.try_acquire(schedule.id):
                logger.info(f"Schedule {schedule.id} already executing, skipping")
                continue

            logger.info(f"Executing schedule: {schedule.name} ({schedule.id})")
            task = asyncio.create_task(self._execute_locked(schedule))
            launched[task] = schedule

        if not launched:
            return []

        results = await asyncio.gather(*launched, return_exceptions=True)
        runs: list[Run] = []
        for schedule, result in zip(launched.values(), results):
            if isinstance(result, BaseException):
                logger.error(f"Schedule {schedule.id} did not complete: {result!r}")
            else:
                runs.append(result)
        return runs

    async def _execute_locked(self, schedule: Schedule) -> Run:
        try:
            return await self.executor.execute(schedule, trigger="tick")
        finally:
            self.lock.release(schedule.id)

    def status(self) -> dict[str, Any]:
        """Get service status."""
        try:
            active = len(self.repository.list_active_schedules())
        except Exception as e:
            logger.warning(f"Could not count active schedules: {e}")
            active = None
        return {
            "running": self._running,
            "timezone": str(self.timezone),
            "tick_interval_s": self.tick_interval_s,
            "active_schedules": active,
            "executing": self.lock.held(),
        }
