"""Tick evaluation, lock handling and failure isolation."""

import asyncio
from datetime import datetime, timezone

import pytest

from reportbot.errors import RenderError
from reportbot.schedule.executor import ScheduleExecutor
from reportbot.schedule.service import SchedulerService
from reportbot.schedule.storage import JsonScheduleStore

from conftest import BUSINESS_TZ, CountingLock, FakeChannel, FakeRenderer, make_schedule

MONDAY_8AM = datetime(2025, 3, 3, 8, 0, tzinfo=BUSINESS_TZ)


class SelectiveRenderer(FakeRenderer):
    def __init__(self, failing: set[str], delay: float = 0):
        super().__init__(delay=delay)
        self.failing = failing

    async def render_pdf(self, subject_id: str) -> bytes:
        self.calls.append(subject_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if subject_id in self.failing:
            raise RenderError(f"browser crashed for {subject_id}", step="navigating")
        return b"%PDF-1.4 fake"


def _service(store, renderer, lock=None, channel=None) -> SchedulerService:
    lock = lock if lock is not None else CountingLock()
    executor = ScheduleExecutor(
        repository=store,
        renderer=renderer,
        channel=channel or FakeChannel(),
        lock=lock,
        timezone=BUSINESS_TZ,
    )
    return SchedulerService(store, executor, lock, BUSINESS_TZ, tick_interval_s=60)


@pytest.mark.asyncio
async def test_tick_launches_only_due_schedules(store) -> None:
    store.add_schedule(make_schedule(id="weekly", subject_id="w"))
    store.add_schedule(make_schedule(id="daily", frequency="daily", day_of_week=None, subject_id="d"))
    store.add_schedule(make_schedule(id="later", frequency="daily", day_of_week=None, hour=9, subject_id="l"))
    store.add_schedule(make_schedule(id="paused", is_active=False, subject_id="p"))
    renderer = FakeRenderer()

    runs = await _service(store, renderer).tick(MONDAY_8AM)

    assert sorted(r.schedule_id for r in runs) == ["daily", "weekly"]
    assert sorted(renderer.calls) == ["d", "w"]
    assert all(r.status == "success" and r.trigger == "tick" for r in runs)


@pytest.mark.asyncio
async def test_tick_uses_business_time_for_utc_instants(store) -> None:
    store.add_schedule(make_schedule())
    renderer = FakeRenderer()

    utc_instant = datetime(2025, 3, 3, 11, 0, tzinfo=timezone.utc)
    runs = await _service(store, renderer).tick(utc_instant)

    assert len(runs) == 1
    assert await _service(store, renderer).tick(utc_instant.replace(hour=8)) == []


@pytest.mark.asyncio
async def test_held_schedule_is_skipped(store) -> None:
    store.add_schedule(make_schedule(id="busy", subject_id="b"))
    store.add_schedule(make_schedule(id="free", subject_id="f"))
    lock = CountingLock()
    lock.try_acquire("busy")
    renderer = FakeRenderer()

    runs = await _service(store, renderer, lock=lock).tick(MONDAY_8AM)

    assert [r.schedule_id for r in runs] == ["free"]
    assert renderer.calls == ["f"]
    assert lock.is_held("busy")
    assert store.list_runs("busy") == []


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_others(store) -> None:
    for sid in ("a", "b", "c"):
        store.add_schedule(make_schedule(id=sid, subject_id=sid))
    lock = CountingLock()
    renderer = SelectiveRenderer(failing={"b"}, delay=0.01)

    runs = await _service(store, renderer, lock=lock).tick(MONDAY_8AM)

    statuses = {r.schedule_id: r.status for r in runs}
    assert statuses == {"a": "success", "b": "failed", "c": "success"}
    assert "browser crashed" in store.list_runs("b")[0].error_message
    assert lock.releases == {"a": 1, "b": 1, "c": 1}
    assert len(lock) == 0


@pytest.mark.asyncio
async def test_overlapping_ticks_do_not_double_execute(store) -> None:
    store.add_schedule(make_schedule(id="slow"))
    renderer = FakeRenderer(delay=0.05)
    service = _service(store, renderer)

    first, second = await asyncio.gather(service.tick(MONDAY_8AM), service.tick(MONDAY_8AM))

    assert len(first) + len(second) == 1
    assert renderer.calls == ["acme-001"]


@pytest.mark.asyncio
async def test_tick_survives_repository_errors(store) -> None:
    class BrokenStore(type(store)):
        def list_active_schedules(self):
            raise OSError("disk gone")

    broken = BrokenStore(store.store_path)
    assert await _service(broken, FakeRenderer()).tick(MONDAY_8AM) == []


def test_next_tick_is_aligned_and_never_repeats(store) -> None:
    service = _service(store, FakeRenderer())

    assert service._next_tick_at(120.5) == 180
    assert service._next_tick_at(179.999) == 180

    service._last_tick_at = 180
    # Woke up slightly early: still the 180 boundary by the wall clock.
    assert service._next_tick_at(179.9) == 240


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_settles(store) -> None:
    service = _service(store, FakeRenderer())

    await service.start()
    first_task = service._loop_task
    await service.start()
    assert service._loop_task is first_task
    assert service.is_running
    assert service.status()["running"] is True

    await service.stop()
    assert not service.is_running
    assert service.status()["executing"] == []


class FakeClock:
    def __init__(self, *readings: float):
        self.readings = list(readings)

    def __call__(self) -> float:
        return self.readings.pop(0)


def _recording_service(store, clock: FakeClock) -> tuple[SchedulerService, list[datetime]]:
    executor = ScheduleExecutor(store, FakeRenderer(), FakeChannel(), CountingLock(), BUSINESS_TZ)
    service = SchedulerService(store, executor, executor.lock, BUSINESS_TZ, tick_interval_s=60, clock=clock)
    service._running = True
    evaluated: list[datetime] = []

    async def record(now=None):
        evaluated.append(now)
        return []

    service.tick = record
    return service, evaluated


@pytest.mark.asyncio
async def test_late_wake_skips_missed_minute_and_evaluates_current_one(store) -> None:
    eight_oh_oh_thirty = datetime(2025, 3, 3, 8, 0, 30, tzinfo=BUSINESS_TZ).timestamp()
    nine_oh_oh_ten = datetime(2025, 3, 3, 9, 0, 10, tzinfo=BUSINESS_TZ).timestamp()
    clock = FakeClock(eight_oh_oh_thirty, nine_oh_oh_ten, nine_oh_oh_ten)
    service, evaluated = _recording_service(store, clock)

    task = await service._wait_and_tick()
    await task

    assert [(m.hour, m.minute) for m in evaluated] == [(9, 0)]
    assert service._next_tick_at(nine_oh_oh_ten) == datetime(2025, 3, 3, 9, 1, tzinfo=BUSINESS_TZ).timestamp()


@pytest.mark.asyncio
async def test_on_time_wake_evaluates_the_boundary(store) -> None:
    before = datetime(2025, 3, 3, 7, 59, 59, 900000, tzinfo=BUSINESS_TZ).timestamp()
    boundary = datetime(2025, 3, 3, 8, 0, tzinfo=BUSINESS_TZ).timestamp()
    clock = FakeClock(before, boundary, boundary + 0.2)
    service, evaluated = _recording_service(store, clock)

    task = await service._wait_and_tick()
    await task

    assert [(m.hour, m.minute) for m in evaluated] == [(8, 0)]
    assert service._last_tick_at == boundary


@pytest.mark.asyncio
async def test_tick_sees_schedules_added_by_another_process(tmp_path) -> None:
    path = tmp_path / "schedules.json"
    serving = JsonScheduleStore(path)
    service = _service(serving, FakeRenderer())
    assert await service.tick(MONDAY_8AM) == []

    JsonScheduleStore(path).add_schedule(make_schedule(id="added-later"))

    runs = await service.tick(MONDAY_8AM)
    assert [r.schedule_id for r in runs] == ["added-later"]
