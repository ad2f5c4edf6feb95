"""Tests for the live TimerService."""
from datetime import datetime, timedelta

import pytest

from config import SETTING_ACTIVE_TIMER, EntryStatus
from conftest import EventCollector
from core import ServiceContainer
from database import db, DatabaseError
from events import AppEvent
from services.timer import TimerService


class WallClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def wall() -> WallClock:
    return WallClock(datetime(2024, 3, 4, 9, 0))


@pytest.fixture
def timer(services: ServiceContainer, wall: WallClock) -> TimerService:
    return TimerService(services.reconciler, clock=wall)


class TestStart:
    async def test_creates_running_entry(self, timer: TimerService):
        result = await timer.start(project="Acme")
        assert result.success
        entry = result.entry
        assert entry.status == EntryStatus.RUNNING
        assert entry.start_time == entry.end_time == "09:00"
        assert entry.total_hours == 0.0
        assert timer.running
        assert (await db.get_setting(SETTING_ACTIVE_TIMER))["entry_id"] == entry.id

    async def test_default_project(self, timer: TimerService):
        result = await timer.start()
        assert result.entry.project == "General Work"

    async def test_second_start_ignored(self, timer: TimerService):
        first = await timer.start()
        second = await timer.start()
        assert not second.success
        assert second.entry.id == first.entry.id

    async def test_emits_started(self, timer: TimerService):
        collector = EventCollector(AppEvent.TIMER_STARTED)
        await timer.start()
        assert collector.count(AppEvent.TIMER_STARTED) == 1
        collector.cleanup()


class TestBreaksAndStop:
    async def test_full_session(self, timer: TimerService, wall: WallClock):
        await timer.start()
        wall.advance(hours=3)
        assert await timer.start_break()
        assert not await timer.start_break()
        wall.advance(minutes=30)
        assert await timer.end_break()
        wall.advance(hours=5)
        assert timer.worked_seconds() == 8 * 3600

        result = await timer.stop()
        assert result.success
        entry = result.entry
        assert entry.status == EntryStatus.COMPLETED
        assert entry.end_time == "17:30"
        assert entry.break_duration == 30
        assert entry.total_hours == 8.0
        assert entry.earnings == 200.0
        assert not timer.running
        assert await db.get_setting(SETTING_ACTIVE_TIMER) is None

    async def test_stop_during_break_closes_it(self, timer: TimerService, wall: WallClock):
        await timer.start()
        wall.advance(hours=3)
        await timer.start_break()
        wall.advance(minutes=45)
        result = await timer.stop()
        assert result.entry.break_duration == 45
        assert result.entry.total_hours == 3.0

    async def test_end_break_without_break(self, timer: TimerService):
        await timer.start()
        assert not await timer.end_break()

    async def test_stop_when_idle(self, timer: TimerService):
        result = await timer.stop()
        assert not result.success

    async def test_failed_stop_keeps_session(
        self, services: ServiceContainer, timer: TimerService, wall: WallClock, monkeypatch
    ):
        started = await timer.start()
        wall.advance(hours=2)

        async def failing_update(collection, key, fields):
            raise DatabaseError("offline")

        with monkeypatch.context() as patch:
            patch.setattr(db, "update_document", failing_update)
            result = await timer.stop()

        assert not result.success
        assert timer.running
        stored = await services.reconciler.find_entry(started.entry.id)
        assert stored.status == EntryStatus.RUNNING

        restored = TimerService(services.reconciler, clock=wall)
        session = await restored.restore()
        assert session is not None
        assert session.entry_id == started.entry.id

        retried = await timer.stop()
        assert retried.success
        assert retried.entry.end_time == "11:00"
        assert not timer.running

    async def test_emits_stopped(self, timer: TimerService, wall: WallClock):
        collector = EventCollector(AppEvent.TIMER_STOPPED)
        await timer.start()
        wall.advance(hours=1)
        result = await timer.stop()
        assert collector.payloads(AppEvent.TIMER_STOPPED) == [result.entry]
        collector.cleanup()


class TestRestore:
    async def test_restores_persisted_session(self, services: ServiceContainer, timer: TimerService, wall: WallClock):
        started = await timer.start(project="Acme")
        await timer.start_break()

        restored = TimerService(services.reconciler, clock=wall)
        session = await restored.restore()
        assert session is not None
        assert session.entry_id == started.entry.id
        assert session.project == "Acme"
        assert restored.on_break

    async def test_discards_session_without_entry(self, services: ServiceContainer, timer: TimerService, wall: WallClock):
        started = await timer.start()
        await services.reconciler.delete_entry(started.entry.id)

        restored = TimerService(services.reconciler, clock=wall)
        assert await restored.restore() is None
        assert await db.get_setting(SETTING_ACTIVE_TIMER) is None

    async def test_nothing_to_restore(self, timer: TimerService):
        assert await timer.restore() is None
