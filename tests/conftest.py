"""Shared fixtures for WorkTrack tests."""
from pathlib import Path

import pytest
import pytest_asyncio

import database as db_module
from core import ServiceContainer, bootstrap
from database import db
from events import AppEvent, event_bus
from services.bulk_lock import BulkSubmissionLock
from services.throttle import SubmissionThrottle


class EventCollector:
    """Subscribe to events and record them for assertions."""

    def __init__(self, *events: AppEvent):
        self.received: list[tuple[AppEvent, object]] = []
        self._subs = []
        for ev in events:
            sub = event_bus.subscribe(ev, lambda data, _ev=ev: self.received.append((_ev, data)))
            self._subs.append(sub)

    def count(self, event: AppEvent) -> int:
        return sum(1 for ev, _ in self.received if ev == event)

    def payloads(self, event: AppEvent) -> list:
        return [data for ev, data in self.received if ev == event]

    def cleanup(self):
        for sub in self._subs:
            sub.unsubscribe()


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def services(clock: FakeClock) -> ServiceContainer:
    """Provide a fresh ServiceContainer backed by an in-memory database.

    Reuses the module-level singletons (db, event_bus) but resets their
    internal state between tests for isolation. Bulk submissions run
    without delay and the lock cooldown follows the ``clock`` fixture.
    """
    # Close any existing DB connection and force re-init
    await db.close()
    db._initialized = False
    db._conn_lock = None
    db._init_lock = None
    db._watchers = {}

    event_bus.clear()

    # Point to a fresh in-memory database
    db_module.DB_PATH = Path(":memory:")

    svc = await bootstrap(
        throttle=SubmissionThrottle(interval_seconds=0),
        lock=BulkSubmissionLock(cooldown_seconds=30, clock=clock),
    )

    yield svc

    await db.close()
    event_bus.clear()
