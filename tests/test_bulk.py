"""Tests for bulk schedule expansion, the submission lock and the throttle."""
import asyncio

import pytest

from conftest import FakeClock
from models.entities import BulkTemplate
from services.bulk_lock import BulkSubmissionLock, bulk_lock_key
from services.schedule import (
    BulkScheduleGenerator,
    all_days_in_month,
    parse_month,
    weekdays_in_month,
)
from services.throttle import SubmissionThrottle


# ===========================================================================
# Schedule expansion
# ===========================================================================

class TestScheduleGenerator:
    def setup_method(self):
        self.generator = BulkScheduleGenerator()

    def test_march_2024_weekdays(self):
        drafts = self.generator.expand("2024-03", range(1, 32), True, BulkTemplate())
        assert len(drafts) == 21
        assert drafts[0].date == "2024-03-01"
        assert drafts[-1].date == "2024-03-29"

    def test_default_template_shape(self):
        draft = self.generator.expand("2024-03", [4], True, BulkTemplate())[0]
        assert draft.start_time == "09:00"
        assert draft.end_time == "18:00"
        assert draft.break_duration == 60
        assert draft.total_hours == 8.0
        assert draft.description == "Work"

    def test_weekends_kept_when_not_excluded(self):
        assert len(self.generator.expand("2024-03", range(1, 32), False, BulkTemplate())) == 31

    def test_days_outside_month_dropped(self):
        drafts = self.generator.expand("2024-02", [29, 30, 31], False, BulkTemplate())
        assert [d.date for d in drafts] == ["2024-02-29"]

    def test_duplicates_and_order(self):
        drafts = self.generator.expand("2024-03", [6, 4, 4, 5], True, BulkTemplate())
        assert [d.date for d in drafts] == ["2024-03-04", "2024-03-05", "2024-03-06"]

    def test_only_weekend_days_yields_empty(self):
        assert self.generator.expand("2024-03", [2, 3], True, BulkTemplate()) == []

    def test_blank_description_falls_back(self):
        drafts = self.generator.expand("2024-03", [4], True, BulkTemplate(description="   "))
        assert drafts[0].description == "Work"

    def test_malformed_month(self):
        assert parse_month("2024-13") is None
        assert parse_month("March") is None
        assert self.generator.expand("2024-3", [4], True, BulkTemplate()) == []

    def test_selection_helpers(self):
        assert len(weekdays_in_month("2024-03")) == 21
        assert len(all_days_in_month("2024-02")) == 29


# ===========================================================================
# Submission lock
# ===========================================================================

class TestBulkSubmissionLock:
    def test_key_uses_sorted_days(self):
        assert bulk_lock_key("2024-03", [5, 1, 3, 3]) == "bulk_submission_2024-03_1_3_5"

    def test_second_acquire_rejected(self, clock: FakeClock):
        lock = BulkSubmissionLock(cooldown_seconds=30, clock=clock)
        assert lock.acquire("k")
        assert not lock.acquire("k")
        assert lock.in_flight("k")

    def test_release_keeps_cooldown(self, clock: FakeClock):
        lock = BulkSubmissionLock(cooldown_seconds=30, clock=clock)
        lock.acquire("k")
        lock.release("k")
        assert not lock.in_flight("k")
        assert not lock.acquire("k")

    def test_marker_expires(self, clock: FakeClock):
        lock = BulkSubmissionLock(cooldown_seconds=30, clock=clock)
        lock.acquire("k")
        clock.advance(30)
        assert not lock.is_locked("k")
        assert lock.acquire("k")

    def test_retry_after(self, clock: FakeClock):
        lock = BulkSubmissionLock(cooldown_seconds=30, clock=clock)
        assert lock.retry_after("k") is None
        lock.acquire("k")
        clock.advance(10)
        assert lock.retry_after("k") == pytest.approx(20.0)

    def test_keys_are_independent(self, clock: FakeClock):
        lock = BulkSubmissionLock(cooldown_seconds=30, clock=clock)
        assert lock.acquire("a")
        assert lock.acquire("b")


# ===========================================================================
# Throttle
# ===========================================================================

class TestSubmissionThrottle:
    async def test_sleeps_between_items_only(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        async def worker(item):
            return item * 2

        throttle = SubmissionThrottle(interval_seconds=0.5, sleep=fake_sleep)
        assert await throttle.run([1, 2, 3, 4, 5], worker) == [2, 4, 6, 8, 10]
        assert sleeps == [0.5] * 4

    async def test_sequential_by_default(self):
        active = 0
        peak = 0

        async def worker(item):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1

        await SubmissionThrottle(interval_seconds=0).run(range(5), worker)
        assert peak == 1

    async def test_concurrency_bound(self):
        active = 0
        peak = 0

        async def worker(item):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await SubmissionThrottle(interval_seconds=0, concurrency=2).run(range(6), worker)
        assert peak == 2

    async def test_stop_prevents_future_items_only(self):
        done = []

        async def worker(item):
            done.append(item)
            return item

        throttle = SubmissionThrottle(interval_seconds=0)
        results = await throttle.run([1, 2, 3, 4], worker, should_continue=lambda: len(done) < 2)
        assert results == [1, 2]
        assert done == [1, 2]

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            SubmissionThrottle(concurrency=0)
        with pytest.raises(ValueError):
            SubmissionThrottle(interval_seconds=-1)
