"""Programmatic API facade for WorkTrack.

Composes the reconciler, statistics, settings and timer services to provide
the operations a dashboard or script needs without wiring them together.

Usage:
    from core import bootstrap
    from api import WorkTrackAPI

    svc = await bootstrap(db_path=Path(":memory:"))
    api = WorkTrackAPI(svc)

    await api.add_entry({"date": "2024-03-04", "startTime": "09:00", "endTime": "17:00"})
    stats = await api.current_statistics()
"""
import logging
from datetime import datetime
from typing import AsyncIterator, Callable, Iterable, List, Optional

from config import Collection
from core import ServiceContainer
from database import db
from models.entities import (
    BulkResult,
    BulkTemplate,
    DashboardStatistics,
    DeleteResult,
    RepairResult,
    SubmitResult,
    TimeEntry,
)
from services.reconciler import Draft
from services.stats import EntryLike

logger = logging.getLogger(__name__)


class WorkTrackAPI:
    """High-level facade over WorkTrack services.

    Methods that need the hourly rate or targets read them from settings
    unless one is passed explicitly.
    """

    def __init__(self, services: ServiceContainer) -> None:
        self._svc = services

    @property
    def services(self) -> ServiceContainer:
        return self._svc

    async def _rate(self, hourly_rate: Optional[float]) -> float:
        if hourly_rate is not None:
            return hourly_rate
        return await self._svc.settings.get_hourly_rate()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def compute_entry(self, draft: Draft, hourly_rate: Optional[float] = None) -> TimeEntry:
        """Validate a draft and derive its hours and earnings without saving it.

        Raises:
            ValidationError: If the draft is incomplete or malformed.
        """
        return self._svc.reconciler.compute_entry(draft, await self._rate(hourly_rate))

    async def add_entry(self, draft: Draft, hourly_rate: Optional[float] = None) -> SubmitResult:
        return await self._svc.reconciler.add_entry(draft, hourly_rate)

    async def update_entry(self, key: str, **changes) -> SubmitResult:
        """Update fields of an entry addressed by store key or legacy id."""
        return await self._svc.reconciler.update_entry(key, changes)

    async def delete_entry(self, key: str) -> DeleteResult:
        return await self._svc.reconciler.delete_entry(key)

    async def find_entry(self, key: str) -> Optional[TimeEntry]:
        return await self._svc.reconciler.find_entry(key)

    async def entries_for_range(self, start: Optional[str] = None, end: Optional[str] = None) -> List[TimeEntry]:
        """Entries dated within [start, end], newest first. Open ends are unbounded."""
        return await self._svc.reconciler.load_entries(start, end)

    async def repair_ids(self) -> RepairResult:
        return await self._svc.reconciler.repair_id_mismatches()

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    async def submit_bulk(
        self,
        month: str,
        days: Iterable[int],
        exclude_weekends: bool = True,
        template: Optional[BulkTemplate] = None,
    ) -> BulkResult:
        return await self._svc.reconciler.submit_bulk(month, days, exclude_weekends, template)

    def cancel_bulk(self) -> bool:
        return self._svc.reconciler.cancel_bulk()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def aggregate_statistics(
        self,
        entries: Iterable[EntryLike],
        now: Optional[datetime] = None,
        hourly_rate: Optional[float] = None,
    ) -> DashboardStatistics:
        return self._svc.stats.aggregate_statistics(
            entries,
            now or datetime.now(),
            await self._rate(hourly_rate),
            await self._svc.settings.get_targets(),
        )

    async def current_statistics(self, now: Optional[datetime] = None) -> DashboardStatistics:
        """Dashboard statistics over every stored entry."""
        entries = await self._svc.reconciler.load_entries()
        return await self.aggregate_statistics(entries, now)

    async def export_statistics(self, now: Optional[datetime] = None) -> str:
        entries = await self._svc.reconciler.load_entries()
        return self._svc.stats.export_to_json(
            entries,
            now or datetime.now(),
            await self._svc.settings.get_hourly_rate(),
            await self._svc.settings.get_targets(),
        )

    async def watch_statistics(
        self,
        now_fn: Callable[[], datetime] = datetime.now,
    ) -> AsyncIterator[DashboardStatistics]:
        """Yield fresh statistics now and after every change to time entries.

        Each snapshot is aggregated from scratch. Failed snapshots are
        logged and skipped, so consumers keep their last good value.
        """
        subscription = await db.subscribe(Collection.TIME_ENTRIES.value)
        try:
            async for snapshot in subscription:
                if not snapshot.success:
                    logger.warning(f"Skipping failed snapshot: {snapshot.error}")
                    continue
                yield await self.aggregate_statistics(snapshot.data, now_fn())
        finally:
            subscription.close()
