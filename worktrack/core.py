"""Headless bootstrap for WorkTrack services.

Initializes the store and service layer, suitable for CLI tools, scripts,
dashboards and testing.

Usage:
    from core import bootstrap, shutdown

    svc = await bootstrap(db_path=Path("my.db"))
    result = await svc.reconciler.add_entry({"date": "2024-03-04", "startTime": "09:00", "endTime": "17:00"})
    await shutdown()
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from database import db, configure_db_path
from services.bulk_lock import BulkSubmissionLock
from services.project_service import ProjectService
from services.reconciler import EntryReconciler
from services.schedule import schedule_generator
from services.settings_service import SettingsService
from services.stats import StatsService, stats_service
from services.throttle import SubmissionThrottle
from services.timer import TimerService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container holding all initialized services for headless use."""
    reconciler: EntryReconciler
    stats: StatsService
    settings: SettingsService
    project: ProjectService
    timer: TimerService


async def bootstrap(
    db_path: Optional[Path] = None,
    throttle: Optional[SubmissionThrottle] = None,
    lock: Optional[BulkSubmissionLock] = None,
) -> ServiceContainer:
    """Open the store and wire up the services.

    Args:
        db_path: Custom database path. Uses WORKTRACK_DB_PATH or
            "worktrack.db" if None.
        throttle: Bulk submission throttle. Defaults to the configured
            interval and concurrency.
        lock: Bulk submission lock. Defaults to the configured cooldown.

    Returns:
        ServiceContainer with all services ready to use.
    """
    if db_path is not None:
        configure_db_path(db_path)
    await db.init_db()

    settings_service = SettingsService()
    reconciler = EntryReconciler(
        settings=settings_service,
        lock=lock,
        throttle=throttle,
        generator=schedule_generator,
    )
    logger.debug("Services bootstrapped")

    return ServiceContainer(
        reconciler=reconciler,
        stats=stats_service,
        settings=settings_service,
        project=ProjectService(),
        timer=TimerService(reconciler),
    )


async def shutdown() -> None:
    """Clean up resources (close database connection)."""
    await db.close()
