import logging
from datetime import datetime
from typing import Callable, Optional

from config import SETTING_ACTIVE_TIMER, TIMER_DEFAULT_PROJECT, EntryStatus
from database import db, DatabaseError
from events import event_bus, AppEvent
from models.entities import SubmitResult, TimeEntry, TimerSession

logger = logging.getLogger(__name__)


class TimerService:
    """Live stopwatch backed by a running time entry.

    ``start`` persists a ``running`` entry right away (end = start) so the
    session survives a restart; ``stop`` completes it with the accumulated
    break and recomputed hours. The session itself is kept in the
    ``active_timer`` setting until the timer stops.
    """

    def __init__(self, reconciler, clock: Callable[[], datetime] = datetime.now) -> None:
        self._reconciler = reconciler
        self._clock = clock
        self.session: Optional[TimerSession] = None

    @property
    def running(self) -> bool:
        return self.session is not None

    @property
    def on_break(self) -> bool:
        return self.session is not None and self.session.is_on_break

    def worked_seconds(self) -> int:
        return self.session.worked_seconds(self._clock()) if self.session else 0

    def break_seconds(self) -> int:
        return self.session.break_seconds(self._clock()) if self.session else 0

    async def start(self, project: str = "", task: str = "", description: str = "") -> SubmitResult:
        """Start the timer and persist its running entry."""
        if self.running:
            logger.info("Timer already running, start ignored")
            return SubmitResult(success=False, entry=await self._reconciler.find_entry(self.session.entry_id))

        now = self._clock()
        hhmm = now.strftime("%H:%M")
        draft = TimeEntry(
            date=now.date().isoformat(),
            start_time=hhmm,
            end_time=hhmm,
            status=EntryStatus.RUNNING,
            project=project.strip() or TIMER_DEFAULT_PROJECT,
            task=task.strip(),
            description=description.strip(),
        )
        result = await self._reconciler.add_entry(draft)
        if not result.success:
            logger.error(f"Could not start timer: {result.error}")
            return result

        self.session = TimerSession(
            started_at=now,
            entry_id=result.entry.id,
            project=draft.project,
            task=draft.task,
            description=draft.description,
        )
        await self._save()
        logger.info(f"Timer started for '{draft.project}' at {hhmm}")
        event_bus.emit(AppEvent.TIMER_STARTED, self.session)
        return result

    async def start_break(self) -> bool:
        if not self.running or self.session.is_on_break:
            return False
        self.session.is_on_break = True
        self.session.break_started_at = self._clock()
        await self._save()
        event_bus.emit(AppEvent.TIMER_BREAK_STARTED, self.session)
        return True

    async def end_break(self) -> bool:
        if not self.on_break:
            return False
        self._close_break(self._clock())
        await self._save()
        event_bus.emit(AppEvent.TIMER_BREAK_ENDED, self.session)
        return True

    def _close_break(self, now: datetime) -> None:
        session = self.session
        session.accumulated_break_seconds += session.current_break_seconds(now)
        session.is_on_break = False
        session.break_started_at = None

    async def stop(self) -> SubmitResult:
        """Stop the timer and complete its entry.

        An open break is closed first. Break time counts in whole minutes.
        If the entry cannot be completed the session stays active so the
        stop can be retried.
        """
        if not self.running:
            return SubmitResult(success=False)

        now = self._clock()
        if self.session.is_on_break:
            self._close_break(now)
        session = self.session
        self.session = None

        result = await self._reconciler.update_entry(session.entry_id, {
            "end_time": now.strftime("%H:%M"),
            "break_duration": session.accumulated_break_seconds // 60,
            "status": EntryStatus.COMPLETED,
        })
        if not result.success:
            logger.error(f"Failed to complete timer entry {session.entry_id}: {result.error}")
            self.session = session
            await self._save()
            return result
        await self._clear()
        event_bus.emit(AppEvent.TIMER_STOPPED, result.entry)
        return result

    async def restore(self) -> Optional[TimerSession]:
        """Reload a persisted session after a restart.

        A session whose entry no longer exists is discarded.
        """
        if self.running:
            return self.session
        data = await db.get_setting(SETTING_ACTIVE_TIMER)
        if not data:
            return None
        try:
            session = TimerSession.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable timer session: {e}")
            await self._clear()
            return None

        entry = await self._reconciler.find_entry(session.entry_id)
        if entry is None or not entry.is_running:
            logger.info(f"Timer entry {session.entry_id} is gone, discarding session")
            await self._clear()
            return None

        self.session = session
        logger.info(f"Timer restored, running since {session.started_at.isoformat()}")
        event_bus.emit(AppEvent.TIMER_STARTED, session)
        return session

    async def _save(self) -> None:
        try:
            await db.set_setting(SETTING_ACTIVE_TIMER, self.session.to_dict())
        except DatabaseError as e:
            logger.warning(f"Failed to persist timer session: {e}")

    async def _clear(self) -> None:
        try:
            await db.delete_setting(SETTING_ACTIVE_TIMER)
        except DatabaseError as e:
            logger.warning(f"Failed to clear timer session: {e}")
