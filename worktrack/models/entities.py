from dataclasses import dataclass, field, replace, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import (
    DEFAULT_BULK_BREAK_MINUTES,
    DEFAULT_BULK_STANDARD_HOURS,
    DEFAULT_BULK_START_TIME,
    DEFAULT_PROJECT_COLOR,
    BULK_DEFAULT_DESCRIPTION,
    BULK_DEFAULT_PROJECT,
    BULK_DEFAULT_TASK,
    EntryStatus,
    EntryType,
    Trend,
)
from database import KEY_FIELD
from errors import NotFoundError


def _as_float(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(float(value)) if value is not None else 0
    except (TypeError, ValueError, OverflowError):
        return 0


def _entry_type(value: Any) -> EntryType:
    try:
        return EntryType(value)
    except ValueError:
        return EntryType.WORK


def _entry_status(value: Any) -> EntryStatus:
    try:
        return EntryStatus(value)
    except ValueError:
        return EntryStatus.COMPLETED


@dataclass(frozen=True)
class TimeEntry:
    """One logged work or leave session for a single day.

    Entries are immutable: use ``with_changes`` to derive an updated copy so
    concurrent readers never see a half-updated record.

    ``id`` is only ever the store-assigned key. ``legacy_id`` is whatever
    ``id`` field was embedded in the stored payload by older clients; it is
    read for compatibility lookups and never written back.
    """
    date: str
    start_time: str
    end_time: str
    break_duration: int = 0
    extra_hours: float = 0.0
    total_hours: float = 0.0
    earnings: float = 0.0
    type: EntryType = EntryType.WORK
    status: EntryStatus = EntryStatus.COMPLETED
    project: str = ""
    project_id: str = ""
    task: str = ""
    description: str = ""
    batch_id: Optional[str] = None
    id: Optional[str] = None
    legacy_id: Optional[str] = None

    @property
    def is_work(self) -> bool:
        return self.type == EntryType.WORK

    @property
    def is_running(self) -> bool:
        return self.status == EntryStatus.RUNNING

    def with_changes(self, **changes: Any) -> "TimeEntry":
        return replace(self, **changes)

    def fingerprint(self) -> tuple:
        """Identity of a submission for duplicate suppression."""
        return (self.date, self.start_time, self.end_time, self.batch_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the store payload. The key is never embedded."""
        payload = {
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "breakDuration": self.break_duration,
            "extraHours": self.extra_hours,
            "totalHours": self.total_hours,
            "earnings": self.earnings,
            "type": self.type.value,
            "status": self.status.value,
            "project": self.project,
            "projectId": self.project_id,
            "task": self.task,
            "description": self.description,
        }
        if self.batch_id:
            payload["batchId"] = self.batch_id
        return payload

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimeEntry":
        """Create a TimeEntry from a store record or a form draft.

        Missing numeric fields default to 0 and missing labels to "" so
        exports can always read every column.
        """
        legacy = d.get("id")
        key = d.get(KEY_FIELD)
        return cls(
            id=str(key) if key else None,
            legacy_id=str(legacy) if legacy not in (None, "") else None,
            date=str(d.get("date") or ""),
            start_time=str(d.get("startTime") or ""),
            end_time=str(d.get("endTime") or ""),
            break_duration=_as_int(d.get("breakDuration")),
            extra_hours=_as_float(d.get("extraHours")),
            total_hours=_as_float(d.get("totalHours")),
            earnings=_as_float(d.get("earnings")),
            type=_entry_type(d.get("type", EntryType.WORK.value)),
            status=_entry_status(d.get("status", EntryStatus.COMPLETED.value)),
            project=str(d.get("project") or ""),
            project_id=str(d.get("projectId") or ""),
            task=str(d.get("task") or ""),
            description=str(d.get("description") or ""),
            batch_id=str(d["batchId"]) if d.get("batchId") else None,
        )


@dataclass
class Project:
    name: str
    is_active: bool = True
    description: str = ""
    color: str = DEFAULT_PROJECT_COLOR
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "isActive": self.is_active,
            "description": self.description,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Project":
        return cls(
            id=d.get(KEY_FIELD),
            name=d.get("name", ""),
            is_active=bool(d.get("isActive", True)),
            description=d.get("description", ""),
            color=d.get("color", DEFAULT_PROJECT_COLOR),
        )


@dataclass(frozen=True)
class PeriodStats:
    """Derived totals for one period. Never persisted."""
    hours: float = 0.0
    earnings: float = 0.0
    count: int = 0
    target: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {"hours": self.hours, "earnings": self.earnings, "entries": self.count}
        if self.target is not None:
            d["target"] = self.target
        return d


@dataclass(frozen=True)
class Productivity:
    score: float = 0.0
    trend: Trend = Trend.STABLE
    comparison_percent: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "trend": self.trend.value,
            "comparison": self.comparison_percent,
        }


@dataclass(frozen=True)
class DashboardStatistics:
    """The shape consumed by dashboards: today, week, month and productivity."""
    today: PeriodStats
    week: PeriodStats
    month: PeriodStats
    productivity: Productivity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "today": self.today.to_dict(),
            "week": self.week.to_dict(),
            "month": self.month.to_dict(),
            "productivity": self.productivity.to_dict(),
        }


@dataclass(frozen=True)
class Targets:
    """Hour goals used for productivity and dashboard targets."""
    per_day: float
    per_week: float
    per_month: float


@dataclass(frozen=True)
class BulkTemplate:
    """Shared shape for every entry of a bulk expansion."""
    start_time: str = DEFAULT_BULK_START_TIME
    standard_hours: float = DEFAULT_BULK_STANDARD_HOURS
    break_minutes: int = DEFAULT_BULK_BREAK_MINUTES
    project: str = BULK_DEFAULT_PROJECT
    task: str = BULK_DEFAULT_TASK
    description: str = BULK_DEFAULT_DESCRIPTION
    type: EntryType = EntryType.WORK


@dataclass
class TimerSession:
    """State of the live stopwatch, owned by a single TimerService.

    Serialized explicitly with to_dict/from_dict when persisted.
    """
    started_at: datetime
    entry_id: Optional[str] = None
    accumulated_break_seconds: int = 0
    is_on_break: bool = False
    break_started_at: Optional[datetime] = None
    project: str = ""
    task: str = ""
    description: str = ""

    def current_break_seconds(self, now: datetime) -> int:
        if not self.is_on_break or self.break_started_at is None:
            return 0
        return max(0, int((now - self.break_started_at).total_seconds()))

    def elapsed_seconds(self, now: datetime) -> int:
        return max(0, int((now - self.started_at).total_seconds()))

    def break_seconds(self, now: datetime) -> int:
        return self.accumulated_break_seconds + self.current_break_seconds(now)

    def worked_seconds(self, now: datetime) -> int:
        return max(0, self.elapsed_seconds(now) - self.break_seconds(now))

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["started_at"] = self.started_at.isoformat()
        d["break_started_at"] = self.break_started_at.isoformat() if self.break_started_at else None
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimerSession":
        break_start = d.get("break_started_at")
        return cls(
            started_at=datetime.fromisoformat(d["started_at"]),
            entry_id=d.get("entry_id"),
            accumulated_break_seconds=_as_int(d.get("accumulated_break_seconds")),
            is_on_break=bool(d.get("is_on_break", False)),
            break_started_at=datetime.fromisoformat(break_start) if break_start else None,
            project=d.get("project", ""),
            task=d.get("task", ""),
            description=d.get("description", ""),
        )


@dataclass
class SubmitResult:
    """Outcome of a single add or update."""
    success: bool
    entry: Optional[TimeEntry] = None
    error: Optional[Exception] = None

    @property
    def id(self) -> Optional[str]:
        return self.entry.id if self.entry else None


@dataclass
class DeleteResult:
    success: bool
    key: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, NotFoundError)


@dataclass
class BulkResult:
    """Per-item tally of a bulk submission."""
    success_count: int = 0
    error_count: int = 0
    entries: List[TimeEntry] = field(default_factory=list)
    failures: List[SubmitResult] = field(default_factory=list)
    skipped_count: int = 0
    cancelled: bool = False
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.error_count == 0


@dataclass
class RepairResult:
    success: bool
    fixed_count: int = 0
    keys: List[str] = field(default_factory=list)
    error: Optional[Exception] = None
