"""Application configuration - single source of truth for all constants.

Contains enums (EntryType, EntryStatus, Trend, GroupKey, Collection) and the
default values for rates, targets and bulk submission throttling.
Import from here instead of hardcoding values elsewhere to keep the
computation core and its callers consistent.
"""
import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")


class EntryType(Enum):
    """Kind of logged session. Only WORK counts toward earnings and targets."""
    WORK = "work"
    SICK = "sick"
    LEAVE_PAID = "leave-paid"
    LEAVE_UNPAID = "leave-unpaid"


class EntryStatus(Enum):
    """Lifecycle status of a time entry."""
    RUNNING = "running"
    COMPLETED = "completed"


class Trend(Enum):
    """Direction of a period-over-period change."""
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class GroupKey(Enum):
    """Keys entries can be grouped by for statistics."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    PROJECT = "project"


class Collection(Enum):
    """Document store collections."""
    TIME_ENTRIES = "timeEntries"
    PROJECTS = "projects"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


DB_PATH_ENV = "WORKTRACK_DB_PATH"
DEFAULT_DB_FILENAME = "worktrack.db"

DEFAULT_HOURLY_RATE = 25.0
MAX_HOURLY_RATE = 1000.0
DEFAULT_CURRENCY = "USD"

DEFAULT_TARGET_HOURS_PER_DAY = 8.0
DEFAULT_WEEKLY_TARGET_HOURS = 40.0
DEFAULT_MONTHLY_TARGET_HOURS = 160.0

TREND_DEADBAND_PERCENT = 5.0
MAX_PRODUCTIVITY_SCORE = 100.0

MINUTES_PER_DAY = 24 * 60

# Bulk submission throttling
BULK_SUBMIT_DELAY_SECONDS = _env_float("WORKTRACK_BULK_DELAY_SECONDS", 0.5)
BULK_LOCK_COOLDOWN_SECONDS = _env_float("WORKTRACK_BULK_LOCK_SECONDS", 30.0)
BULK_CONCURRENCY = 1

DEFAULT_BULK_START_TIME = "09:00"
DEFAULT_BULK_STANDARD_HOURS = 8.0
DEFAULT_BULK_BREAK_MINUTES = 60
BULK_DEFAULT_PROJECT = "Bulk Entry"
BULK_DEFAULT_TASK = "Standard Work"
BULK_DEFAULT_DESCRIPTION = "Work"

TIMER_DEFAULT_PROJECT = "General Work"
UNASSIGNED_PROJECT = "Unassigned"

# Settings keys
SETTING_HOURLY_RATE = "hourly_rate"
SETTING_CURRENCY = "currency"
SETTING_TARGET_DAY = "target_hours_per_day"
SETTING_TARGET_WEEK = "weekly_target_hours"
SETTING_TARGET_MONTH = "monthly_target_hours"
SETTING_ACTIVE_TIMER = "active_timer"

PROJECT_NAME_MAX_LENGTH = 50
DEFAULT_PROJECT_COLOR = "#3B82F6"
