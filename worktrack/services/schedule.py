import calendar
import logging
import re
from datetime import date
from typing import Iterable, List, Optional, Tuple

from models.entities import BulkTemplate, TimeEntry
from services.earnings import round_hours
from services.time_math import end_time_from_duration, working_hours

logger = logging.getLogger(__name__)

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(month: str) -> Optional[Tuple[int, int]]:
    """Parse 'yyyy-MM' into (year, month). Returns None when malformed."""
    match = _MONTH_RE.match(month or "")
    if not match:
        return None
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12 or year < 1:
        return None
    return year, mon


def _month_dates(month: str) -> List[date]:
    parsed = parse_month(month)
    if parsed is None:
        return []
    year, mon = parsed
    return [date(year, mon, d) for d in range(1, calendar.monthrange(year, mon)[1] + 1)]


def all_days_in_month(month: str) -> List[int]:
    """Every day-of-month number, for a "select all days" choice."""
    return [d.day for d in _month_dates(month)]


def weekdays_in_month(month: str) -> List[int]:
    """Monday-Friday day numbers, for a "select all workdays" choice."""
    return [d.day for d in _month_dates(month) if d.weekday() < 5]


class BulkScheduleGenerator:
    """Expands a month template into one draft entry per selected day."""

    def expand(
        self,
        month: str,
        selected_days: Iterable[int],
        exclude_weekends: bool,
        template: BulkTemplate,
    ) -> List[TimeEntry]:
        """Build drafts for the selected days of ``month``.

        Days that do not exist in the month are dropped, as are Saturdays
        and Sundays when ``exclude_weekends`` is set. Every draft shares the
        template's start time, implied end time and break. Returns an empty
        list rather than raising when nothing is left; rejecting an empty
        batch is the caller's job.
        """
        parsed = parse_month(month)
        if parsed is None:
            logger.warning(f"Cannot expand schedule for malformed month {month!r}")
            return []
        year, mon = parsed
        last_day = calendar.monthrange(year, mon)[1]

        end_time = end_time_from_duration(template.start_time, template.standard_hours, template.break_minutes)
        total_hours = round_hours(working_hours(template.start_time, end_time, template.break_minutes))

        drafts: List[TimeEntry] = []
        seen = set()
        for day in sorted({int(d) for d in selected_days}):
            if not 1 <= day <= last_day:
                logger.debug(f"Skipping day {day}, not in {month}")
                continue
            entry_date = date(year, mon, day)
            if exclude_weekends and entry_date.weekday() >= 5:
                continue
            date_str = entry_date.isoformat()
            if date_str in seen:
                continue
            seen.add(date_str)
            drafts.append(TimeEntry(
                date=date_str,
                start_time=template.start_time,
                end_time=end_time,
                break_duration=int(template.break_minutes),
                total_hours=total_hours,
                type=template.type,
                project=template.project,
                task=template.task,
                description=template.description.strip() or "Work",
            ))
        return drafts


schedule_generator = BulkScheduleGenerator()
