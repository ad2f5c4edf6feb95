"""Wall-clock arithmetic for HH:mm (24-hour) start/end/break inputs.

Times carry no date or timezone. A shift whose end is earlier than its start
is treated as crossing midnight. None of these functions raise: malformed
input degrades to a zero span so statistics can always render.
"""
import logging
import re
from typing import Optional, Tuple

from config import MINUTES_PER_DAY

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")


def parse_time(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse 'HH:mm' into (hour, minute). Returns None when malformed."""
    if not value or not isinstance(value, str):
        return None
    match = _TIME_RE.match(value)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def is_valid_time(value: Optional[str]) -> bool:
    return parse_time(value) is not None


def to_minutes(value: Optional[str]) -> Optional[int]:
    """Minutes since midnight, or None when malformed."""
    parsed = parse_time(value)
    if parsed is None:
        return None
    return parsed[0] * 60 + parsed[1]


def format_time(minutes: int) -> str:
    """Format minutes since midnight as 'HH:mm', wrapping at 24 hours."""
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def span_minutes(start: Optional[str], end: Optional[str]) -> int:
    """Elapsed minutes from start to end on a shared reference day.

    A negative difference means the shift crossed midnight, so a full day
    is added: span_minutes("22:00", "06:00") == 480.
    """
    start_min = to_minutes(start)
    end_min = to_minutes(end)
    if start_min is None or end_min is None:
        logger.debug(f"Unparseable span {start!r} -> {end!r}, treating as 0")
        return 0
    diff = end_min - start_min
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def working_hours(start: Optional[str], end: Optional[str], break_minutes: float = 0) -> float:
    """Decimal hours worked, never negative. An oversized break floors to 0."""
    try:
        break_minutes = float(break_minutes or 0)
    except (TypeError, ValueError):
        break_minutes = 0.0
    return max(0.0, span_minutes(start, end) / 60 - break_minutes / 60)


def end_time_from_duration(start: Optional[str], hours: float, break_minutes: float = 0) -> str:
    """Implied end time of a shift of ``hours`` net work plus its break."""
    start_min = to_minutes(start)
    if start_min is None:
        start_min = 0
    try:
        total = start_min + round(float(hours) * 60) + round(float(break_minutes or 0))
    except (TypeError, ValueError):
        total = start_min
    return format_time(total)
