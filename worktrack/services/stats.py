import calendar
import json
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from config import (
    DEFAULT_MONTHLY_TARGET_HOURS,
    DEFAULT_TARGET_HOURS_PER_DAY,
    DEFAULT_WEEKLY_TARGET_HOURS,
    MAX_PRODUCTIVITY_SCORE,
    TREND_DEADBAND_PERCENT,
    UNASSIGNED_PROJECT,
    GroupKey,
    Trend,
)
from models.entities import (
    DashboardStatistics,
    PeriodStats,
    Productivity,
    Targets,
    TimeEntry,
)
from services.earnings import earnings, round_currency, round_hours
from services.time_math import parse_time

EntryLike = Union[TimeEntry, Dict[str, Any]]

DEFAULT_TARGETS = Targets(
    per_day=DEFAULT_TARGET_HOURS_PER_DAY,
    per_week=DEFAULT_WEEKLY_TARGET_HOURS,
    per_month=DEFAULT_MONTHLY_TARGET_HOURS,
)


def _coerce(entry: EntryLike) -> TimeEntry:
    if isinstance(entry, TimeEntry):
        return entry
    return TimeEntry.from_dict(entry or {})


def _coerce_all(entries: Optional[Iterable[EntryLike]]) -> List[TimeEntry]:
    return [_coerce(e) for e in (entries or [])]


def week_bounds(day: date) -> Tuple[date, date]:
    """Monday..Sunday week containing ``day``."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def previous_month(year: int, month: int) -> Tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


class StatsService:
    """Period statistics over time entries.

    Every method is a pure function of its arguments: no state is kept
    between calls, so re-running with a stale then fresh entry list always
    gives the result for the list passed last. Nothing here raises on bad
    entry data; missing hours count as 0.
    """

    def aggregate(
        self,
        entries: Iterable[EntryLike],
        period_start: str,
        period_end: str,
        hourly_rate: float = 0.0,
        work_only: bool = False,
    ) -> PeriodStats:
        """Sum hours of entries dated within [period_start, period_end].

        ISO date strings compare correctly as strings, so no date parsing
        (and no timezone conversion) happens here.
        """
        hours = 0.0
        count = 0
        for entry in _coerce_all(entries):
            if not entry.date or not (period_start <= entry.date <= period_end):
                continue
            if work_only and not entry.is_work:
                continue
            hours += max(0.0, entry.total_hours)
            count += 1
        return PeriodStats(hours=hours, earnings=earnings(hours, hourly_rate), count=count)

    def trend(self, current: float, previous: float) -> float:
        """Percentage change of current vs previous."""
        if not previous:
            return 100.0 if current > 0 else 0.0
        return (current - previous) / previous * 100

    def classify_trend(self, percent: float) -> Trend:
        # +/- dead-band keeps small day-to-day noise "stable"
        if percent > TREND_DEADBAND_PERCENT:
            return Trend.UP
        if percent < -TREND_DEADBAND_PERCENT:
            return Trend.DOWN
        return Trend.STABLE

    def productivity_score(
        self,
        period_hours: float,
        days_elapsed: int,
        target_hours_per_day: float = DEFAULT_TARGET_HOURS_PER_DAY,
    ) -> float:
        """Average daily hours as a percentage of the daily target, capped at 100."""
        if days_elapsed <= 0 or target_hours_per_day <= 0:
            return 0.0
        score = (period_hours / days_elapsed) / target_hours_per_day * 100
        return max(0.0, min(MAX_PRODUCTIVITY_SCORE, score))

    def peak_hour(self, entries: Iterable[EntryLike]) -> Optional[int]:
        """Start hour (0-23) with the most logged hours.

        Ties go to the earliest hour. Returns None when no entry has a
        parseable start time; callers must handle that case.
        """
        buckets: Dict[int, float] = {}
        for entry in _coerce_all(entries):
            parsed = parse_time(entry.start_time)
            if parsed is None:
                continue
            buckets[parsed[0]] = buckets.get(parsed[0], 0.0) + entry.total_hours

        peak: Optional[int] = None
        for hour in sorted(buckets):
            if peak is None or buckets[hour] > buckets[peak]:
                peak = hour
        return peak

    def group_key(self, entry: TimeEntry, key: GroupKey) -> Optional[str]:
        if key == GroupKey.PROJECT:
            return entry.project.strip() or UNASSIGNED_PROJECT
        if not entry.date:
            return None
        if key == GroupKey.DAY:
            return entry.date
        if key == GroupKey.MONTH:
            return entry.date[:7]
        try:
            day = date.fromisoformat(entry.date)
        except ValueError:
            return None
        return week_bounds(day)[0].isoformat()

    def group_by(
        self,
        entries: Iterable[EntryLike],
        key: GroupKey,
        hourly_rate: float = 0.0,
    ) -> Dict[str, PeriodStats]:
        """Totals per day, week (keyed by its Monday), month (yyyy-MM) or project."""
        totals: Dict[str, Tuple[float, int]] = {}
        for entry in _coerce_all(entries):
            group = self.group_key(entry, key)
            if group is None:
                continue
            hours, count = totals.get(group, (0.0, 0))
            totals[group] = (hours + max(0.0, entry.total_hours), count + 1)
        return {
            group: PeriodStats(hours=hours, earnings=earnings(hours, hourly_rate), count=count)
            for group, (hours, count) in sorted(totals.items())
        }

    def top_project(self, entries: Iterable[EntryLike]) -> Optional[str]:
        """Project with the most hours, ties broken alphabetically."""
        by_project = self.group_by(entries, GroupKey.PROJECT)
        best: Optional[str] = None
        for name, stats in by_project.items():
            if best is None or stats.hours > by_project[best].hours:
                best = name
        return best

    def aggregate_statistics(
        self,
        entries: Iterable[EntryLike],
        now: datetime,
        hourly_rate: float,
        targets: Optional[Targets] = None,
    ) -> DashboardStatistics:
        """Today, this week, this month and productivity for a dashboard.

        Only work entries count. Productivity compares the month-to-date
        daily average with the daily target, and the trend compares this
        calendar month with the previous one.
        """
        targets = targets or DEFAULT_TARGETS
        items = _coerce_all(entries)
        today = now.date()
        today_str = today.isoformat()
        week_start, week_end = week_bounds(today)
        month_start, month_end = month_bounds(today.year, today.month)
        prev_year, prev_month = previous_month(today.year, today.month)
        prev_start, prev_end = month_bounds(prev_year, prev_month)

        def period(start: date, end: date) -> PeriodStats:
            return self.aggregate(items, start.isoformat(), end.isoformat(), hourly_rate, work_only=True)

        today_stats = self.aggregate(items, today_str, today_str, hourly_rate, work_only=True)
        week_stats = period(week_start, week_end)
        month_stats = period(month_start, month_end)
        previous_stats = period(prev_start, prev_end)

        comparison = self.trend(month_stats.hours, previous_stats.hours)
        score = self.productivity_score(month_stats.hours, today.day, targets.per_day)

        return DashboardStatistics(
            today=self._rounded(today_stats),
            week=self._rounded(week_stats, targets.per_week),
            month=self._rounded(month_stats, targets.per_month),
            productivity=Productivity(
                score=round(score),
                trend=self.classify_trend(comparison),
                comparison_percent=round_hours(comparison),
            ),
        )

    def _rounded(self, stats: PeriodStats, target: Optional[float] = None) -> PeriodStats:
        return PeriodStats(
            hours=round_hours(stats.hours),
            earnings=round_currency(stats.earnings),
            count=stats.count,
            target=target,
        )

    def export_to_json(
        self,
        entries: Iterable[EntryLike],
        now: datetime,
        hourly_rate: float,
        targets: Optional[Targets] = None,
    ) -> str:
        """Export dashboard statistics and groupings to JSON."""
        items = _coerce_all(entries)
        statistics = self.aggregate_statistics(items, now, hourly_rate, targets)

        def rows(groups: Dict[str, PeriodStats]) -> List[Dict[str, Any]]:
            return [
                {
                    "key": name,
                    "hours": round_hours(s.hours),
                    "earnings": round_currency(s.earnings),
                    "entries": s.count,
                }
                for name, s in groups.items()
            ]

        work = [e for e in items if e.is_work]
        export_data: Dict[str, Any] = {
            "export_date": now.isoformat(),
            "hourly_rate": hourly_rate,
            "statistics": statistics.to_dict(),
            "peak_hour": self.peak_hour(work),
            "top_project": self.top_project(work),
            "by_month": rows(self.group_by(work, GroupKey.MONTH, hourly_rate)),
            "by_project": rows(self.group_by(work, GroupKey.PROJECT, hourly_rate)),
        }
        return json.dumps(export_data, indent=2, ensure_ascii=False)


# Singleton instance
stats_service = StatsService()
