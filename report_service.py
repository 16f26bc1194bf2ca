"""Aggregation of workout entries into monthly and yearly reports.

The ``compute_*`` functions are pure: they take entries and the type catalog
and return value objects without touching the store. ``ReportService`` loads
the inputs from the repositories and re-runs the functions when the store
reports a change.
"""

from __future__ import annotations

import datetime
import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from db import (
    AsyncWorkoutEntryRepository,
    AsyncWorkoutTypeRepository,
    WorkoutEntryRepository,
    WorkoutTypeRepository,
)
from models import (
    DailyCountData,
    MonthlyCountData,
    MonthlyReport,
    WorkoutEntry,
    WorkoutType,
    WorkoutTypeCountData,
    YearlyReport,
)
from tools import CalendarTools, MathTools

logger = logging.getLogger(__name__)


def _type_counts(
    entries: Sequence[WorkoutEntry], types: Mapping[int, WorkoutType]
) -> List[WorkoutTypeCountData]:
    """Count entries per type, most frequent first.

    Ties keep the order in which the type was first seen in ``entries``.
    Entries whose type is missing from ``types`` are left out.
    """
    counts = Counter(e.workout_type_id for e in entries)
    result: List[WorkoutTypeCountData] = []
    orphans = 0
    for type_id, count in sorted(counts.items(), key=lambda kv: -kv[1]):
        workout_type = types.get(type_id)
        if workout_type is None:
            orphans += count
            continue
        result.append(WorkoutTypeCountData(workout_type, count))
    if orphans:
        logger.warning("dropped %d entries with unknown workout types", orphans)
    return result


def _distinct_days(entries: Iterable[WorkoutEntry]) -> int:
    return len({e.date for e in entries})


def compute_monthly_report(
    year: int,
    month: int,
    entries: Sequence[WorkoutEntry],
    types: Mapping[int, WorkoutType],
) -> MonthlyReport:
    """Return the report for ``month`` of ``year``.

    ``entries`` must already be restricted to the month. Rest days are the
    calendar days of the month on which nothing at all was logged.
    """
    days_in_month = CalendarTools.days_in_month(year, month)
    daily = Counter(e.date.day for e in entries)
    return MonthlyReport(
        year=year,
        month=month,
        total_workouts=len(entries),
        total_rest_days=days_in_month - _distinct_days(entries),
        total_duration=MathTools.safe_sum(e.duration_minutes for e in entries),
        total_calories=MathTools.safe_sum(e.calories_burned for e in entries),
        workout_type_counts=_type_counts(entries, types),
        daily_counts=[DailyCountData(day, daily[day]) for day in sorted(daily)],
    )


def compute_yearly_report(
    year: int,
    entries: Sequence[WorkoutEntry],
    types: Mapping[int, WorkoutType],
) -> YearlyReport:
    """Return the report for ``year``; ``monthly_counts`` always has 12 items."""
    days_in_year = CalendarTools.days_in_year(year)
    monthly = Counter(e.date.month for e in entries)
    return YearlyReport(
        year=year,
        total_workouts=len(entries),
        total_rest_days=days_in_year - _distinct_days(entries),
        monthly_counts=[MonthlyCountData(m, monthly.get(m, 0)) for m in range(1, 13)],
        workout_type_counts=_type_counts(entries, types),
    )


def _without_rest_days(
    entries: Iterable[WorkoutEntry], types: Optional[Mapping[int, WorkoutType]]
) -> List[WorkoutEntry]:
    if types is None:
        return list(entries)
    return [
        e
        for e in entries
        if not (e.workout_type_id in types and types[e.workout_type_id].is_rest_day)
    ]


def compute_streak(
    entries: Iterable[WorkoutEntry],
    today: datetime.date,
    types: Optional[Mapping[int, WorkoutType]] = None,
) -> int:
    """Return the number of consecutive logged days ending today.

    Each logged day may sit one day before the expected one, so single
    unlogged days (today included) are skipped; a two-day gap ends the run.
    When ``types`` is given, rest-day entries do not count.
    """
    dates = sorted({e.date for e in _without_rest_days(entries, types)}, reverse=True)
    one_day = datetime.timedelta(days=1)
    streak = 0
    expected = today
    for date in dates:
        if date in (expected, expected - one_day):
            streak += 1
            expected = date - one_day
        else:
            break
    return streak


def compute_most_common_type(
    entries: Iterable[WorkoutEntry], type_map: Mapping[int, WorkoutType]
) -> Optional[WorkoutType]:
    """Return the most logged non rest-day type; ties go to the first seen."""
    counts = Counter(e.workout_type_id for e in _without_rest_days(entries, type_map))
    if not counts:
        return None
    winner, _ = counts.most_common(1)[0]
    return type_map.get(winner)


def compute_overview(
    year: int,
    month: int,
    entries: Sequence[WorkoutEntry],
    type_map: Mapping[int, WorkoutType],
    today: datetime.date,
    type_filter: Optional[int] = None,
) -> dict:
    """Return the month overview shown on the home screen.

    ``rest_days`` here counts days carrying a rest-day type entry, which is
    not the calendar complement reported by ``compute_monthly_report``.
    """
    CalendarTools.validate_month(year, month)
    rest_dates = {
        e.date
        for e in entries
        if e.workout_type_id in type_map and type_map[e.workout_type_id].is_rest_day
    }
    shown = [e for e in entries if type_filter is None or e.workout_type_id == type_filter]
    by_date: Dict[str, List[dict]] = {}
    for e in sorted(shown, key=lambda e: (e.date, e.id)):
        by_date.setdefault(e.date.isoformat(), []).append(e.to_dict())
    most_common = compute_most_common_type(entries, type_map)
    return {
        "year": year,
        "month": month,
        "total_workouts": len(entries),
        "workout_count": len(_without_rest_days(entries, type_map)),
        "rest_days": len(rest_dates),
        "most_common_type": most_common.to_dict() if most_common else None,
        "streak": compute_streak(entries, today, type_map),
        "entries_by_date": by_date,
    }


class ReportService:
    """Load report inputs from the store and aggregate them."""

    def __init__(
        self,
        entry_repo: WorkoutEntryRepository,
        type_repo: WorkoutTypeRepository,
        async_entry_repo: AsyncWorkoutEntryRepository | None = None,
        async_type_repo: AsyncWorkoutTypeRepository | None = None,
        clock: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.entries = entry_repo
        self.types = type_repo
        self.async_entries = async_entry_repo
        self.async_types = async_type_repo
        self.clock = clock

    def monthly_report(self, year: int, month: int) -> MonthlyReport:
        start, end = CalendarTools.month_bounds(year, month)
        entries = self.entries.fetch_between(start, end)
        report = compute_monthly_report(year, month, entries, self.types.type_map())
        logger.info(
            "monthly report %04d-%02d: %d workouts", year, month, report.total_workouts
        )
        return report

    def yearly_report(self, year: int) -> YearlyReport:
        start, end = CalendarTools.year_bounds(year)
        entries = self.entries.fetch_between(start, end)
        report = compute_yearly_report(year, entries, self.types.type_map())
        logger.info("yearly report %04d: %d workouts", year, report.total_workouts)
        return report

    async def monthly_report_async(self, year: int, month: int) -> MonthlyReport:
        if self.async_entries is None or self.async_types is None:
            return self.monthly_report(year, month)
        start, end = CalendarTools.month_bounds(year, month)
        entries = await self.async_entries.fetch_between(start, end)
        return compute_monthly_report(year, month, entries, await self.async_types.type_map())

    async def yearly_report_async(self, year: int) -> YearlyReport:
        if self.async_entries is None or self.async_types is None:
            return self.yearly_report(year)
        start, end = CalendarTools.year_bounds(year)
        entries = await self.async_entries.fetch_between(start, end)
        return compute_yearly_report(year, entries, await self.async_types.type_map())

    def _current_month_entries(self, today: datetime.date) -> List[WorkoutEntry]:
        start, end = CalendarTools.month_bounds(today.year, today.month)
        return self.entries.fetch_between(start, end)

    def current_streak(self) -> int:
        """Return the streak from this month's entries only.

        A streak that started in the previous month is cut at the month
        boundary.
        """
        today = self.clock()
        return compute_streak(
            self._current_month_entries(today), today, self.types.type_map()
        )

    def most_common_type(self, year: int, month: int) -> Optional[WorkoutType]:
        start, end = CalendarTools.month_bounds(year, month)
        return compute_most_common_type(
            self.entries.fetch_between(start, end), self.types.type_map()
        )

    def overview(self, year: int, month: int, type_filter: int | None = None) -> dict:
        start, end = CalendarTools.month_bounds(year, month)
        entries = self.entries.fetch_between(start, end)
        today = self.clock()
        data = compute_overview(
            year, month, entries, self.types.type_map(), today, type_filter
        )
        # the streak always reflects the current month, whichever month is shown
        if (year, month) != (today.year, today.month):
            data["streak"] = self.current_streak()
        return data

    @staticmethod
    def previous_period(year: int, month: int | None = None) -> dict:
        if month is None:
            return {"year": year - 1}
        y, m = CalendarTools.previous_month(year, month)
        return {"year": y, "month": m}

    @staticmethod
    def next_period(year: int, month: int | None = None) -> dict:
        if month is None:
            return {"year": year + 1}
        y, m = CalendarTools.next_month(year, month)
        return {"year": y, "month": m}

    def _watch(self, compute: Callable[[], object], callback) -> Callable[[], None]:
        notifiers = {id(r.notifier): r.notifier for r in (self.entries, self.types)}

        def on_change(event: dict) -> None:
            if event.get("table") == "settings":
                return
            callback(compute())

        unsubscribers = [n.subscribe(on_change) for n in notifiers.values()]

        def unsubscribe() -> None:
            for unsub in unsubscribers:
                unsub()

        return unsubscribe

    def watch_month(
        self, year: int, month: int, callback: Callable[[MonthlyReport], None]
    ) -> Callable[[], None]:
        """Call ``callback`` with a fresh monthly report after each store change."""
        CalendarTools.validate_month(year, month)
        return self._watch(lambda: self.monthly_report(year, month), callback)

    def watch_year(
        self, year: int, callback: Callable[[YearlyReport], None]
    ) -> Callable[[], None]:
        CalendarTools.validate_year(year)
        return self._watch(lambda: self.yearly_report(year), callback)
