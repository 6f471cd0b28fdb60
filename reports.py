# reports.py
"""
Read-side aggregations over finalized entries and absences.

Everything here is a pure fold: the caller passes an explicit list of
entries (and absences) and gets frozen value objects back. Nothing is
cached and nothing reads the clock; "now" is always a parameter.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from calendar_policy import (
    HolidayProvider,
    is_holiday,
    iso_week_key,
    month_bounds,
    target_minutes_for_date,
    week_bounds,
    weekly_target_minutes,
)
from domain import AbsenceEntry, AbsenceType, TimeEntry

PERIODS = ("week", "month", "year")


@dataclass(frozen=True)
class PeriodTotal:
    key: str
    label: str
    start: date
    minutes: int


@dataclass(frozen=True)
class WeekStatus:
    iso_year: int
    iso_week: int
    monday: date
    worked_minutes: int
    credited_minutes: int
    target_minutes: int

    @property
    def fulfilled_minutes(self) -> int:
        return self.worked_minutes + self.credited_minutes

    @property
    def target_met(self) -> bool:
        return self.fulfilled_minutes >= self.target_minutes


@dataclass(frozen=True)
class CalendarDay:
    date: date
    entries: Tuple[TimeEntry, ...]
    absence: Optional[AbsenceEntry]
    worked_minutes: int
    target_minutes: int
    is_holiday: bool

    @property
    def is_overtime(self) -> bool:
        return bool(self.entries) and self.worked_minutes > self.target_minutes


@dataclass(frozen=True)
class MonthTrend:
    month: date
    label: str
    hours: float
    overtime_hours: float
    absence_hours: float
    work_days: int


@dataclass(frozen=True)
class PeriodStatistics:
    start: date
    end: date
    total_minutes: int
    target_minutes: int
    overtime_minutes: int
    surcharge_amount: int
    work_days: int
    surcharge_by_kind: Dict[str, int]
    absence_hours: Dict[AbsenceType, float]

    @property
    def average_daily_minutes(self) -> float:
        return self.total_minutes / max(1, self.work_days)

    @property
    def total_absence_hours(self) -> float:
        return sum(self.absence_hours.values())


def overtime_for_entry(entry: TimeEntry) -> int:
    """Weekend and surcharge days count in full, weekdays only above target."""
    dow = entry.start_time.isoweekday()
    if dow in (6, 7) or entry.is_surcharge_day:
        return entry.net_work_duration_minutes
    return max(0, entry.net_work_duration_minutes - target_minutes_for_date(entry.start_time))


def _period_of(day: date, period: str) -> Tuple[str, str, date]:
    if period == "week":
        monday, _ = week_bounds(day)
        year, week = iso_week_key(monday)
        return f"{year}-W{week:02d}", f"CW {week:02d}, {year}", monday
    if period == "month":
        first, _ = month_bounds(day)
        return first.strftime("%Y-%m"), first.strftime("%B %Y"), first
    if period == "year":
        return f"{day.year:04d}", f"{day.year:04d}", date(day.year, 1, 1)
    raise ValueError(f"Unknown period {period!r}, expected one of {PERIODS}")


def overtime_summary(entries: Iterable[TimeEntry], period: str = "month") -> List[PeriodTotal]:
    """Overtime per week, month or year, newest first."""
    totals: Dict[str, int] = {}
    meta: Dict[str, Tuple[str, date]] = {}
    for e in entries:
        key, label, start = _period_of(e.start_time.date(), period)
        totals[key] = totals.get(key, 0) + overtime_for_entry(e)
        meta[key] = (label, start)
    rows = [PeriodTotal(key=k, label=meta[k][0], start=meta[k][1], minutes=m) for k, m in totals.items()]
    return sorted(rows, key=lambda r: r.start, reverse=True)


def credited_absence_minutes(absences: Iterable[AbsenceEntry]) -> int:
    return sum(a.minutes for a in absences if a.absence_type.counts_toward_target)


def weekly_target_status(entries: Iterable[TimeEntry], absences: Iterable[AbsenceEntry] = (),
                         custom_holidays: Sequence[str] = (),
                         provider: HolidayProvider | None = None) -> Dict[Tuple[int, int], WeekStatus]:
    """Fulfilment of the weekly target for every ISO week that has an entry or absence."""
    worked: Dict[Tuple[int, int], int] = {}
    credited: Dict[Tuple[int, int], int] = {}
    for e in entries:
        key = iso_week_key(e.date)
        worked[key] = worked.get(key, 0) + e.net_work_duration_minutes
    for a in absences:
        key = iso_week_key(a.date)
        if a.absence_type.counts_toward_target:
            credited[key] = credited.get(key, 0) + a.minutes
        else:
            credited.setdefault(key, 0)

    status: Dict[Tuple[int, int], WeekStatus] = {}
    for key in set(worked) | set(credited):
        monday = date.fromisocalendar(key[0], key[1], 1)
        status[key] = WeekStatus(
            iso_year=key[0],
            iso_week=key[1],
            monday=monday,
            worked_minutes=worked.get(key, 0),
            credited_minutes=credited.get(key, 0),
            target_minutes=weekly_target_minutes(monday, custom_holidays, provider),
        )
    return status


def previous_weeks_target_met(status: Dict[Tuple[int, int], WeekStatus], day: date | datetime,
                              custom_holidays: Sequence[str] = (),
                              provider: HolidayProvider | None = None) -> bool:
    """Every week before ``day``'s week met its target, counted from the first tracked week.

    Weeks belong to the calendar year their Monday falls in, the same year
    the ÜSP row of ``day`` is looked up by. A week without entries or
    absences counts as 0 worked minutes. False when nothing is tracked
    before ``day``'s week in that year.
    """
    this_monday, _ = week_bounds(day)
    by_monday = {s.monday: s for s in status.values()}
    tracked = sorted(m for m in by_monday if m.year == day.year and m < this_monday)
    if not tracked:
        return False

    monday = tracked[0]
    while monday < this_monday:
        week = by_monday.get(monday)
        if week is not None:
            if not week.target_met:
                return False
        elif weekly_target_minutes(monday, custom_holidays, provider) > 0:
            return False
        monday += timedelta(days=7)
    return True


def calendar_month(year: int, month: int, entries: Iterable[TimeEntry], absences: Iterable[AbsenceEntry] = (),
                   custom_holidays: Sequence[str] = (), provider: HolidayProvider | None = None) -> List[CalendarDay]:
    first, last = month_bounds(date(year, month, 1))
    by_day: Dict[date, List[TimeEntry]] = {}
    for e in entries:
        if first <= e.date <= last:
            by_day.setdefault(e.date, []).append(e)
    absence_by_day = {a.date: a for a in absences if first <= a.date <= last}

    days = []
    d = first
    while d <= last:
        day_entries = tuple(sorted(by_day.get(d, []), key=lambda e: e.start_time))
        absence = absence_by_day.get(d)
        if day_entries:
            worked = sum(e.net_work_duration_minutes for e in day_entries)
        elif absence is not None:
            worked = absence.minutes
        else:
            worked = 0
        days.append(CalendarDay(
            date=d,
            entries=day_entries,
            absence=absence,
            worked_minutes=worked,
            target_minutes=target_minutes_for_date(d),
            is_holiday=is_holiday(d, custom_holidays, provider),
        ))
        d += timedelta(days=1)
    return days


def _in_range(day: date, start: date, end: date) -> bool:
    return start <= day <= end


def surcharge_kind(label: str) -> str | None:
    for kind in ("Saturday", "Sunday", "Holiday", "Overtime"):
        if label.startswith(kind):
            return kind
    return None


def period_statistics(entries: Iterable[TimeEntry], absences: Iterable[AbsenceEntry],
                      start: date, end: date) -> PeriodStatistics:
    selected = [e for e in entries if _in_range(e.start_time.date(), start, end)]
    selected_absences = [a for a in absences if _in_range(a.date, start, end)]

    by_kind = {"Saturday": 0, "Sunday": 0, "Holiday": 0, "Overtime": 0}
    for e in selected:
        kind = surcharge_kind(e.surcharge_label)
        if kind:
            by_kind[kind] += e.surcharge_amount

    absence_hours = {t: 0.0 for t in AbsenceType}
    for a in selected_absences:
        absence_hours[a.absence_type] += a.hours

    return PeriodStatistics(
        start=start,
        end=end,
        total_minutes=sum(e.net_work_duration_minutes for e in selected),
        target_minutes=sum(target_minutes_for_date(e.start_time) for e in selected),
        overtime_minutes=sum(overtime_for_entry(e) for e in selected),
        surcharge_amount=sum(e.surcharge_amount for e in selected),
        work_days=len(selected),
        surcharge_by_kind=by_kind,
        absence_hours=absence_hours,
    )


def _shift_month(first: date, months_back: int) -> date:
    index = first.year * 12 + (first.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def monthly_trends(entries: Sequence[TimeEntry], absences: Sequence[AbsenceEntry],
                   now: datetime, months: int = 6) -> List[MonthTrend]:
    """Hours, overtime and absences of the last ``months`` months up to ``now``, oldest first."""
    current = date(now.year, now.month, 1)
    trends = []
    for back in range(months - 1, -1, -1):
        first = _shift_month(current, back)
        _, last = month_bounds(first)
        stats = period_statistics(entries, absences, first, last)
        trends.append(MonthTrend(
            month=first,
            label=first.strftime("%b %y"),
            hours=round(stats.total_minutes / 60, 1),
            overtime_hours=round(stats.overtime_minutes / 60, 1),
            absence_hours=round(stats.total_absence_hours, 1),
            work_days=stats.work_days,
        ))
    return trends


__all__ = [
    "PeriodTotal", "WeekStatus", "CalendarDay", "MonthTrend", "PeriodStatistics",
    "overtime_for_entry", "overtime_summary", "credited_absence_minutes",
    "weekly_target_status", "previous_weeks_target_met", "calendar_month",
    "surcharge_kind", "period_statistics", "monthly_trends",
]
