# utils.py
import pandas as pd
from typing import Iterable, Optional

from domain import AbsenceEntry, TimeEntry
from reports import CalendarDay, MonthTrend, PeriodTotal, WeekStatus

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def format_minutes_hhmm(total_minutes: Optional[float]) -> str:
    """-75 -> '-1:15'. None or NaN -> '0:00'."""
    if total_minutes is None or total_minutes != total_minutes:
        return "0:00"
    sign = "-" if total_minutes < 0 else ""
    minutes = abs(int(round(total_minutes)))
    h, m = divmod(minutes, 60)
    return f"{sign}{h}:{m:02d}"


def format_signed_minutes(total_minutes: int) -> str:
    prefix = "+" if total_minutes >= 0 else ""
    return f"{prefix}{format_minutes_hhmm(total_minutes)}"


def entries_to_dataframe(entries: Iterable[TimeEntry]) -> pd.DataFrame:
    rows = []
    for e in entries:
        year, week = e.iso_year_week
        rows.append({
            "ID": e.id,
            "Date": e.date.isoformat(),
            "Day": WEEKDAYS[e.date.weekday()],
            "ISO Week": f"{year}-W{week:02d}",
            "Start": e.start_time.strftime("%H:%M"),
            "End": e.end_time.strftime("%H:%M"),
            "Break (min)": int(round(e.total_break_duration_ms / 60000)),
            "Net (min)": e.net_work_duration_minutes,
            "Net": format_minutes_hhmm(e.net_work_duration_minutes),
            "Regular (min)": e.regular_minutes,
            "Surcharge (min)": e.surcharge_minutes,
            "Surcharge amount": e.surcharge_amount,
            "Classification": e.surcharge_label,
        })
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values(["Date", "Start"], ascending=False).reset_index(drop=True)
    return df


def absences_to_dataframe(absences: Iterable[AbsenceEntry]) -> pd.DataFrame:
    df = pd.DataFrame([{
        "ID": a.id,
        "Date": a.date.isoformat(),
        "Type": a.absence_type.value,
        "Hours": a.hours,
        "Note": a.note or "",
    } for a in absences])
    if not df.empty:
        df = df.sort_values(["Date"], ascending=False).reset_index(drop=True)
    return df


def period_totals_to_dataframe(totals: Iterable[PeriodTotal]) -> pd.DataFrame:
    return pd.DataFrame([{
        "Period": t.label,
        "Start": t.start.isoformat(),
        "Overtime (min)": t.minutes,
        "Overtime": format_signed_minutes(t.minutes),
    } for t in totals])


def weeks_to_dataframe(weeks: Iterable[WeekStatus]) -> pd.DataFrame:
    df = pd.DataFrame([{
        "Week": f"{w.iso_year}-W{w.iso_week:02d}",
        "Monday": w.monday.isoformat(),
        "Worked": format_minutes_hhmm(w.worked_minutes),
        "Credited": format_minutes_hhmm(w.credited_minutes),
        "Target": format_minutes_hhmm(w.target_minutes),
        "Target met": w.target_met,
    } for w in weeks])
    if not df.empty:
        df = df.sort_values(["Monday"], ascending=False).reset_index(drop=True)
    return df


def calendar_to_dataframe(days: Iterable[CalendarDay]) -> pd.DataFrame:
    rows = []
    for d in days:
        if d.is_holiday:
            kind = "Holiday"
        elif d.absence is not None and not d.entries:
            kind = d.absence.absence_type.value
        elif d.entries:
            kind = "Overtime" if d.is_overtime else "Work"
        else:
            kind = ""
        rows.append({
            "Date": d.date.isoformat(),
            "Day": WEEKDAYS[d.date.weekday()],
            "Worked": format_minutes_hhmm(d.worked_minutes),
            "Target": format_minutes_hhmm(d.target_minutes),
            "Kind": kind,
        })
    return pd.DataFrame(rows)


def trends_to_dataframe(trends: Iterable[MonthTrend]) -> pd.DataFrame:
    return pd.DataFrame([{
        "Month": t.label,
        "Hours": t.hours,
        "Overtime (h)": t.overtime_hours,
        "Absences (h)": t.absence_hours,
        "Work days": t.work_days,
    } for t in trends])
