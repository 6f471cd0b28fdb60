from datetime import date, datetime

from domain import AbsenceEntry, AbsenceType
from reports import calendar_month, monthly_trends
from utils import (
    calendar_to_dataframe,
    entries_to_dataframe,
    format_minutes_hhmm,
    format_signed_minutes,
    trends_to_dataframe,
)


def test_format_minutes_hhmm():
    assert format_minutes_hhmm(0) == "0:00"
    assert format_minutes_hhmm(525) == "8:45"
    assert format_minutes_hhmm(-75) == "-1:15"
    assert format_minutes_hhmm(None) == "0:00"
    assert format_minutes_hhmm(float("nan")) == "0:00"


def test_format_signed_minutes():
    assert format_signed_minutes(90) == "+1:30"
    assert format_signed_minutes(-30) == "-0:30"


def test_entries_to_dataframe(entry_factory):
    entries = [
        entry_factory("u1", datetime(2025, 6, 11, 7, 0), 525, end=datetime(2025, 6, 11, 16, 30),
                      total_break_duration_ms=45 * 60000, surcharge_label="Overtime surcharge (30%)"),
        entry_factory("u1", datetime(2025, 6, 15, 9, 0), 360, end=datetime(2025, 6, 15, 15, 0)),
    ]
    df = entries_to_dataframe(entries)
    assert list(df["Date"]) == ["2025-06-15", "2025-06-11"]
    row = df[df["Date"] == "2025-06-11"].iloc[0]
    assert row["Day"] == "Wed"
    assert row["Break (min)"] == 45
    assert row["Net"] == "8:45"
    assert row["ISO Week"] == "2025-W24"


def test_entries_to_dataframe_empty():
    assert entries_to_dataframe([]).empty


def test_calendar_to_dataframe(entry_factory):
    entries = [entry_factory("u1", datetime(2025, 6, 11, 8, 0), 525)]
    absences = [AbsenceEntry(user_id="u1", date=date(2025, 6, 12), absence_type=AbsenceType.SICK, hours=8.5)]
    df = calendar_to_dataframe(calendar_month(2025, 6, entries, absences))
    assert len(df) == 30
    kinds = dict(zip(df["Date"], df["Kind"]))
    assert kinds["2025-06-09"] == "Holiday"
    assert kinds["2025-06-11"] == "Overtime"
    assert kinds["2025-06-12"] == "sick"
    assert kinds["2025-06-13"] == ""
    assert df[df["Date"] == "2025-06-13"].iloc[0]["Target"] == "4:00"


def test_trends_to_dataframe(entry_factory):
    entries = [entry_factory("u1", datetime(2025, 6, 11, 8, 0), 600)]
    df = trends_to_dataframe(monthly_trends(entries, [], datetime(2025, 7, 15, 12, 0), months=2))
    assert list(df["Month"]) == ["Jun 25", "Jul 25"]
    assert list(df["Hours"]) == [10.0, 0.0]
    assert list(df["Work days"]) == [1, 0]
