import pytest
from dataclasses import replace
from datetime import datetime, timedelta

from sqlalchemy import DateTime

from domain import Break, TimeEntry, WorkSession
from errors import SessionConflictError, ValidationError
from repository import CurrentEntryDB, TimeEntryDB

START = datetime(2025, 6, 11, 7, 0)


def _entry(start, minutes=450):
    return TimeEntry(
        user_id="u1",
        start_time=start,
        end_time=start + timedelta(minutes=minutes + 30),
        date=start.date(),
        breaks=[Break(start=start + timedelta(hours=3), end=start + timedelta(hours=3, minutes=30))],
        net_work_duration_minutes=minutes,
        regular_minutes=minutes,
    )


def test_timestamp_columns_are_naive():
    for column in (TimeEntryDB.__table__.c.start_time, TimeEntryDB.__table__.c.end_time,
                   TimeEntryDB.__table__.c.created_at, CurrentEntryDB.__table__.c.start_time,
                   CurrentEntryDB.__table__.c.updated_at):
        assert isinstance(column.type, DateTime)
        assert column.type.timezone is False


def test_naive_session_round_trip(repo):
    session = repo.create_session(WorkSession(user_id="u1", start_time=START))
    assert session.start_time == START
    assert session.start_time.tzinfo is None

    session.breaks = [Break(start=START + timedelta(hours=2))]
    repo.save_session(session, updated_at=START + timedelta(hours=2))
    stored = repo.get_session("u1")
    assert stored.start_time == START
    assert stored.open_break.start == START + timedelta(hours=2)

    with pytest.raises(SessionConflictError):
        repo.create_session(WorkSession(user_id="u1", start_time=START + timedelta(hours=1)))


def test_naive_entry_round_trip(repo):
    stored = repo.add_time_entry(_entry(START))
    assert stored.start_time == START
    assert stored.start_time.tzinfo is None
    assert stored.end_time == START + timedelta(minutes=480)
    assert stored.breaks[0].end == START + timedelta(hours=3, minutes=30)
    assert repo.find_time_entry("u1", START).id == stored.id
    assert [e.id for e in repo.list_time_entries("u1", START.date(), START.date())] == [stored.id]


def test_update_to_taken_start_time_is_rejected(repo):
    first = repo.add_time_entry(_entry(START))
    second = repo.add_time_entry(_entry(START + timedelta(days=1)))
    moved = replace(second, start_time=first.start_time, date=first.date)
    with pytest.raises(ValidationError):
        repo.update_time_entry(moved)
    assert repo.get_time_entry(second.id).start_time == START + timedelta(days=1)
