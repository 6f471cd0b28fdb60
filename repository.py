# repository.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel, Field, Session, UniqueConstraint, create_engine, select

from domain import (
    AbsenceEntry,
    AbsenceType,
    Break,
    OvertimeAllowance,
    SurchargeResult,
    TimeEntry,
    UserSettings,
    VacationAllowance,
    WorkSession,
    WorkStatus,
)
from errors import EntryNotFoundError, SessionConflictError, ValidationError

# Timestamps are stored as naive wall-clock times of the configured timezone.


class TimeEntryDB(SQLModel, table=True):
    __tablename__ = "time_entries"
    __table_args__ = (UniqueConstraint("user_id", "start_time", name="uq_time_entries_user_start"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    start_time: dt.datetime = Field(sa_column=Column(DateTime, nullable=False))
    end_time: dt.datetime = Field(sa_column=Column(DateTime, nullable=False))
    date: dt.date = Field(index=True)
    breaks: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    net_work_duration_minutes: int = 0
    total_break_duration_ms: int = 0
    regular_minutes: int = 0
    surcharge_minutes: int = 0
    surcharge_amount: int = 0
    is_surcharge_day: bool = False
    surcharge_label: str = "Regular"
    created_at: dt.datetime = Field(default_factory=dt.datetime.now, sa_column=Column(DateTime, nullable=False))


class CurrentEntryDB(SQLModel, table=True):
    __tablename__ = "current_entry"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True)  # one open session per user
    start_time: dt.datetime = Field(sa_column=Column(DateTime, nullable=False))
    status: str = WorkStatus.WORKING.value
    breaks: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    updated_at: dt.datetime | None = Field(default=None, sa_column=Column(DateTime, nullable=True))


class AbsenceEntryDB(SQLModel, table=True):
    __tablename__ = "absence_entries"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    date: dt.date = Field(index=True)
    absence_type: str
    hours: float
    note: str | None = None


class OvertimeAllowanceDB(SQLModel, table=True):
    __tablename__ = "overtime_allowance"
    __table_args__ = (UniqueConstraint("user_id", "year", name="uq_overtime_allowance_user_year"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    year: int
    total_hours: float = 150.0
    consumed_hours: float = 0.0
    is_fully_consumed: bool = False
    start_date: dt.date
    notes: str | None = None


class VacationAllowanceDB(SQLModel, table=True):
    __tablename__ = "vacation_allowance"
    __table_args__ = (UniqueConstraint("user_id", "year", name="uq_vacation_allowance_user_year"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    year: int
    total_days: float = 30.0
    used_days: float = 0.0
    carried_over_days: float = 0.0
    notes: str | None = None


class UserSettingsDB(SQLModel, table=True):
    __tablename__ = "user_settings"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    custom_holidays: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    break_reminder_enabled: bool = True


def build_engine(db_url: str, echo: bool = False):
    is_sqlite = db_url.startswith("sqlite")
    kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
        "connect_args": {},
    }
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # Serverless Postgres: no local pool, bounded connect time
        kwargs["poolclass"] = NullPool
        kwargs["connect_args"] = {"connect_timeout": 10}
        if "sslmode=" not in db_url:
            db_url += ("&" if "?" in db_url else "?") + "sslmode=require"
    return create_engine(db_url, **kwargs)


# =========================
# Row <-> domain mapping
# =========================
def _breaks_to_json(breaks: List[Break]) -> list:
    return [b.to_dict() for b in breaks]


def _breaks_from_json(raw: list | None) -> List[Break]:
    return [Break.from_dict(b) for b in (raw or [])]


def _entry_from_row(r: TimeEntryDB) -> TimeEntry:
    return TimeEntry(
        id=r.id,
        user_id=r.user_id,
        start_time=r.start_time,
        end_time=r.end_time,
        date=r.date,
        breaks=_breaks_from_json(r.breaks),
        net_work_duration_minutes=r.net_work_duration_minutes,
        total_break_duration_ms=r.total_break_duration_ms,
        regular_minutes=r.regular_minutes,
        surcharge_minutes=r.surcharge_minutes,
        surcharge_amount=r.surcharge_amount,
        is_surcharge_day=r.is_surcharge_day,
        surcharge_label=r.surcharge_label,
    )


def _session_from_row(r: CurrentEntryDB) -> WorkSession:
    return WorkSession(
        id=r.id,
        user_id=r.user_id,
        start_time=r.start_time,
        status=WorkStatus(r.status),
        breaks=_breaks_from_json(r.breaks),
    )


def _absence_from_row(r: AbsenceEntryDB) -> AbsenceEntry:
    return AbsenceEntry(
        id=r.id, user_id=r.user_id, date=r.date,
        absence_type=AbsenceType(r.absence_type), hours=r.hours, note=r.note,
    )


def _allowance_from_row(r: OvertimeAllowanceDB) -> OvertimeAllowance:
    return OvertimeAllowance(
        id=r.id, user_id=r.user_id, year=r.year, total_hours=r.total_hours,
        consumed_hours=r.consumed_hours, is_fully_consumed=r.is_fully_consumed,
        start_date=r.start_date, notes=r.notes,
    )


def _vacation_from_row(r: VacationAllowanceDB) -> VacationAllowance:
    return VacationAllowance(
        id=r.id, user_id=r.user_id, year=r.year, total_days=r.total_days,
        used_days=r.used_days, carried_over_days=r.carried_over_days, notes=r.notes,
    )


class WorkTimeRepository:
    """Storage for sessions, entries, absences and allowances. In production do NOT fall back to SQLite."""
    def __init__(self, url: str = "sqlite:///worktime.db", echo: bool = False):
        self.primary_url = url
        self.engine = build_engine(url, echo=echo)

        # Fail fast when Postgres is unreachable
        if not url.startswith("sqlite"):
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("select 1"))
            except Exception as e:
                raise RuntimeError(f"Could not connect to Postgres: {e}") from e

        SQLModel.metadata.create_all(self.engine)

    # ---- time entries -------------------------------------------------
    def add_time_entry(self, e: TimeEntry) -> TimeEntry:
        with Session(self.engine) as session:
            row = TimeEntryDB(
                user_id=e.user_id,
                start_time=e.start_time,
                end_time=e.end_time,
                date=e.date,
                breaks=_breaks_to_json(e.breaks),
                net_work_duration_minutes=e.net_work_duration_minutes,
                total_break_duration_ms=e.total_break_duration_ms,
                regular_minutes=e.regular_minutes,
                surcharge_minutes=e.surcharge_minutes,
                surcharge_amount=e.surcharge_amount,
                is_surcharge_day=e.is_surcharge_day,
                surcharge_label=e.surcharge_label,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _entry_from_row(row)

    def get_time_entry(self, entry_id: int) -> Optional[TimeEntry]:
        with Session(self.engine) as session:
            row = session.get(TimeEntryDB, entry_id)
            return _entry_from_row(row) if row else None

    def find_time_entry(self, user_id: str, start_time: dt.datetime) -> Optional[TimeEntry]:
        with Session(self.engine) as session:
            row = session.exec(
                select(TimeEntryDB).where(TimeEntryDB.user_id == user_id, TimeEntryDB.start_time == start_time)
            ).first()
            return _entry_from_row(row) if row else None

    def list_time_entries(self, user_id: str | None = None, date_from: dt.date | None = None,
                          date_to: dt.date | None = None) -> List[TimeEntry]:
        with Session(self.engine) as session:
            query = select(TimeEntryDB)
            if user_id is not None:
                query = query.where(TimeEntryDB.user_id == user_id)
            if date_from is not None:
                query = query.where(TimeEntryDB.date >= date_from)
            if date_to is not None:
                query = query.where(TimeEntryDB.date <= date_to)
            rows = session.exec(query.order_by(TimeEntryDB.start_time.desc(), TimeEntryDB.id.desc())).all()
            return [_entry_from_row(r) for r in rows]

    def list_user_ids(self) -> List[str]:
        with Session(self.engine) as session:
            rows = session.exec(select(TimeEntryDB.user_id).distinct()).all()
            return sorted(rows)

    def update_time_entry(self, e: TimeEntry) -> TimeEntry:
        with Session(self.engine) as session:
            row = session.get(TimeEntryDB, e.id)
            if not row:
                raise EntryNotFoundError(f"Time entry {e.id} not found")
            row.start_time = e.start_time
            row.end_time = e.end_time
            row.date = e.date
            row.breaks = _breaks_to_json(e.breaks)
            row.net_work_duration_minutes = e.net_work_duration_minutes
            row.total_break_duration_ms = e.total_break_duration_ms
            row.regular_minutes = e.regular_minutes
            row.surcharge_minutes = e.surcharge_minutes
            row.surcharge_amount = e.surcharge_amount
            row.is_surcharge_day = e.is_surcharge_day
            row.surcharge_label = e.surcharge_label
            session.add(row)
            try:
                session.commit()
            except IntegrityError as err:
                session.rollback()
                raise ValidationError(
                    f"User {e.user_id} already has an entry starting at {e.start_time.isoformat()}"
                ) from err
            session.refresh(row)
            return _entry_from_row(row)

    def update_surcharge_fields(self, entry_id: int, result: SurchargeResult) -> None:
        with Session(self.engine) as session:
            row = session.get(TimeEntryDB, entry_id)
            if not row:
                raise EntryNotFoundError(f"Time entry {entry_id} not found")
            row.regular_minutes = result.regular_minutes
            row.surcharge_minutes = result.surcharge_minutes
            row.surcharge_amount = result.surcharge_amount
            row.is_surcharge_day = result.is_surcharge_day
            row.surcharge_label = result.surcharge_label
            session.add(row)
            session.commit()

    def delete_time_entry(self, entry_id: int) -> bool:
        with Session(self.engine) as session:
            row = session.get(TimeEntryDB, entry_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    # ---- current session ---------------------------------------------
    def create_session(self, s: WorkSession) -> WorkSession:
        """Inserts the user's open session. The unique user_id column rejects a second one."""
        with Session(self.engine) as session:
            row = CurrentEntryDB(
                user_id=s.user_id,
                start_time=s.start_time,
                status=s.status.value,
                breaks=_breaks_to_json(s.breaks),
                updated_at=s.start_time,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise SessionConflictError(f"User {s.user_id} already has an open work session") from e
            session.refresh(row)
            return _session_from_row(row)

    def get_session(self, user_id: str) -> Optional[WorkSession]:
        with Session(self.engine) as session:
            row = session.exec(select(CurrentEntryDB).where(CurrentEntryDB.user_id == user_id)).first()
            return _session_from_row(row) if row else None

    def save_session(self, s: WorkSession, updated_at: dt.datetime | None = None) -> WorkSession:
        with Session(self.engine) as session:
            row = session.exec(select(CurrentEntryDB).where(CurrentEntryDB.user_id == s.user_id)).first()
            if not row:
                raise EntryNotFoundError(f"No open session for user {s.user_id}")
            row.status = s.status.value
            row.breaks = _breaks_to_json(s.breaks)
            row.updated_at = updated_at
            session.add(row)
            session.commit()
            session.refresh(row)
            return _session_from_row(row)

    def delete_session(self, user_id: str) -> bool:
        with Session(self.engine) as session:
            row = session.exec(select(CurrentEntryDB).where(CurrentEntryDB.user_id == user_id)).first()
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    # ---- absences ----------------------------------------------------
    def add_absence(self, a: AbsenceEntry) -> AbsenceEntry:
        with Session(self.engine) as session:
            row = AbsenceEntryDB(
                user_id=a.user_id, date=a.date, absence_type=a.absence_type.value,
                hours=a.hours, note=a.note,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _absence_from_row(row)

    def list_absences(self, user_id: str, date_from: dt.date | None = None,
                      date_to: dt.date | None = None) -> List[AbsenceEntry]:
        with Session(self.engine) as session:
            query = select(AbsenceEntryDB).where(AbsenceEntryDB.user_id == user_id)
            if date_from is not None:
                query = query.where(AbsenceEntryDB.date >= date_from)
            if date_to is not None:
                query = query.where(AbsenceEntryDB.date <= date_to)
            rows = session.exec(query.order_by(AbsenceEntryDB.date.desc())).all()
            return [_absence_from_row(r) for r in rows]

    def delete_absence(self, absence_id: int) -> bool:
        with Session(self.engine) as session:
            row = session.get(AbsenceEntryDB, absence_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    # ---- overtime allowance (ÜSP) ------------------------------------
    def get_overtime_allowance(self, user_id: str, year: int) -> Optional[OvertimeAllowance]:
        with Session(self.engine) as session:
            row = session.exec(
                select(OvertimeAllowanceDB).where(OvertimeAllowanceDB.user_id == user_id, OvertimeAllowanceDB.year == year)
            ).first()
            return _allowance_from_row(row) if row else None

    def list_overtime_allowances(self, user_id: str) -> List[OvertimeAllowance]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(OvertimeAllowanceDB).where(OvertimeAllowanceDB.user_id == user_id).order_by(OvertimeAllowanceDB.year.desc())
            ).all()
            return [_allowance_from_row(r) for r in rows]

    def add_overtime_allowance(self, a: OvertimeAllowance) -> OvertimeAllowance:
        """Inserts the year row; when a concurrent insert won, the stored row is returned."""
        with Session(self.engine) as session:
            row = OvertimeAllowanceDB(
                user_id=a.user_id, year=a.year, total_hours=a.total_hours,
                consumed_hours=a.consumed_hours, is_fully_consumed=a.is_fully_consumed,
                start_date=a.start_date or dt.date(a.year, 1, 1), notes=a.notes,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = self.get_overtime_allowance(a.user_id, a.year)
                if existing is None:
                    raise
                return existing
            session.refresh(row)
            return _allowance_from_row(row)

    def save_overtime_allowance(self, a: OvertimeAllowance) -> OvertimeAllowance:
        with Session(self.engine) as session:
            row = session.get(OvertimeAllowanceDB, a.id)
            if not row:
                raise EntryNotFoundError(f"Overtime allowance {a.id} not found")
            row.total_hours = a.total_hours
            row.consumed_hours = a.consumed_hours
            row.is_fully_consumed = a.is_fully_consumed
            row.notes = a.notes
            session.add(row)
            session.commit()
            session.refresh(row)
            return _allowance_from_row(row)

    # ---- vacation allowance ------------------------------------------
    def get_vacation_allowance(self, user_id: str, year: int) -> Optional[VacationAllowance]:
        with Session(self.engine) as session:
            row = session.exec(
                select(VacationAllowanceDB).where(VacationAllowanceDB.user_id == user_id, VacationAllowanceDB.year == year)
            ).first()
            return _vacation_from_row(row) if row else None

    def save_vacation_allowance(self, v: VacationAllowance) -> VacationAllowance:
        with Session(self.engine) as session:
            row = session.get(VacationAllowanceDB, v.id) if v.id is not None else None
            if row is None:
                row = VacationAllowanceDB(user_id=v.user_id, year=v.year)
            row.total_days = v.total_days
            row.used_days = v.used_days
            row.carried_over_days = v.carried_over_days
            row.notes = v.notes
            session.add(row)
            session.commit()
            session.refresh(row)
            return _vacation_from_row(row)

    # ---- user settings -----------------------------------------------
    def get_settings(self, user_id: str) -> UserSettings:
        with Session(self.engine) as session:
            row = session.exec(select(UserSettingsDB).where(UserSettingsDB.user_id == user_id)).first()
            if not row:
                return UserSettings(user_id=user_id)
            return UserSettings(
                user_id=row.user_id,
                custom_holidays=list(row.custom_holidays or []),
                break_reminder_enabled=row.break_reminder_enabled,
            )

    def save_settings(self, s: UserSettings) -> UserSettings:
        with Session(self.engine) as session:
            row = session.exec(select(UserSettingsDB).where(UserSettingsDB.user_id == s.user_id)).first()
            if not row:
                row = UserSettingsDB(user_id=s.user_id)
            row.custom_holidays = list(s.custom_holidays)
            row.break_reminder_enabled = s.break_reminder_enabled
            session.add(row)
            session.commit()
            return s


__all__ = [
    "TimeEntryDB", "CurrentEntryDB", "AbsenceEntryDB", "OvertimeAllowanceDB",
    "VacationAllowanceDB", "UserSettingsDB", "WorkTimeRepository", "build_engine",
]
