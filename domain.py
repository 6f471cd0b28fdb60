# domain.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class WorkStatus(str, Enum):
    WORKING = "working"
    BREAK = "break"


class AbsenceType(str, Enum):
    VACATION = "vacation"
    OVERTIME_REDUCTION = "overtime_reduction"
    SICK = "sick"

    @property
    def counts_toward_target(self) -> bool:
        """Vacation and overtime reduction fill the weekly target, sick days do not."""
        return self is not AbsenceType.SICK


@dataclass(frozen=True)
class Break:
    """A pause inside a work session. ``end`` is None while the break is running."""
    start: datetime
    end: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "Break":
        end = raw.get("end")
        return cls(
            start=datetime.fromisoformat(raw["start"]),
            end=datetime.fromisoformat(end) if end else None,
        )


@dataclass
class WorkSession:
    """The single in-progress session of a user, between clock-in and clock-out."""
    user_id: str
    start_time: datetime
    status: WorkStatus = WorkStatus.WORKING
    breaks: list[Break] = field(default_factory=list)
    id: int | None = None

    @property
    def open_break(self) -> Break | None:
        if self.breaks and self.breaks[-1].is_open:
            return self.breaks[-1]
        return None


@dataclass
class TimeEntry:
    """A finalized work session with its derived duration and surcharge fields."""
    user_id: str
    start_time: datetime
    end_time: datetime
    date: date
    breaks: list[Break] = field(default_factory=list)
    net_work_duration_minutes: int = 0
    total_break_duration_ms: int = 0
    regular_minutes: int = 0
    surcharge_minutes: int = 0
    surcharge_amount: int = 0
    is_surcharge_day: bool = False
    surcharge_label: str = "Regular"
    id: int | None = None

    @property
    def iso_year_week(self) -> tuple[int, int]:
        """Returns (ISO year, ISO week number). Useful for weekly overtime aggregation."""
        iso = self.date.isocalendar()
        return (iso[0], iso[1])


@dataclass
class AbsenceEntry:
    user_id: str
    date: date
    absence_type: AbsenceType
    hours: float
    note: str | None = None
    id: int | None = None

    @property
    def minutes(self) -> int:
        return int(round(self.hours * 60))


@dataclass
class OvertimeAllowance:
    """Annual overtime allowance (ÜSP) row of one user."""
    user_id: str
    year: int
    total_hours: float = 150.0
    consumed_hours: float = 0.0
    is_fully_consumed: bool = False
    start_date: date | None = None
    notes: str | None = None
    id: int | None = None

    @property
    def remaining_hours(self) -> float:
        return self.total_hours - self.consumed_hours


@dataclass
class VacationAllowance:
    user_id: str
    year: int
    total_days: float = 30.0
    used_days: float = 0.0
    carried_over_days: float = 0.0
    notes: str | None = None
    id: int | None = None

    @property
    def remaining_days(self) -> float:
        return self.total_days + self.carried_over_days - self.used_days


@dataclass
class UserSettings:
    user_id: str
    custom_holidays: list[str] = field(default_factory=list)
    break_reminder_enabled: bool = True


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BreakEnforcement:
    actual_break_ms: int
    required_break_minutes: int
    enforced_break_ms: int

    @property
    def added_minutes(self) -> int:
        """Minutes added on top of the recorded breaks to reach the legal minimum."""
        return (self.enforced_break_ms - self.actual_break_ms) // 60000


@dataclass(frozen=True)
class NetDuration:
    net_minutes: int
    total_break_ms: int
    required_break_minutes: int = 0
    added_break_minutes: int = 0


@dataclass(frozen=True)
class SurchargeResult:
    regular_minutes: int
    surcharge_minutes: int
    surcharge_amount: int
    is_surcharge_day: bool
    surcharge_label: str
    rate: float = 0.0
