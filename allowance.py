# allowance.py
from __future__ import annotations

import logging
from datetime import date, datetime
from dataclasses import dataclass
from typing import Iterable, List

from calendar_policy import target_minutes_for_date, year_bounds
from domain import AbsenceEntry, AbsenceType, OvertimeAllowance, TimeEntry, VacationAllowance

logger = logging.getLogger(__name__)

DEFAULT_ALLOWANCE_HOURS = 150
SETTLED_NOTE = "Already settled"


@dataclass(frozen=True)
class AllowanceSummary:
    year: int
    total_hours: float
    consumed_hours: float
    is_fully_consumed: bool
    actual_overtime_minutes: int
    remaining_allowance_hours: float
    effective_overtime_hours: float

    @property
    def actual_overtime_hours(self) -> float:
        return self.actual_overtime_minutes / 60

    @property
    def progress_percent(self) -> float:
        if self.total_hours <= 0:
            return 100.0
        return self.consumed_hours / self.total_hours * 100


def actual_overtime_minutes(entries: Iterable[TimeEntry]) -> int:
    """Worked minus target over the given entries. Weekend minutes count in full (target 0)."""
    worked = 0
    target = 0
    for e in entries:
        worked += e.net_work_duration_minutes
        target += target_minutes_for_date(e.date)
    return worked - target


def remaining_allowance_hours(row: OvertimeAllowance) -> float:
    return row.total_hours - row.consumed_hours


def effective_overtime_hours(actual_hours: float, remaining_hours: float) -> float:
    """Overtime only becomes compensable once the allowance pool is used up."""
    return max(0.0, actual_hours - remaining_hours)


class OvertimeAllowanceLedger:
    """Annual ÜSP pool per user. Each year is independent, nothing carries over."""
    def __init__(self, repository, total_hours: float = DEFAULT_ALLOWANCE_HOURS,
                 settled_before_year: int = 2026):
        self.repo = repository
        self.total_hours = total_hours
        self.settled_before_year = settled_before_year

    def _new_row(self, user_id: str, year: int) -> OvertimeAllowance:
        settled = year < self.settled_before_year
        return OvertimeAllowance(
            user_id=user_id,
            year=year,
            total_hours=self.total_hours,
            consumed_hours=self.total_hours if settled else 0.0,
            is_fully_consumed=settled,
            start_date=date(year, 1, 1),
            notes=SETTLED_NOTE if settled else None,
        )

    def get_or_create(self, user_id: str, year: int) -> OvertimeAllowance:
        row = self.repo.get_overtime_allowance(user_id, year)
        if row is None:
            row = self.repo.add_overtime_allowance(self._new_row(user_id, year))
            logger.info(f"Created overtime allowance {year} for user {user_id} (fully consumed: {row.is_fully_consumed})")
        return row

    def is_settled(self, user_id: str, year: int) -> bool:
        return self.get_or_create(user_id, year).is_fully_consumed

    def mark_as_consumed(self, user_id: str, year: int) -> OvertimeAllowance:
        """Settlement: the whole pool counts as used. There is no way back."""
        row = self.get_or_create(user_id, year)
        row.consumed_hours = row.total_hours
        row.is_fully_consumed = True
        logger.info(f"Overtime allowance {year} of user {user_id} marked as consumed")
        return self.repo.save_overtime_allowance(row)

    def history(self, user_id: str, now: datetime) -> List[OvertimeAllowance]:
        """Current year (created when missing) followed by earlier years, newest first."""
        self.get_or_create(user_id, now.year)
        return [r for r in self.repo.list_overtime_allowances(user_id) if r.year <= now.year]

    def summarize(self, row: OvertimeAllowance, entries: Iterable[TimeEntry]) -> AllowanceSummary:
        overtime = actual_overtime_minutes(entries)
        remaining = remaining_allowance_hours(row)
        return AllowanceSummary(
            year=row.year,
            total_hours=row.total_hours,
            consumed_hours=row.consumed_hours,
            is_fully_consumed=row.is_fully_consumed,
            actual_overtime_minutes=overtime,
            remaining_allowance_hours=remaining,
            effective_overtime_hours=effective_overtime_hours(overtime / 60, remaining),
        )

    def summary(self, user_id: str, year: int) -> AllowanceSummary:
        row = self.get_or_create(user_id, year)
        entries = self.repo.list_time_entries(user_id, *year_bounds(year))
        return self.summarize(row, entries)


# =========================
# Vacation
# =========================
def vacation_days_used(absences: Iterable[AbsenceEntry], year: int) -> int:
    return sum(1 for a in absences if a.absence_type is AbsenceType.VACATION and a.date.year == year)


def refresh_vacation_allowance(allowance: VacationAllowance, absences: Iterable[AbsenceEntry]) -> VacationAllowance:
    """Sets used_days from the recorded vacation absences of the allowance's year."""
    allowance.used_days = float(vacation_days_used(absences, allowance.year))
    return allowance


__all__ = [
    "AllowanceSummary", "OvertimeAllowanceLedger", "actual_overtime_minutes",
    "remaining_allowance_hours", "effective_overtime_hours",
    "vacation_days_used", "refresh_vacation_allowance",
]
