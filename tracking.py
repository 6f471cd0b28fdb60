# tracking.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from allowance import OvertimeAllowanceLedger, refresh_vacation_allowance
from calendar_policy import HolidayProvider, validate_custom_holidays
from domain import (
    AbsenceEntry,
    Break,
    OvertimeAllowance,
    SurchargeResult,
    TimeEntry,
    UserSettings,
    VacationAllowance,
    WorkSession,
    WorkStatus,
)
from errors import EntryNotFoundError, NoActiveSessionError, SessionStateError, ValidationError
from reports import WeekStatus, previous_weeks_target_met, weekly_target_status
from services import SurchargeClassifier, WorkTimeCalculator

logger = logging.getLogger(__name__)


@dataclass
class UserSnapshot:
    """Everything classification needs about one user, read once before classifying.

    Both Saturday flags use the calendar year of the work day.
    """
    user_id: str
    custom_holidays: List[str] = field(default_factory=list)
    allowances: Dict[int, OvertimeAllowance] = field(default_factory=dict)
    weeks: Dict[Tuple[int, int], WeekStatus] = field(default_factory=dict)
    provider: Optional[HolidayProvider] = None

    def usp_settled(self, year: int) -> bool:
        row = self.allowances.get(year)
        return bool(row and row.is_fully_consumed)

    def previous_weeks_target_met(self, day) -> bool:
        return previous_weeks_target_met(self.weeks, day, self.custom_holidays, self.provider)

    def classify(self, classifier: SurchargeClassifier, start: datetime, net_minutes: int) -> SurchargeResult:
        return classifier.classify(
            start,
            net_minutes,
            self.custom_holidays,
            usp_settled=self.usp_settled(start.year),
            previous_weeks_target_met=self.previous_weeks_target_met(start),
        )


def load_user_snapshot(repo, ledger: OvertimeAllowanceLedger, user_id: str, years: Sequence[int],
                       provider: HolidayProvider | None = None) -> UserSnapshot:
    settings = repo.get_settings(user_id)
    entries = repo.list_time_entries(user_id)
    absences = repo.list_absences(user_id)
    return UserSnapshot(
        user_id=user_id,
        custom_holidays=list(settings.custom_holidays),
        allowances={y: ledger.get_or_create(user_id, y) for y in sorted(set(years))},
        weeks=weekly_target_status(entries, absences, settings.custom_holidays, provider),
        provider=provider,
    )


class TimeTracker:
    """Clock-in, breaks and clock-out for one open session per user."""
    def __init__(self, repository, calculator: WorkTimeCalculator | None = None,
                 classifier: SurchargeClassifier | None = None,
                 ledger: OvertimeAllowanceLedger | None = None,
                 long_break_warning_minutes: int = 35):
        self.repo = repository
        self.calculator = calculator or WorkTimeCalculator()
        self.classifier = classifier or SurchargeClassifier()
        self.ledger = ledger or OvertimeAllowanceLedger(repository)
        self.long_break_warning = timedelta(minutes=long_break_warning_minutes)

    def _require_session(self, user_id: str) -> WorkSession:
        session = self.repo.get_session(user_id)
        if session is None:
            raise NoActiveSessionError(f"User {user_id} has no open work session")
        return session

    def current_session(self, user_id: str) -> Optional[WorkSession]:
        return self.repo.get_session(user_id)

    def start_work(self, user_id: str, now: datetime) -> WorkSession:
        session = self.repo.create_session(WorkSession(user_id=user_id, start_time=now))
        logger.info(f"User {user_id} started work at {now.isoformat()}")
        return session

    def start_break(self, user_id: str, now: datetime) -> WorkSession:
        session = self._require_session(user_id)
        if session.status is not WorkStatus.WORKING:
            raise SessionStateError(f"User {user_id} is already on a break")
        if now < session.start_time:
            raise ValidationError("Break cannot start before the session")
        session.breaks = session.breaks + [Break(start=now)]
        session.status = WorkStatus.BREAK
        return self.repo.save_session(session, updated_at=now)

    def is_long_break(self, br: Break) -> bool:
        return br.end is not None and (br.end - br.start) > self.long_break_warning

    def end_break(self, user_id: str, now: datetime) -> WorkSession:
        session = self._require_session(user_id)
        open_break = session.open_break
        if session.status is not WorkStatus.BREAK or open_break is None:
            raise SessionStateError(f"User {user_id} is not on a break")
        if now < open_break.start:
            raise ValidationError("Break cannot end before it started")
        closed = Break(start=open_break.start, end=now)
        session.breaks = session.breaks[:-1] + [closed]
        session.status = WorkStatus.WORKING
        if self.is_long_break(closed):
            logger.warning(f"User {user_id} took a break longer than {self.long_break_warning} ({closed.end - closed.start})")
        return self.repo.save_session(session, updated_at=now)

    def live_minutes(self, user_id: str, now: datetime) -> int:
        session = self.repo.get_session(user_id)
        if session is None:
            return 0
        return self.calculator.live_net_minutes(session, now)

    def build_entry(self, user_id: str, start: datetime, end: datetime, breaks: Sequence[Break],
                    snapshot: UserSnapshot) -> TimeEntry:
        """Runs break enforcement, net duration and surcharge classification for one session."""
        breaks = self.calculator.close_open_breaks(breaks, end)
        net = self.calculator.compute_net_duration(start, end, breaks)
        if net.added_break_minutes > 0:
            logger.info(
                f"Legal minimum break of {net.required_break_minutes} min applied for user {user_id} "
                f"({net.added_break_minutes} min added)"
            )
        surcharge = snapshot.classify(self.classifier, start, net.net_minutes)
        return TimeEntry(
            user_id=user_id,
            start_time=start,
            end_time=end,
            date=start.date(),
            breaks=list(breaks),
            net_work_duration_minutes=net.net_minutes,
            total_break_duration_ms=net.total_break_ms,
            regular_minutes=surcharge.regular_minutes,
            surcharge_minutes=surcharge.surcharge_minutes,
            surcharge_amount=surcharge.surcharge_amount,
            is_surcharge_day=surcharge.is_surcharge_day,
            surcharge_label=surcharge.surcharge_label,
        )

    def end_work(self, user_id: str, now: datetime) -> TimeEntry:
        """Finalizes the open session.

        The entry is written first and the session deleted afterwards. If the
        delete fails the session stays; calling end_work again finds the
        already stored entry (same user and start) and only removes the session.
        """
        session = self._require_session(user_id)
        entry = self.repo.find_time_entry(user_id, session.start_time)
        if entry is None:
            snapshot = load_user_snapshot(self.repo, self.ledger, user_id, [session.start_time.year],
                                          self.classifier.provider)
            entry = self.build_entry(user_id, session.start_time, now, session.breaks, snapshot)
            entry = self.repo.add_time_entry(entry)
        else:
            logger.warning(f"Time entry {entry.id} for user {user_id} already stored, finishing interrupted clock-out")
        self.repo.delete_session(user_id)
        logger.info(f"User {user_id} finished work: {entry.net_work_duration_minutes} min net, {entry.surcharge_label}")
        return entry

    def edit_entry(self, entry_id: int, start: datetime, end: datetime, breaks: Sequence[Break]) -> TimeEntry:
        existing = self.repo.get_time_entry(entry_id)
        if existing is None:
            raise EntryNotFoundError(f"Time entry {entry_id} not found")
        snapshot = load_user_snapshot(self.repo, self.ledger, existing.user_id, [start.year],
                                      self.classifier.provider)
        rebuilt = self.build_entry(existing.user_id, start, end, breaks, snapshot)
        return self.repo.update_time_entry(replace(rebuilt, id=entry_id))

    def delete_entry(self, entry_id: int) -> None:
        if not self.repo.delete_time_entry(entry_id):
            raise EntryNotFoundError(f"Time entry {entry_id} not found")
        logger.info(f"Time entry {entry_id} deleted")

    # ---- absences and settings --------------------------------------
    def add_absence(self, absence: AbsenceEntry) -> AbsenceEntry:
        if absence.hours < 0 or absence.hours > 24:
            raise ValidationError(f"Absence hours must be between 0 and 24, got {absence.hours}")
        return self.repo.add_absence(absence)

    def delete_absence(self, absence_id: int) -> None:
        if not self.repo.delete_absence(absence_id):
            raise EntryNotFoundError(f"Absence {absence_id} not found")

    def vacation_allowance(self, user_id: str, year: int) -> VacationAllowance:
        """The year's vacation balance with used days taken from the recorded absences."""
        allowance = self.repo.get_vacation_allowance(user_id, year) or VacationAllowance(user_id=user_id, year=year)
        allowance = refresh_vacation_allowance(allowance, self.repo.list_absences(user_id))
        return self.repo.save_vacation_allowance(allowance)

    def update_settings(self, user_id: str, custom_holidays: Sequence[str],
                        break_reminder_enabled: bool = True) -> UserSettings:
        settings = UserSettings(
            user_id=user_id,
            custom_holidays=validate_custom_holidays(custom_holidays),
            break_reminder_enabled=break_reminder_enabled,
        )
        return self.repo.save_settings(settings)


__all__ = ["UserSnapshot", "load_user_snapshot", "TimeTracker"]
