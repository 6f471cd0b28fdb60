# services.py
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from calendar_policy import (
    DEFAULT_PROVIDER,
    HolidayProvider,
    is_holiday as _is_holiday,
    target_minutes_for_weekday,
)
from domain import Break, BreakEnforcement, NetDuration, SurchargeResult, WorkSession
from errors import ValidationError

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE

# Surcharge rates in percent
HOLIDAY_RATE = 130
SATURDAY_RATE = 30
SATURDAY_SETTLED_RATE = 60
SUNDAY_RATE = 60
OVERTIME_RATE = 30

REGULAR_LABEL = "Regular"


def _ms(delta: timedelta) -> int:
    return int(delta / timedelta(milliseconds=1))


def _round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounding .5 upwards, like Math.round for positive values."""
    return (2 * numerator + denominator) // (2 * denominator)


class WorkTimeCalculator:
    """Legal break rules and net work duration."""
    def __init__(self, break_rules: Sequence[tuple[float, int]] = ((9.0, 45), (6.0, 30))):
        # (threshold in gross hours, required minutes), checked in order
        self.break_rules = tuple(break_rules)

    def required_break_minutes(self, gross_hours: float) -> int:
        """More than 9h requires 45 min, more than 6h requires 30 min."""
        for threshold, minutes in self.break_rules:
            if gross_hours > threshold:
                return minutes
        return 0

    @staticmethod
    def actual_break_ms(breaks: Iterable[Break]) -> int:
        """Sum of closed breaks. Open breaks count 0 until they are closed."""
        total = 0
        for br in breaks:
            if br.start and br.end:
                if br.end < br.start:
                    raise ValidationError(f"Break ends before it starts: {br.start.isoformat()} > {br.end.isoformat()}")
                total += _ms(br.end - br.start)
        return total

    def enforce_breaks(self, gross_ms: int, breaks: Iterable[Break]) -> BreakEnforcement:
        actual = self.actual_break_ms(breaks)
        required = self.required_break_minutes(gross_ms / MS_PER_HOUR)
        return BreakEnforcement(
            actual_break_ms=actual,
            required_break_minutes=required,
            enforced_break_ms=max(actual, required * MS_PER_MINUTE),
        )

    def compute_net_duration(self, start: datetime | None, end: datetime | None,
                             breaks: Iterable[Break] = ()) -> NetDuration:
        """Net minutes = gross span minus the enforced break time, never below 0."""
        if start is None or end is None:
            raise ValidationError("Start and end time are required")
        if end < start:
            raise ValidationError(f"End {end.isoformat()} is before start {start.isoformat()}")
        gross_ms = _ms(end - start)
        enforcement = self.enforce_breaks(gross_ms, list(breaks))
        net_ms = gross_ms - enforcement.enforced_break_ms
        net_minutes = _round_half_up(net_ms, MS_PER_MINUTE) if net_ms > 0 else 0
        return NetDuration(
            net_minutes=net_minutes,
            total_break_ms=enforcement.enforced_break_ms,
            required_break_minutes=enforcement.required_break_minutes,
            added_break_minutes=enforcement.added_minutes,
        )

    @staticmethod
    def close_open_breaks(breaks: Iterable[Break], at: datetime) -> list[Break]:
        return [Break(start=b.start, end=at) if b.is_open else b for b in breaks]

    def live_net_minutes(self, session: WorkSession, now: datetime) -> int:
        """Minutes worked so far; a running break is treated as ending at ``now``."""
        if now < session.start_time:
            return 0
        breaks = self.close_open_breaks(session.breaks, now)
        return self.compute_net_duration(session.start_time, now, breaks).net_minutes


class SurchargeClassifier:
    """Splits net minutes into regular and surcharge minutes for the day of ``start``."""
    def __init__(self, provider: HolidayProvider | None = None):
        self.provider = provider or DEFAULT_PROVIDER

    @staticmethod
    def surcharge_amount(surcharge_minutes: int, rate_percent: int) -> int:
        """Surcharge minutes plus the premium on top, in minute equivalents."""
        return _round_half_up(surcharge_minutes * (100 + rate_percent), 100)

    def _result(self, regular: int, surcharge: int, rate: int, special_day: bool, label: str) -> SurchargeResult:
        return SurchargeResult(
            regular_minutes=regular,
            surcharge_minutes=surcharge,
            surcharge_amount=self.surcharge_amount(surcharge, rate) if surcharge else 0,
            is_surcharge_day=special_day,
            surcharge_label=label,
            rate=rate / 100,
        )

    def classify(self, start: datetime, net_minutes: int, custom_holidays: Iterable[str] = (),
                 usp_settled: bool = False, previous_weeks_target_met: bool = False) -> SurchargeResult:
        if net_minutes < 0:
            raise ValidationError(f"Net minutes must not be negative, got {net_minutes}")
        dow = start.isoweekday()

        # Holidays, Saturdays and Sundays: surcharge from the first minute
        if _is_holiday(start, custom_holidays, self.provider):
            return self._result(0, net_minutes, HOLIDAY_RATE, True, f"Holiday surcharge ({HOLIDAY_RATE}%)")
        if dow == 6:
            rate = SATURDAY_SETTLED_RATE if (usp_settled and previous_weeks_target_met) else SATURDAY_RATE
            return self._result(0, net_minutes, rate, True, f"Saturday surcharge ({rate}%)")
        if dow == 7:
            return self._result(0, net_minutes, SUNDAY_RATE, True, f"Sunday surcharge ({SUNDAY_RATE}%)")

        # Mon-Fri: only minutes above the day's target
        target = target_minutes_for_weekday(dow)
        overtime = max(0, net_minutes - target)
        if overtime > 0:
            return self._result(target, overtime, OVERTIME_RATE, False, f"Overtime surcharge ({OVERTIME_RATE}%)")
        return self._result(net_minutes, 0, 0, False, REGULAR_LABEL)


_default_calculator = WorkTimeCalculator()
_default_classifier = SurchargeClassifier()


def compute_net_duration(start: datetime, end: datetime, breaks: Iterable[Break] = ()) -> NetDuration:
    return _default_calculator.compute_net_duration(start, end, breaks)


def classify_surcharge(start: datetime, net_minutes: int, custom_holidays: Iterable[str] = (),
                       usp_settled: bool = False, previous_weeks_target_met: bool = False) -> SurchargeResult:
    return _default_classifier.classify(start, net_minutes, custom_holidays, usp_settled, previous_weeks_target_met)


def is_holiday(day, custom_holidays: Iterable[str] = ()) -> bool:
    return _is_holiday(day, custom_holidays)


__all__ = [
    "WorkTimeCalculator", "SurchargeClassifier",
    "compute_net_duration", "classify_surcharge", "is_holiday",
]
