# calendar_policy.py
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Iterable, Protocol

import holidays

from errors import ValidationError

# Public holidays NRW 2025 (MM-DD). Recurs every year by month-day only.
NRW_HOLIDAYS_2025 = frozenset({
    "01-01", "04-18", "04-21", "05-01", "05-29", "06-09", "06-19",
    "10-03", "11-01", "12-25", "12-26",
})

# Contractual target minutes per ISO weekday (1 = Monday).
TARGET_MINUTES_DAILY: dict[int, int] = {
    1: 510,  # Mon 8h 30m
    2: 510,
    3: 510,
    4: 510,
    5: 240,  # Fri 4h
    6: 0,
    7: 0,
}

WEEKLY_TARGET_MINUTES = 38 * 60 + 30   # 2310
MONTHLY_TARGET_MINUTES = 165 * 60      # 9900

_MMDD = re.compile(r"^(\d{2})-(\d{2})$")


class HolidayProvider(Protocol):
    def holidays_for(self, year: int) -> frozenset[str]:
        """Returns the holidays of ``year`` as MM-DD strings."""
        ...


class FixedHolidayProvider:
    """Same literal month-day table for every year."""
    def __init__(self, table: Iterable[str] = NRW_HOLIDAYS_2025):
        self.table = frozenset(table)

    def holidays_for(self, year: int) -> frozenset[str]:
        return self.table


class RegionalHolidayProvider:
    """Real public holidays of a German state, movable feasts computed per year."""
    def __init__(self, subdivision: str = "NW", country: str = "DE"):
        self.country = country
        self.subdivision = subdivision
        self._cache: dict[int, frozenset[str]] = {}

    def holidays_for(self, year: int) -> frozenset[str]:
        if year not in self._cache:
            calendar = holidays.country_holidays(self.country, subdiv=self.subdivision, years=year)
            self._cache[year] = frozenset(d.strftime("%m-%d") for d in calendar)
        return self._cache[year]


DEFAULT_PROVIDER: HolidayProvider = FixedHolidayProvider()


def provider_from_settings(name: str, subdivision: str = "NW") -> HolidayProvider:
    if name == "regional":
        return RegionalHolidayProvider(subdivision)
    return FixedHolidayProvider()


def _as_date(day: date | datetime) -> date:
    return day.date() if isinstance(day, datetime) else day


def month_day(day: date | datetime) -> str:
    return _as_date(day).strftime("%m-%d")


def is_holiday(day: date | datetime, custom_holidays: Iterable[str] = (),
               provider: HolidayProvider | None = None) -> bool:
    """True when the day's MM-DD is a regional holiday or one of the user's custom holidays."""
    provider = provider or DEFAULT_PROVIDER
    d = _as_date(day)
    mmdd = month_day(d)
    return mmdd in provider.holidays_for(d.year) or mmdd in set(custom_holidays or ())


def validate_custom_holidays(values: Iterable[str]) -> list[str]:
    """Normalizes a list of MM-DD strings. Raises ValidationError on anything else."""
    result = set()
    for raw in values or ():
        value = str(raw).strip()
        m = _MMDD.match(value)
        if not m:
            raise ValidationError(f"Custom holiday must be MM-DD, got {raw!r}")
        month, day = int(m.group(1)), int(m.group(2))
        try:
            date(2024, month, day)  # leap year so 02-29 is accepted
        except ValueError:
            raise ValidationError(f"Custom holiday is not a calendar day: {raw!r}")
        result.add(value)
    return sorted(result)


def target_minutes_for_weekday(dow: int) -> int:
    """ISO weekday (1 = Monday .. 7 = Sunday). Unknown keys mean no obligation."""
    return TARGET_MINUTES_DAILY.get(dow, 0)


def target_minutes_for_date(day: date | datetime) -> int:
    return target_minutes_for_weekday(_as_date(day).isoweekday())


# =========================
# Windowing
# =========================
def iso_week_key(day: date | datetime) -> tuple[int, int]:
    iso = _as_date(day).isocalendar()
    return (iso[0], iso[1])


def week_bounds(day: date | datetime) -> tuple[date, date]:
    """Monday and Sunday of the ISO week containing ``day``."""
    d = _as_date(day)
    monday = d - timedelta(days=d.isoweekday() - 1)
    return monday, monday + timedelta(days=6)


def month_bounds(day: date | datetime) -> tuple[date, date]:
    d = _as_date(day)
    d1 = date(d.year, d.month, 1)
    d2 = (date(d.year + 1, 1, 1) - timedelta(days=1)) if d.month == 12 else (date(d.year, d.month + 1, 1) - timedelta(days=1))
    return d1, d2


def year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def weekly_target_minutes(monday: date, custom_holidays: Iterable[str] = (),
                          provider: HolidayProvider | None = None) -> int:
    """Sum of the daily targets of the week; holidays carry no target."""
    custom = list(custom_holidays or ())
    total = 0
    for offset in range(7):
        d = monday + timedelta(days=offset)
        if is_holiday(d, custom, provider):
            continue
        total += target_minutes_for_date(d)
    return total


__all__ = [
    "NRW_HOLIDAYS_2025", "TARGET_MINUTES_DAILY", "WEEKLY_TARGET_MINUTES", "MONTHLY_TARGET_MINUTES",
    "HolidayProvider", "FixedHolidayProvider", "RegionalHolidayProvider", "DEFAULT_PROVIDER",
    "provider_from_settings", "is_holiday", "validate_custom_holidays", "month_day",
    "target_minutes_for_weekday", "target_minutes_for_date",
    "iso_week_key", "week_bounds", "month_bounds", "year_bounds", "weekly_target_minutes",
]
