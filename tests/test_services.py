import pytest
from datetime import datetime, timedelta

from domain import Break, WorkSession, WorkStatus
from errors import ValidationError
from services import (
    SurchargeClassifier,
    WorkTimeCalculator,
    classify_surcharge,
    compute_net_duration,
    is_holiday,
)

calc = WorkTimeCalculator()


def _break(start, minutes):
    return Break(start=start, end=start + timedelta(minutes=minutes))


# --- break enforcement -----------------------------------------------------

@pytest.mark.parametrize("hours, expected", [
    (5.0, 0), (6.0, 0), (6.01, 30), (9.0, 30), (9.01, 45), (12.0, 45),
])
def test_required_break_minutes(hours, expected):
    assert calc.required_break_minutes(hours) == expected


@pytest.mark.parametrize("gross_hours, actual_min", [(5, 10), (7, 0), (7, 20), (7, 40), (10, 30), (10, 60)])
def test_enforced_break_is_max_of_actual_and_required(gross_hours, actual_min):
    start = datetime(2025, 6, 11, 8, 0)
    breaks = [_break(start + timedelta(hours=2), actual_min)] if actual_min else []
    enforcement = calc.enforce_breaks(gross_hours * 3600000, breaks)
    required = calc.required_break_minutes(gross_hours)
    assert enforcement.enforced_break_ms == max(actual_min, required) * 60000


def test_open_breaks_count_zero():
    start = datetime(2025, 6, 11, 8, 0)
    assert calc.actual_break_ms([Break(start=start), _break(start, 15)]) == 15 * 60000


def test_net_duration_adds_missing_break():
    start = datetime(2025, 6, 11, 8, 0)
    result = calc.compute_net_duration(start, start + timedelta(hours=8), [_break(start + timedelta(hours=3), 10)])
    assert result.net_minutes == 450
    assert result.total_break_ms == 30 * 60000
    assert result.required_break_minutes == 30
    assert result.added_break_minutes == 20


def test_net_duration_keeps_longer_actual_break():
    start = datetime(2025, 6, 11, 8, 0)
    result = compute_net_duration(start, start + timedelta(hours=8), [_break(start + timedelta(hours=3), 50)])
    assert result.net_minutes == 430
    assert result.added_break_minutes == 0


def test_net_duration_rounds_to_minutes():
    start = datetime(2025, 6, 11, 8, 0)
    assert compute_net_duration(start, start + timedelta(minutes=10, seconds=30)).net_minutes == 11
    assert compute_net_duration(start, start + timedelta(minutes=10, seconds=29)).net_minutes == 10


def test_net_duration_never_negative():
    start = datetime(2025, 6, 11, 8, 0)
    long_break = _break(start, 120)
    assert compute_net_duration(start, start + timedelta(minutes=30), [long_break]).net_minutes == 0


def test_end_before_start_is_rejected():
    start = datetime(2025, 6, 11, 8, 0)
    with pytest.raises(ValidationError):
        compute_net_duration(start, start - timedelta(minutes=1))


def test_missing_end_is_rejected():
    with pytest.raises(ValidationError):
        compute_net_duration(datetime(2025, 6, 11, 8, 0), None)


def test_inverted_break_is_rejected():
    start = datetime(2025, 6, 11, 8, 0)
    bad = Break(start=start + timedelta(hours=2), end=start + timedelta(hours=1))
    with pytest.raises(ValidationError):
        compute_net_duration(start, start + timedelta(hours=4), [bad])


def test_live_minutes_stop_during_break():
    start = datetime(2025, 6, 11, 8, 0)
    session = WorkSession(
        user_id="u1", start_time=start, status=WorkStatus.BREAK,
        breaks=[Break(start=start + timedelta(hours=2))],
    )
    assert calc.live_net_minutes(session, start + timedelta(hours=2, minutes=20)) == 120
    assert calc.live_net_minutes(session, start - timedelta(minutes=5)) == 0


# --- surcharge classification ------------------------------------------------

def test_holiday_surcharge_from_first_minute():
    start = datetime(2025, 6, 9, 8, 0)
    net = compute_net_duration(start, start + timedelta(hours=8), [])
    assert net.net_minutes == 450
    result = classify_surcharge(start, net.net_minutes, [])
    assert result.regular_minutes == 0
    assert result.surcharge_minutes == 450
    assert result.is_surcharge_day is True
    assert result.surcharge_label == "Holiday surcharge (130%)"
    assert result.surcharge_amount == 1035


def test_weekday_overtime_above_target():
    start = datetime(2025, 6, 11, 7, 0)  # Wednesday
    end = start + timedelta(hours=9, minutes=30)
    net = compute_net_duration(start, end, [_break(start + timedelta(hours=4), 20)])
    assert net.net_minutes == 525
    result = classify_surcharge(start, net.net_minutes, [])
    assert (result.regular_minutes, result.surcharge_minutes) == (510, 15)
    assert result.is_surcharge_day is False
    assert result.surcharge_label == "Overtime surcharge (30%)"
    assert result.surcharge_amount == 20


def test_sunday_surcharge():
    start = datetime(2025, 6, 15, 9, 0)
    net = compute_net_duration(start, start + timedelta(hours=6), [])
    assert net.net_minutes == 360
    result = classify_surcharge(start, net.net_minutes, [])
    assert result.regular_minutes == 0
    assert result.surcharge_minutes == 360
    assert result.is_surcharge_day is True
    assert result.surcharge_label == "Sunday surcharge (60%)"
    assert result.surcharge_amount == 576


def test_saturday_base_rate():
    result = classify_surcharge(datetime(2025, 6, 14, 9, 0), 100, [])
    assert result.surcharge_label == "Saturday surcharge (30%)"
    assert result.surcharge_amount == 130


@pytest.mark.parametrize("settled, met, label", [
    (True, True, "Saturday surcharge (60%)"),
    (True, False, "Saturday surcharge (30%)"),
    (False, True, "Saturday surcharge (30%)"),
])
def test_saturday_rate_after_settled_allowance(settled, met, label):
    result = classify_surcharge(datetime(2025, 6, 14, 9, 0), 100, [], usp_settled=settled,
                                previous_weeks_target_met=met)
    assert result.surcharge_label == label


def test_holiday_wins_over_weekend():
    result = classify_surcharge(datetime(2025, 6, 14, 9, 0), 60, ["06-14"])
    assert result.surcharge_label == "Holiday surcharge (130%)"


def test_custom_holiday_on_weekday():
    result = classify_surcharge(datetime(2025, 6, 11, 9, 0), 300, ["06-11"])
    assert result.is_surcharge_day is True
    assert result.regular_minutes == 0


def test_weekday_within_target_is_regular():
    result = classify_surcharge(datetime(2025, 6, 13, 8, 0), 240, [])  # Friday, target 240
    assert result.surcharge_minutes == 0
    assert result.surcharge_amount == 0
    assert result.is_surcharge_day is False
    assert result.surcharge_label == "Regular"


def test_friday_overtime_uses_friday_target():
    result = SurchargeClassifier().classify(datetime(2025, 6, 13, 8, 0), 300)
    assert (result.regular_minutes, result.surcharge_minutes) == (240, 60)


@pytest.mark.parametrize("day", [9, 10, 11, 12, 13, 14, 15])
@pytest.mark.parametrize("net", [0, 1, 240, 510, 700])
def test_minutes_partition_net(day, net):
    result = classify_surcharge(datetime(2025, 6, day, 8, 0), net, [])
    assert result.regular_minutes + result.surcharge_minutes == net
    if result.is_surcharge_day:
        assert result.regular_minutes == 0


def test_negative_net_minutes_rejected():
    with pytest.raises(ValidationError):
        classify_surcharge(datetime(2025, 6, 11, 8, 0), -1, [])


def test_is_holiday_boundary_function():
    assert is_holiday(datetime(2025, 10, 3), [])
    assert not is_holiday(datetime(2025, 10, 4), [])
