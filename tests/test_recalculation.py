from datetime import datetime, timedelta

from sqlalchemy.exc import OperationalError

from recalculation import SurchargeRecalculator, recalculate_all


def _snapshot(repo):
    return [
        (e.id, e.regular_minutes, e.surcharge_minutes, e.surcharge_amount, e.is_surcharge_day, e.surcharge_label)
        for e in repo.list_time_entries()
    ]


def _seed(repo, entry_factory):
    # stale surcharge fields, as written by an older policy
    monday = datetime(2025, 6, 23, 8, 0)
    for i in range(4):
        repo.add_time_entry(entry_factory("u1", monday + timedelta(days=i), 510))
    repo.add_time_entry(entry_factory("u1", monday + timedelta(days=4), 240))
    saturday = repo.add_time_entry(entry_factory("u1", datetime(2025, 7, 5, 9, 0), 120))
    sunday = repo.add_time_entry(entry_factory("u2", datetime(2025, 6, 15, 9, 0), 360))
    wednesday = repo.add_time_entry(entry_factory("u2", datetime(2025, 6, 11, 7, 0), 525))
    return saturday, sunday, wednesday


def test_recalculation_updates_all_entries(repo, ledger, entry_factory):
    saturday, sunday, wednesday = _seed(repo, entry_factory)
    report = SurchargeRecalculator(repo, ledger=ledger).run(datetime(2026, 10, 19, 12, 0))
    assert report.total == 8
    assert report.updated == 8
    assert report.failed == []

    sat = repo.get_time_entry(saturday.id)
    # 2025 allowance is settled and the previous week met its target
    assert sat.surcharge_label == "Saturday surcharge (60%)"
    assert (sat.regular_minutes, sat.surcharge_minutes, sat.surcharge_amount) == (0, 120, 192)
    assert sat.is_surcharge_day is True

    sun = repo.get_time_entry(sunday.id)
    assert (sun.surcharge_label, sun.surcharge_amount) == ("Sunday surcharge (60%)", 576)

    wed = repo.get_time_entry(wednesday.id)
    assert (wed.regular_minutes, wed.surcharge_minutes, wed.surcharge_amount) == (510, 15, 20)
    assert wed.is_surcharge_day is False


def test_recalculation_is_idempotent(repo, ledger, entry_factory):
    _seed(repo, entry_factory)
    recalculator = SurchargeRecalculator(repo, ledger=ledger)
    recalculator.run()
    first = _snapshot(repo)
    recalculator.run()
    assert _snapshot(repo) == first


def test_minutes_still_add_up_after_recalculation(repo, ledger, entry_factory):
    _seed(repo, entry_factory)
    recalculate_all(repo, ledger=ledger)
    for e in repo.list_time_entries():
        assert e.regular_minutes + e.surcharge_minutes == e.net_work_duration_minutes


def test_failed_entry_does_not_abort_batch(repo, ledger, entry_factory, monkeypatch):
    saturday, sunday, _ = _seed(repo, entry_factory)
    real_update = repo.update_surcharge_fields

    def flaky_update(entry_id, result):
        if entry_id == saturday.id:
            raise OperationalError("UPDATE", {}, Exception("locked"))
        return real_update(entry_id, result)

    monkeypatch.setattr(repo, "update_surcharge_fields", flaky_update)
    report = SurchargeRecalculator(repo, ledger=ledger).run()
    assert report.updated == 7
    assert [entry_id for entry_id, _ in report.failed] == [saturday.id]
    assert repo.get_time_entry(sunday.id).surcharge_amount == 576


def test_recalculate_all_returns_count(repo, ledger, entry_factory):
    _seed(repo, entry_factory)
    assert recalculate_all(repo, ledger=ledger) == 8


def test_recalculation_without_entries(repo, ledger):
    assert SurchargeRecalculator(repo, ledger=ledger).run().updated == 0


def test_saturday_after_missed_week_keeps_base_rate(repo, ledger, entry_factory):
    monday = datetime(2025, 6, 23, 8, 0)
    for i in range(4):
        repo.add_time_entry(entry_factory("u1", monday + timedelta(days=i), 510))
    repo.add_time_entry(entry_factory("u1", monday + timedelta(days=4), 240))
    # nothing recorded in the week of 2025-06-30
    saturday = repo.add_time_entry(entry_factory("u1", datetime(2025, 7, 12, 9, 0), 120))

    SurchargeRecalculator(repo, ledger=ledger).run()
    sat = repo.get_time_entry(saturday.id)
    assert sat.surcharge_label == "Saturday surcharge (30%)"
    assert sat.surcharge_amount == 156


def test_unreadable_user_does_not_abort_batch(repo, ledger, entry_factory, monkeypatch):
    _, sunday, wednesday = _seed(repo, entry_factory)
    real_settings = repo.get_settings

    def flaky_settings(user_id):
        if user_id == "u2":
            raise OperationalError("SELECT", {}, Exception("connection reset"))
        return real_settings(user_id)

    monkeypatch.setattr(repo, "get_settings", flaky_settings)
    report = SurchargeRecalculator(repo, ledger=ledger).run()
    assert report.total == 8
    assert report.updated == 6
    assert [user_id for user_id, _ in report.failed_users] == ["u2"]
    assert sorted(entry_id for entry_id, _ in report.failed) == sorted([sunday.id, wednesday.id])
    assert repo.get_time_entry(sunday.id).surcharge_amount == 0


def test_corrupt_entries_of_one_user_are_skipped(repo, ledger, entry_factory, monkeypatch):
    _seed(repo, entry_factory)
    real_list = repo.list_time_entries

    def flaky_list(user_id=None, *args, **kwargs):
        if user_id == "u1":
            raise ValueError("Invalid isoformat string: 'garbage'")
        return real_list(user_id, *args, **kwargs)

    monkeypatch.setattr(repo, "list_time_entries", flaky_list)
    report = SurchargeRecalculator(repo, ledger=ledger).run()
    assert [user_id for user_id, _ in report.failed_users] == ["u1"]
    assert report.total == 2
    assert report.updated == 2
