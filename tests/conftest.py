import pytest
from datetime import datetime

from allowance import OvertimeAllowanceLedger
from domain import TimeEntry
from repository import WorkTimeRepository
from services import SurchargeClassifier, WorkTimeCalculator
from tracking import TimeTracker


@pytest.fixture
def repo(tmp_path):
    return WorkTimeRepository(f"sqlite:///{(tmp_path / 'test.db').as_posix()}")


@pytest.fixture
def ledger(repo):
    return OvertimeAllowanceLedger(repo, total_hours=150, settled_before_year=2026)


@pytest.fixture
def tracker(repo, ledger):
    return TimeTracker(repo, WorkTimeCalculator(), SurchargeClassifier(), ledger)


def make_entry(user_id, start, net_minutes, end=None, **fields):
    """Finalized entry with already derived fields, for aggregation tests."""
    return TimeEntry(
        user_id=user_id,
        start_time=start,
        end_time=end or start,
        date=start.date(),
        net_work_duration_minutes=net_minutes,
        regular_minutes=fields.pop("regular_minutes", net_minutes),
        **fields,
    )


@pytest.fixture
def entry_factory():
    return make_entry
