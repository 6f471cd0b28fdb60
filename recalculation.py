# recalculation.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Tuple

from sqlalchemy.exc import SQLAlchemyError

from allowance import OvertimeAllowanceLedger
from errors import TimeTrackingError
from services import SurchargeClassifier
from tracking import load_user_snapshot

logger = logging.getLogger(__name__)

# Corrupt stored breaks surface as ValueError when rows are mapped back.
READ_ERRORS = (SQLAlchemyError, TimeTrackingError, ValueError)


@dataclass
class RecalculationReport:
    total: int = 0
    updated: int = 0
    failed: List[Tuple[int, str]] = field(default_factory=list)
    failed_users: List[Tuple[str, str]] = field(default_factory=list)


class SurchargeRecalculator:
    """Re-derives the surcharge fields of every stored entry with the current policy."""
    def __init__(self, repository, classifier: SurchargeClassifier | None = None,
                 ledger: OvertimeAllowanceLedger | None = None):
        self.repo = repository
        self.classifier = classifier or SurchargeClassifier()
        self.ledger = ledger or OvertimeAllowanceLedger(repository)

    def run(self, now: datetime | None = None) -> RecalculationReport:
        """Best effort: a failing user or entry is logged and skipped, nothing is rolled back."""
        report = RecalculationReport()
        logger.info(f"Starting surcharge recalculation{f' at {now.isoformat()}' if now else ''}")

        for user_id in self.repo.list_user_ids():
            try:
                entries = self.repo.list_time_entries(user_id)
            except READ_ERRORS as e:
                logger.error(f"Reading time entries of user {user_id} failed: {e}")
                report.failed_users.append((user_id, str(e)))
                continue

            report.total += len(entries)
            try:
                snapshot = load_user_snapshot(
                    self.repo, self.ledger, user_id,
                    [e.start_time.year for e in entries], self.classifier.provider,
                )
            except READ_ERRORS as e:
                logger.error(f"Loading the snapshot of user {user_id} failed, skipping {len(entries)} entries: {e}")
                report.failed_users.append((user_id, str(e)))
                report.failed.extend((entry.id, str(e)) for entry in entries)
                continue

            for entry in entries:
                try:
                    result = snapshot.classify(self.classifier, entry.start_time, entry.net_work_duration_minutes)
                    self.repo.update_surcharge_fields(entry.id, result)
                except (SQLAlchemyError, TimeTrackingError) as e:
                    logger.error(f"Recalculation of time entry {entry.id} failed: {e}")
                    report.failed.append((entry.id, str(e)))
                    continue
                report.updated += 1

        logger.info(f"Recalculation completed: {report.updated}/{report.total} entries updated, {len(report.failed)} failed")
        return report


def recalculate_all(repository, classifier: SurchargeClassifier | None = None,
                    ledger: OvertimeAllowanceLedger | None = None) -> int:
    """Runs the batch with the current policy and returns the number of updated entries."""
    return SurchargeRecalculator(repository, classifier, ledger).run().updated


__all__ = ["RecalculationReport", "SurchargeRecalculator", "recalculate_all"]
