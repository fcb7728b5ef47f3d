"""
Budget alert task.

Fires every six hours.  One job per budget; an alert is stamped on the
budget and committed before the notifier sees it, so a retried job never
alerts twice in the same month.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from penny_kernel.db.engine import session_scope
from penny_kernel.domain.deadline import Deadline
from penny_kernel.domain.ports import OccurrenceNotifier
from penny_kernel.services.budget_alert_service import (
    DEFAULT_THRESHOLD_PERCENT,
    BudgetAlertService,
)

from penny_batch.domain.types import JobOutcome, JobPayload

BUDGET_ALERT_TASK_TYPE = "budget.alerts"


class BudgetAlertTask:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier: OccurrenceNotifier,
        threshold_percent: Decimal = DEFAULT_THRESHOLD_PERCENT,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self._threshold_percent = threshold_percent

    @property
    def task_type(self) -> str:
        return BUDGET_ALERT_TASK_TYPE

    @property
    def description(self) -> str:
        return "Alert users whose monthly spending crossed the budget threshold"

    def select_jobs(
        self,
        session: Session,
        as_of: datetime,
    ) -> tuple[JobPayload, ...]:
        return tuple(
            JobPayload(subject_id=budget_id, user_id=user_id)
            for budget_id, user_id in BudgetAlertService(session).budget_subjects()
        )

    def run_job(
        self,
        payload: JobPayload,
        as_of: datetime,
        deadline: Deadline,
    ) -> JobOutcome:
        with session_scope(self._session_factory) as session:
            service = BudgetAlertService(session, self._threshold_percent)
            alert = service.evaluate(payload.subject_id, as_of)
            deadline.check("commit")

        if alert is None:
            return JobOutcome.NOOP

        self._notifier.budget_alert(alert)
        return JobOutcome.SUCCEEDED
