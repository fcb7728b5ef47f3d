"""
Recurring transaction catch-up task.

Fires daily.  Selects every due template and runs one catch-up job per
template; each job is its own unit of work, so templates succeed or fail
independently.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from penny_kernel.domain.clock import Clock
from penny_kernel.domain.deadline import Deadline
from penny_kernel.domain.ports import OccurrenceNotifier
from penny_kernel.logging_config import LogContext
from penny_kernel.repositories.unit_of_work import SqlUnitOfWork
from penny_kernel.selectors.recurring_selector import RecurringSelector
from penny_kernel.services.catchup_service import CatchUpService

from penny_batch.domain.types import JobOutcome, JobPayload

CATCH_UP_TASK_TYPE = "recurring.catch_up"


class RecurringCatchUpTask:
    """Materialize missed occurrences of every due recurring template."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock,
        notifier: OccurrenceNotifier,
        max_occurrences: int | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._notifier = notifier
        self._max_occurrences = max_occurrences

    @property
    def task_type(self) -> str:
        return CATCH_UP_TASK_TYPE

    @property
    def description(self) -> str:
        return "Catch up missed recurring transactions"

    def select_jobs(
        self,
        session: Session,
        as_of: datetime,
    ) -> tuple[JobPayload, ...]:
        return tuple(
            JobPayload(subject_id=due.template_id, user_id=due.user_id)
            for due in RecurringSelector(session).due_jobs(as_of)
        )

    def run_job(
        self,
        payload: JobPayload,
        as_of: datetime,
        deadline: Deadline,
    ) -> JobOutcome:
        with LogContext.bind(template_id=payload.subject_id):
            with SqlUnitOfWork(self._session_factory) as uow:
                service = CatchUpService(
                    uow.transactions,
                    uow.accounts,
                    self._clock,
                    max_occurrences=self._max_occurrences,
                )
                result = service.catch_up(payload.subject_id, deadline)

            if not result.applied:
                return JobOutcome.NOOP

            self._notifier.occurrences_materialized(result.user_id, result.occurrences)
            return JobOutcome.SUCCEEDED
