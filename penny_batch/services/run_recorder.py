"""
RunRecorder -- persists the run ledger (``batch_runs`` / ``batch_items``).

Contract:
    ``start_run()`` inserts a RUNNING run before dispatch.  ``record_item()``
    writes each job's item as it finishes; ``complete_run()`` writes any
    items not yet recorded, the outcome counters and the final status.
    ``fail_run()`` closes a run whose dispatch aborted as FAILED.
    ``dead_letters()`` reads back jobs that exhausted retries.

Non-goals:
    - Does NOT commit.  The scheduler commits each step in its own
      session so the ledger survives a crash mid-dispatch.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from penny_batch.domain.types import (
    BatchRunResult,
    BatchRunStatus,
    DeadLetter,
    JobOutcome,
    JobResult,
)
from penny_batch.models.batch import BatchItemModel, BatchRunModel


def run_status(counts: Counter) -> BatchRunStatus:
    """COMPLETED when nothing went wrong, FAILED when nothing went right."""
    bad = (
        counts[JobOutcome.FAILED]
        + counts[JobOutcome.DEAD_LETTERED]
        + counts[JobOutcome.FATAL]
    )
    good = counts[JobOutcome.SUCCEEDED] + counts[JobOutcome.NOOP]
    if bad == 0:
        return BatchRunStatus.COMPLETED
    if good == 0:
        return BatchRunStatus.FAILED
    return BatchRunStatus.PARTIALLY_COMPLETED


def _item(run_id: UUID, index: int, job: JobResult, completed_at: datetime) -> BatchItemModel:
    return BatchItemModel(
        run_id=run_id,
        item_index=index,
        subject_id=job.subject_id,
        user_id=job.user_id,
        status=job.outcome.value,
        attempts=job.attempts,
        error_code=job.error_code,
        error_message=job.error_message,
        duration_ms=job.duration_ms,
        completed_at=completed_at,
    )


class RunRecorder:
    def __init__(self, session: Session):
        self._session = session

    def start_run(
        self,
        task_type: str,
        trigger: str,
        as_of: datetime,
        started_at: datetime,
        total_jobs: int,
        correlation_id: str | None = None,
        schedule_id: UUID | None = None,
    ) -> UUID:
        run = BatchRunModel(
            task_type=task_type,
            status=BatchRunStatus.RUNNING.value,
            trigger=trigger,
            schedule_id=schedule_id,
            total_jobs=total_jobs,
            as_of=as_of,
            started_at=started_at,
            correlation_id=correlation_id,
        )
        self._session.add(run)
        self._session.flush()
        return run.id

    def record_item(
        self,
        run_id: UUID,
        index: int,
        job: JobResult,
        completed_at: datetime,
    ) -> None:
        """Persist one finished job while the rest of the run is in flight."""
        self._session.add(_item(run_id, index, job, completed_at))
        self._session.flush()

    def complete_run(
        self,
        run_id: UUID,
        results: Sequence[JobResult],
        completed_at: datetime,
        duration_ms: int = 0,
    ) -> BatchRunResult:
        """Write the items not yet recorded, then the counters and status."""
        run = self._get(run_id)

        recorded = self._recorded_indexes(run_id)
        for index, job in enumerate(results):
            if index not in recorded:
                self._session.add(_item(run_id, index, job, completed_at))

        counts = Counter(job.outcome for job in results)
        status = run_status(counts)
        run.total_jobs = len(results)
        self._count(run, counts)
        run.status = status.value
        run.completed_at = completed_at
        problems = len(results) - run.succeeded_jobs - run.noop_jobs
        run.error_summary = f"{problems} job(s) did not complete" if problems else None
        self._session.flush()

        return self._result(run, status, tuple(results), completed_at, duration_ms)

    def fail_run(
        self,
        run_id: UUID,
        error: BaseException,
        completed_at: datetime,
        duration_ms: int = 0,
    ) -> BatchRunResult:
        """Close a run whose dispatch aborted.

        Items recorded before the abort are kept and counted; the run is
        FAILED whatever they say.
        """
        run = self._get(run_id)
        items = self._session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.run_id == run_id)
            .order_by(BatchItemModel.item_index)
        ).scalars().all()
        finished = tuple(
            JobResult(
                subject_id=item.subject_id,
                user_id=item.user_id,
                outcome=JobOutcome(item.status),
                attempts=item.attempts,
                error_code=item.error_code,
                error_message=item.error_message,
                duration_ms=item.duration_ms,
            )
            for item in items
        )

        self._count(run, Counter(job.outcome for job in finished))
        run.status = BatchRunStatus.FAILED.value
        run.completed_at = completed_at
        run.error_summary = f"dispatch aborted after {len(finished)} job(s): {error}"
        self._session.flush()

        return self._result(run, BatchRunStatus.FAILED, finished, completed_at, duration_ms)

    def _get(self, run_id: UUID) -> BatchRunModel:
        run = self._session.get(BatchRunModel, run_id)
        if run is None:
            raise LookupError(f"batch run {run_id} not found")
        return run

    def _recorded_indexes(self, run_id: UUID) -> set[int]:
        return set(
            self._session.execute(
                select(BatchItemModel.item_index).where(BatchItemModel.run_id == run_id)
            ).scalars()
        )

    @staticmethod
    def _count(run: BatchRunModel, counts: Counter) -> None:
        run.succeeded_jobs = counts[JobOutcome.SUCCEEDED]
        run.noop_jobs = counts[JobOutcome.NOOP]
        run.failed_jobs = counts[JobOutcome.FAILED]
        run.dead_lettered_jobs = counts[JobOutcome.DEAD_LETTERED]
        run.fatal_jobs = counts[JobOutcome.FATAL]

    @staticmethod
    def _result(
        run: BatchRunModel,
        status: BatchRunStatus,
        results: tuple[JobResult, ...],
        completed_at: datetime,
        duration_ms: int,
    ) -> BatchRunResult:
        return BatchRunResult(
            run_id=run.id,
            task_type=run.task_type,
            status=status,
            total_jobs=run.total_jobs,
            succeeded=run.succeeded_jobs,
            noop=run.noop_jobs,
            failed=run.failed_jobs,
            dead_lettered=run.dead_lettered_jobs,
            fatal=run.fatal_jobs,
            job_results=results,
            started_at=run.started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            correlation_id=run.correlation_id,
        )

    def dead_letters(
        self,
        task_type: str | None = None,
        limit: int = 100,
    ) -> tuple[DeadLetter, ...]:
        """Most recent dead-lettered jobs first."""
        stmt = (
            select(BatchItemModel, BatchRunModel.task_type)
            .join(BatchRunModel, BatchItemModel.run_id == BatchRunModel.id)
            .where(BatchItemModel.status == JobOutcome.DEAD_LETTERED.value)
        )
        if task_type is not None:
            stmt = stmt.where(BatchRunModel.task_type == task_type)
        stmt = stmt.order_by(
            BatchItemModel.completed_at.desc(), BatchItemModel.item_index,
        ).limit(limit)

        return tuple(
            DeadLetter(
                run_id=item.run_id,
                task_type=run_task_type,
                subject_id=item.subject_id,
                user_id=item.user_id,
                attempts=item.attempts,
                error_code=item.error_code,
                error_message=item.error_message,
                recorded_at=item.completed_at,
            )
            for item, run_task_type in self._session.execute(stmt).all()
        )
