"""Tests for RunRecorder -- run ledger writes and the dead-letter query."""

from collections import Counter
from datetime import datetime
from uuid import uuid4

import pytest
from sqlalchemy import select

from penny_batch.domain.types import BatchRunStatus, JobOutcome, JobResult
from penny_batch.models import BatchItemModel, BatchRunModel
from penny_batch.services.run_recorder import RunRecorder, run_status

STARTED = datetime(2024, 6, 15, 12, 0)


def _result(outcome, attempts=1, error_code=None):
    return JobResult(
        subject_id=uuid4(),
        user_id=uuid4(),
        outcome=outcome,
        attempts=attempts,
        error_code=error_code,
        error_message=f"{error_code} happened" if error_code else None,
    )


def _record(session, task_type, results, completed_at=STARTED):
    recorder = RunRecorder(session)
    run_id = recorder.start_run(
        task_type=task_type,
        trigger="manual",
        as_of=STARTED,
        started_at=STARTED,
        total_jobs=len(results),
    )
    run = recorder.complete_run(run_id, results, completed_at=completed_at)
    session.commit()
    return run


class TestRunStatus:
    def test_all_good(self):
        assert run_status(Counter({JobOutcome.SUCCEEDED: 2, JobOutcome.NOOP: 1})) == (
            BatchRunStatus.COMPLETED
        )

    def test_all_bad(self):
        assert run_status(Counter({JobOutcome.FATAL: 1})) == BatchRunStatus.FAILED

    def test_mixed(self):
        assert run_status(
            Counter({JobOutcome.SUCCEEDED: 1, JobOutcome.DEAD_LETTERED: 1})
        ) == BatchRunStatus.PARTIALLY_COMPLETED

    def test_empty_run(self):
        assert run_status(Counter()) == BatchRunStatus.COMPLETED


class TestCompleteRun:
    def test_counts_and_summary(self, db_session):
        results = [
            _result(JobOutcome.SUCCEEDED),
            _result(JobOutcome.NOOP),
            _result(JobOutcome.DEAD_LETTERED, 3, "STORAGE_FAILURE"),
            _result(JobOutcome.FATAL, 1, "INVALID_INTERVAL"),
        ]

        run = _record(db_session, "recurring.catch_up", results)

        assert run.status == BatchRunStatus.PARTIALLY_COMPLETED
        assert (run.succeeded, run.noop, run.dead_lettered, run.fatal, run.failed) == (
            1, 1, 1, 1, 0,
        )
        assert run.job_results == tuple(results)

    def test_ledger_row(self, db_session, reload):
        run = _record(db_session, "recurring.catch_up", [_result(JobOutcome.FATAL)])

        row = reload(BatchRunModel, run.run_id)
        assert row.status == "failed"
        assert row.error_summary == "1 job(s) did not complete"
        assert row.completed_at == STARTED

    def test_unknown_run(self, db_session):
        with pytest.raises(LookupError):
            RunRecorder(db_session).complete_run(uuid4(), [], completed_at=STARTED)


class TestRecordItem:
    def test_items_recorded_early_are_not_duplicated(self, db_session):
        results = [_result(JobOutcome.SUCCEEDED), _result(JobOutcome.NOOP)]
        recorder = RunRecorder(db_session)
        run_id = recorder.start_run(
            task_type="recurring.catch_up",
            trigger="manual",
            as_of=STARTED,
            started_at=STARTED,
            total_jobs=2,
        )
        recorder.record_item(run_id, 1, results[1], completed_at=STARTED)

        run = recorder.complete_run(run_id, results, completed_at=STARTED)
        db_session.commit()

        items = db_session.execute(
            select(BatchItemModel).order_by(BatchItemModel.item_index)
        ).scalars().all()
        assert [(i.item_index, i.status) for i in items] == [(0, "succeeded"), (1, "noop")]
        assert (run.succeeded, run.noop) == (1, 1)


class TestFailRun:
    def test_aborted_dispatch_closes_run_as_failed(self, db_session, reload):
        recorder = RunRecorder(db_session)
        run_id = recorder.start_run(
            task_type="recurring.catch_up",
            trigger="schedule",
            as_of=STARTED,
            started_at=STARTED,
            total_jobs=3,
        )
        done = _result(JobOutcome.SUCCEEDED)
        recorder.record_item(run_id, 0, done, completed_at=STARTED)

        run = recorder.fail_run(
            run_id, RuntimeError("worker pool died"), completed_at=datetime(2024, 6, 15, 12, 5),
        )
        db_session.commit()

        assert run.status == BatchRunStatus.FAILED
        assert run.total_jobs == 3
        assert run.succeeded == 1
        assert [r.subject_id for r in run.job_results] == [done.subject_id]
        row = reload(BatchRunModel, run_id)
        assert row.status == "failed"
        assert row.completed_at == datetime(2024, 6, 15, 12, 5)
        assert row.error_summary == "dispatch aborted after 1 job(s): worker pool died"

    def test_unknown_run(self, db_session):
        with pytest.raises(LookupError):
            RunRecorder(db_session).fail_run(uuid4(), RuntimeError("x"), completed_at=STARTED)


class TestDeadLetters:
    def test_reads_back_dead_letters_newest_first(self, db_session):
        older = _result(JobOutcome.DEAD_LETTERED, 3, "STORAGE_FAILURE")
        newer = _result(JobOutcome.DEAD_LETTERED, 3, "JOB_DEADLINE_EXCEEDED")
        _record(db_session, "recurring.catch_up", [older, _result(JobOutcome.SUCCEEDED)])
        _record(
            db_session, "recurring.catch_up", [newer], completed_at=datetime(2024, 6, 16),
        )

        letters = RunRecorder(db_session).dead_letters()

        assert [d.subject_id for d in letters] == [newer.subject_id, older.subject_id]
        assert letters[0].error_code == "JOB_DEADLINE_EXCEEDED"
        assert letters[0].attempts == 3
        assert letters[0].task_type == "recurring.catch_up"

    def test_filter_and_limit(self, db_session):
        _record(db_session, "recurring.catch_up", [_result(JobOutcome.DEAD_LETTERED)])
        _record(
            db_session,
            "budget.alerts",
            [_result(JobOutcome.DEAD_LETTERED), _result(JobOutcome.DEAD_LETTERED)],
        )
        recorder = RunRecorder(db_session)

        assert len(recorder.dead_letters(task_type="budget.alerts")) == 2
        assert len(recorder.dead_letters(limit=1)) == 1
        assert recorder.dead_letters(task_type="nothing") == ()
