"""
BatchScheduler -- in-process polling scheduler driver.

Contract:
    ``tick()`` loads the active schedules, fires every one that is due and
    returns one BatchRunResult per fired schedule.  Firing a task walks the
    state machine IDLE -> SELECTING -> DISPATCHING -> IDLE: the task's
    jobs are selected and a RUNNING run is committed, the dispatcher runs
    every job to a final outcome, then the run ledger is completed.
    ``run_task()`` fires one task immediately, regardless of its schedule.
    ``start()`` / ``stop()`` run ``tick()`` on a background thread.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Schedule evaluation is pure (``should_fire``).
    - A schedule's ``next_run_at`` only advances after its run completes,
      so a tick that fails is retried by the next tick.
    - At most one tick runs at a time; an overlapping tick is skipped.
    - Each job's ledger item is committed as the job finishes.  A dispatch
      that raises closes its run as FAILED before the error propagates,
      so no run is left RUNNING.

Non-goals:
    - NOT a distributed scheduler (no leader election).  Overlapping
      processes are still safe: the catch-up checkpoint update is
      conditional.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from penny_kernel.db.engine import session_scope
from penny_kernel.domain.clock import Clock, SystemClock
from penny_kernel.logging_config import LogContext, get_logger

from penny_batch.domain.schedule import compute_next_run, should_fire
from penny_batch.domain.types import (
    BatchRunResult,
    BatchRunStatus,
    JobResult,
    JobSchedule,
    SchedulerState,
)
from penny_batch.models.batch import JobScheduleModel
from penny_batch.services.dispatcher import JobDispatcher
from penny_batch.services.run_recorder import RunRecorder
from penny_batch.tasks.base import ScheduledTask, TaskRegistry

logger = get_logger("batch.scheduler")


class BatchScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        task_registry: TaskRegistry,
        dispatcher: JobDispatcher,
        clock: Clock | None = None,
        tick_interval_seconds: float = 60,
    ):
        self._session_factory = session_factory
        self._task_registry = task_registry
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._state = SchedulerState.IDLE
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> tuple[BatchRunResult, ...]:
        """Evaluate schedules and fire the due ones."""
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("scheduler_tick_skipped", extra={"state": self._state.value})
            return ()

        try:
            now = self._clock.now()
            self._state = SchedulerState.SELECTING
            try:
                schedules = self._load_schedules()
            except Exception:
                logger.exception("scheduler_tick_failed")
                return ()

            results: list[BatchRunResult] = []
            for schedule in schedules:
                if self._stop_event.is_set():
                    break
                if not should_fire(schedule, now):
                    continue

                try:
                    task = self._task_registry.get(schedule.task_type)
                    result = self._fire(task, now, "schedule", schedule.schedule_id)
                    next_run = self._record_schedule_run(schedule, now, result.status)
                except Exception:
                    logger.exception(
                        "schedule_fire_failed",
                        extra={
                            "schedule_id": str(schedule.schedule_id),
                            "task_type": schedule.task_type,
                        },
                    )
                    continue

                logger.info(
                    "schedule_fired",
                    extra={
                        "schedule_id": str(schedule.schedule_id),
                        "job_name": schedule.job_name,
                        "run_id": str(result.run_id),
                        "status": result.status.value,
                        "next_run_at": next_run,
                    },
                )
                results.append(result)

            return tuple(results)
        finally:
            self._state = SchedulerState.IDLE
            self._tick_lock.release()

    def run_task(self, task_type: str) -> BatchRunResult:
        """Fire ``task_type`` now (manual trigger).

        Raises:
            TaskNotRegisteredError: unknown task type.
        """
        task = self._task_registry.get(task_type)
        with self._tick_lock:
            try:
                return self._fire(task, self._clock.now(), "manual", None)
            finally:
                self._state = SchedulerState.IDLE

    def ensure_schedules(self, definitions: Iterable[JobSchedule]) -> int:
        """Create missing schedules and refresh changed ones.

        Schedules are keyed by task type.  A new or re-timed schedule gets
        its first ``next_run_at`` from the current clock.  Returns the
        number of schedules created.
        """
        now = self._clock.now()
        created = 0
        with session_scope(self._session_factory) as session:
            existing = {
                m.task_type: m
                for m in session.execute(select(JobScheduleModel)).scalars()
            }
            for definition in definitions:
                model = existing.get(definition.task_type)
                next_run = definition.next_run_at or compute_next_run(
                    definition.frequency, now, definition.cron_expression,
                )

                if model is None:
                    model = JobScheduleModel.from_dto(definition)
                    model.next_run_at = next_run
                    session.add(model)
                    created += 1
                    logger.info(
                        "schedule_created",
                        extra={
                            "task_type": definition.task_type,
                            "cron_expression": definition.cron_expression,
                            "next_run_at": next_run,
                        },
                    )
                    continue

                if (
                    model.frequency != definition.frequency.value
                    or model.cron_expression != definition.cron_expression
                    or model.is_active != definition.is_active
                ):
                    model.job_name = definition.job_name
                    model.frequency = definition.frequency.value
                    model.cron_expression = definition.cron_expression
                    model.is_active = definition.is_active
                    model.next_run_at = next_run
                    logger.info(
                        "schedule_updated",
                        extra={
                            "task_type": definition.task_type,
                            "cron_expression": definition.cron_expression,
                            "next_run_at": next_run,
                        },
                    )
        return created

    def start(self) -> None:
        """Start ticking on a background thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="penny-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to wind down.

        Jobs not yet started are recorded as FAILED with
        ``DISPATCH_CANCELLED``; their subjects stay due for the next run.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _load_schedules(self) -> list[JobSchedule]:
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(JobScheduleModel)
                .where(JobScheduleModel.is_active.is_(True))
                .order_by(JobScheduleModel.task_type)
            ).scalars().all()
            return [m.to_dto() for m in models]

    def _fire(
        self,
        task: ScheduledTask,
        as_of: datetime,
        trigger: str,
        schedule_id: UUID | None,
    ) -> BatchRunResult:
        correlation_id = str(uuid4())
        started = time.monotonic()

        with LogContext.bind(correlation_id=correlation_id, task_type=task.task_type):
            self._state = SchedulerState.SELECTING
            with session_scope(self._session_factory) as session:
                payloads = task.select_jobs(session, as_of)
                run_id = RunRecorder(session).start_run(
                    task_type=task.task_type,
                    trigger=trigger,
                    as_of=as_of,
                    started_at=self._clock.now(),
                    total_jobs=len(payloads),
                    correlation_id=correlation_id,
                    schedule_id=schedule_id,
                )
            logger.info(
                "task_jobs_selected",
                extra={"trigger": trigger, "job_count": len(payloads), "run_id": str(run_id)},
            )

            def record(index: int, job: JobResult) -> None:
                with session_scope(self._session_factory) as item_session:
                    RunRecorder(item_session).record_item(
                        run_id, index, job, completed_at=self._clock.now(),
                    )

            self._state = SchedulerState.DISPATCHING
            try:
                results = self._dispatcher.dispatch(
                    task, payloads, as_of,
                    stop_event=self._stop_event,
                    correlation_id=correlation_id,
                    on_result=record,
                )
            except Exception as exc:
                logger.error(
                    "task_dispatch_aborted",
                    extra={"run_id": str(run_id), "error": str(exc)},
                    exc_info=True,
                )
                with session_scope(self._session_factory) as session:
                    RunRecorder(session).fail_run(
                        run_id,
                        exc,
                        completed_at=self._clock.now(),
                        duration_ms=int((time.monotonic() - started) * 1000),
                    )
                raise

            with session_scope(self._session_factory) as session:
                run = RunRecorder(session).complete_run(
                    run_id,
                    results,
                    completed_at=self._clock.now(),
                    duration_ms=int((time.monotonic() - started) * 1000),
                )

            logger.info(
                "task_run_completed",
                extra={
                    "run_id": str(run.run_id),
                    "status": run.status.value,
                    "total_jobs": run.total_jobs,
                    "succeeded": run.succeeded,
                    "noop": run.noop,
                    "failed": run.failed,
                    "dead_lettered": run.dead_lettered,
                    "fatal": run.fatal,
                    "duration_ms": run.duration_ms,
                },
            )
            return run

    def _record_schedule_run(
        self,
        schedule: JobSchedule,
        ran_at: datetime,
        status: BatchRunStatus,
    ) -> datetime | None:
        next_run = compute_next_run(schedule.frequency, ran_at, schedule.cron_expression)
        with session_scope(self._session_factory) as session:
            model = session.get(JobScheduleModel, schedule.schedule_id)
            if model is not None:
                model.last_run_at = ran_at
                model.last_run_status = status.value
                model.next_run_at = next_run
        return next_run
