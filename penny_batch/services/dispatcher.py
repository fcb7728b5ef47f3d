"""
JobDispatcher -- runs a task's jobs on a worker pool with retries.

Contract:
    ``dispatch(task, payloads, as_of)`` runs every payload to a final
    JobOutcome and returns one JobResult per payload, in dispatch order.
    Delivery is at-least-once: a job may be attempted several times, and
    the task's own checkpointing makes repeats harmless.

    ``on_result(index, result)`` is called on the dispatching thread as
    each job finishes, with ``index`` its position in dispatch order.

Dispatch order:
    Payloads are interleaved round-robin by user before submission, so one
    user with many due subjects cannot starve everyone else, and each
    attempt holds a per-user throttle slot.

Failure classification (per attempt):
    - TemplateNotFoundError / BudgetNotFoundError -> NOOP, no retry.
    - RetryableError, sqlalchemy SQLAlchemyError   -> retry with backoff;
      DEAD_LETTERED once ``RetryPolicy.max_attempts`` is spent.
    - anything else                                -> FATAL, no retry.
    Every non-success is logged; DEAD_LETTERED and FATAL at ERROR.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Hashable, Iterable, Sequence, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from penny_kernel.domain.deadline import Deadline
from penny_kernel.exceptions import (
    BudgetNotFoundError,
    RetryableError,
    RetryExhaustedError,
    TemplateNotFoundError,
)
from penny_kernel.logging_config import LogContext, get_logger

from penny_batch.domain.types import JobOutcome, JobPayload, JobResult, RetryPolicy
from penny_batch.services.throttle import PerKeyThrottle
from penny_batch.tasks.base import ScheduledTask

logger = get_logger("batch.dispatcher")

T = TypeVar("T")

NOT_FOUND_ERRORS = (TemplateNotFoundError, BudgetNotFoundError)
TRANSIENT_ERRORS = (RetryableError, SQLAlchemyError)


def round_robin(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Interleave ``items`` across keys, keeping each key's own order.

    ``[a1, a2, a3, b1, c1, c2]`` -> ``[a1, b1, c1, a2, c2, a3]``.
    """
    queues: OrderedDict[Hashable, list[T]] = OrderedDict()
    for item in items:
        queues.setdefault(key(item), []).append(item)

    ordered: list[T] = []
    depth = 0
    total = sum(len(q) for q in queues.values())
    while len(ordered) < total:
        for queue in queues.values():
            if depth < len(queue):
                ordered.append(queue[depth])
        depth += 1
    return ordered


def _error_code(exc: BaseException) -> str:
    return getattr(exc, "code", None) or type(exc).__name__


class JobDispatcher:
    """Worker pool with bounded retries and per-user throttling."""

    def __init__(
        self,
        retry_policy: RetryPolicy,
        throttle: PerKeyThrottle | None = None,
        max_workers: int = 4,
        job_timeout_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        timer: Callable[[], float] = time.monotonic,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.retry_policy = retry_policy
        self._throttle = throttle
        self._max_workers = max_workers
        self._job_timeout = job_timeout_seconds
        self._sleep = sleep
        self._timer = timer

    def dispatch(
        self,
        task: ScheduledTask,
        payloads: Sequence[JobPayload],
        as_of: datetime,
        stop_event: threading.Event | None = None,
        correlation_id: str | None = None,
        on_result: Callable[[int, JobResult], None] | None = None,
    ) -> tuple[JobResult, ...]:
        if not payloads:
            return ()

        ordered = round_robin(payloads, key=lambda p: p.user_id)
        logger.info(
            "dispatch_started",
            extra={
                "task_type": task.task_type,
                "job_count": len(ordered),
                "user_count": len({p.user_id for p in ordered}),
                "max_workers": self._max_workers,
            },
        )

        with ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="penny-dispatch",
        ) as pool:
            futures = {
                pool.submit(
                    self.run_job, task, payload, as_of, stop_event, correlation_id,
                ): index
                for index, payload in enumerate(ordered)
            }
            results: list[JobResult | None] = [None] * len(ordered)
            for future in as_completed(futures):
                index = futures[future]
                results[index] = future.result()
                if on_result is not None:
                    on_result(index, results[index])
            return tuple(results)

    def run_job(
        self,
        task: ScheduledTask,
        payload: JobPayload,
        as_of: datetime,
        stop_event: threading.Event | None = None,
        correlation_id: str | None = None,
    ) -> JobResult:
        """Run one job to a final outcome (retrying transient failures)."""
        with LogContext.bind(
            correlation_id=correlation_id,
            task_type=task.task_type,
            job_id=payload.subject_id,
            user_id=payload.user_id,
        ):
            return self._run_with_retry(task, payload, as_of, stop_event)

    def _run_with_retry(
        self,
        task: ScheduledTask,
        payload: JobPayload,
        as_of: datetime,
        stop_event: threading.Event | None,
    ) -> JobResult:
        started = self._timer()
        policy = self.retry_policy
        last_error: BaseException | None = None

        def result(
            outcome: JobOutcome,
            attempts: int,
            error_code: str | None = None,
            error_message: str | None = None,
        ) -> JobResult:
            return JobResult(
                subject_id=payload.subject_id,
                user_id=payload.user_id,
                outcome=outcome,
                attempts=attempts,
                error_code=error_code,
                error_message=error_message,
                duration_ms=int((self._timer() - started) * 1000),
            )

        for attempt in range(1, policy.max_attempts + 1):
            if stop_event is not None and stop_event.is_set():
                logger.warning("job_cancelled", extra={"attempt": attempt})
                return result(
                    JobOutcome.FAILED, attempt - 1,
                    "DISPATCH_CANCELLED", "scheduler stopping",
                )

            try:
                outcome = self._attempt(task, payload, as_of)
            except NOT_FOUND_ERRORS as exc:
                logger.info("job_subject_not_found", extra={"reason": str(exc)})
                return result(JobOutcome.NOOP, attempt, _error_code(exc), str(exc))
            except TRANSIENT_ERRORS as exc:
                last_error = exc
                logger.warning(
                    "job_attempt_failed",
                    extra={
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "error_code": _error_code(exc),
                        "error": str(exc),
                    },
                )
                if attempt < policy.max_attempts:
                    self._sleep(policy.delay_for(attempt))
                continue
            except Exception as exc:
                logger.error("job_fatal", exc_info=True)
                return result(JobOutcome.FATAL, attempt, _error_code(exc), str(exc))

            logger.debug("job_finished", extra={"outcome": outcome.value, "attempt": attempt})
            return result(outcome, attempt)

        exhausted = RetryExhaustedError(
            task.task_type, payload.subject_id, policy.max_attempts, last_error,
        )
        logger.error(
            "job_dead_lettered",
            extra={
                "attempts": policy.max_attempts,
                "last_error_code": exhausted.last_error_code,
                "error": str(exhausted),
            },
        )
        return result(
            JobOutcome.DEAD_LETTERED, policy.max_attempts,
            exhausted.last_error_code, str(exhausted),
        )

    def _attempt(
        self,
        task: ScheduledTask,
        payload: JobPayload,
        as_of: datetime,
    ) -> JobOutcome:
        if self._throttle is None:
            return task.run_job(payload, as_of, Deadline(self._job_timeout, timer=self._timer))
        # The budget starts once the throttle slot is held.
        with self._throttle.slot(payload.user_id):
            return task.run_job(payload, as_of, Deadline(self._job_timeout, timer=self._timer))
