"""
penny_batch.domain.types -- Pure frozen dataclasses for the scheduler.  ZERO I/O.

Invariants enforced:
    - Every DTO is frozen; collections are tuples.
    - A job carries only ``{subject_id, user_id}``.  Workers reload the
      subject from storage, so a re-delivered job recomputes from the
      current checkpoint instead of replaying stale state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class BatchRunStatus(str, Enum):
    """Lifecycle of one fired task."""

    RUNNING = "running"
    COMPLETED = "completed"  # Every job succeeded or was a no-op
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"  # No job succeeded


class JobOutcome(str, Enum):
    """Final outcome of a single dispatched job."""

    SUCCEEDED = "succeeded"  # Work was written
    NOOP = "noop"  # Not due, or subject no longer exists
    FAILED = "failed"  # Not attempted to completion (dispatch cancelled)
    DEAD_LETTERED = "dead_lettered"  # Retries exhausted
    FATAL = "fatal"  # Contract violation, never retried


class SchedulerState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    DISPATCHING = "dispatching"


class ScheduleFrequency(str, Enum):
    """Recurrence of a job schedule.  ``cron_expression`` refines the timing."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ON_DEMAND = "on_demand"  # Manual trigger only


# =============================================================================
# Policies
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with exponential backoff.

    The delay after the n-th failed attempt is
    ``base_delay_seconds * multiplier ** (n - 1)``, capped at
    ``max_delay_seconds``.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("retry delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")

    def delay_for(self, failed_attempts: int) -> float:
        """Backoff to sleep after ``failed_attempts`` failures (1-based)."""
        if failed_attempts < 1:
            return 0.0
        delay = self.base_delay_seconds * self.multiplier ** (failed_attempts - 1)
        return min(delay, self.max_delay_seconds)


@dataclass(frozen=True)
class ThrottlePolicy:
    """Per-key limits: ``limit`` starts per ``period_seconds`` and at most
    ``max_concurrent`` jobs in flight."""

    limit: int = 10
    period_seconds: float = 60.0
    max_concurrent: int = 2

    def __post_init__(self) -> None:
        if self.limit < 1 or self.max_concurrent < 1:
            raise ValueError("throttle limit and max_concurrent must be >= 1")
        if self.period_seconds <= 0:
            raise ValueError("throttle period_seconds must be positive")


# =============================================================================
# Job DTOs
# =============================================================================


@dataclass(frozen=True)
class JobPayload:
    """What a worker receives: the subject to process and its owner."""

    subject_id: UUID
    user_id: UUID


@dataclass(frozen=True)
class JobResult:
    subject_id: UUID
    user_id: UUID
    outcome: JobOutcome
    attempts: int = 0
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class BatchRunResult:
    """Summary of one fired task, as persisted in ``batch_runs``."""

    run_id: UUID
    task_type: str
    status: BatchRunStatus
    total_jobs: int
    succeeded: int
    noop: int
    failed: int
    dead_lettered: int
    fatal: int
    job_results: tuple[JobResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    correlation_id: str | None = None


@dataclass(frozen=True)
class DeadLetter:
    """A job that exhausted its retries, read back from ``batch_items``."""

    run_id: UUID
    task_type: str
    subject_id: UUID
    user_id: UUID
    attempts: int
    error_code: str | None
    error_message: str | None
    recorded_at: datetime | None


# =============================================================================
# Schedule DTOs
# =============================================================================


@dataclass(frozen=True)
class JobSchedule:
    """Immutable snapshot of a task schedule.

    Evaluation is pure: ``should_fire`` reads ``next_run_at`` and the
    caller's clock, nothing else.
    """

    schedule_id: UUID
    job_name: str
    task_type: str
    frequency: ScheduleFrequency
    cron_expression: str | None = None
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_run_status: BatchRunStatus | None = None
    is_active: bool = True
