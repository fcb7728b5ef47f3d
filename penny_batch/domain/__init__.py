"""Pure scheduler domain: DTOs, policies and schedule evaluation.  ZERO I/O."""

from penny_batch.domain.schedule import (
    CronSpec,
    compute_next_run,
    matches_cron,
    parse_cron,
    should_fire,
)
from penny_batch.domain.types import (
    BatchRunResult,
    BatchRunStatus,
    DeadLetter,
    JobOutcome,
    JobPayload,
    JobResult,
    JobSchedule,
    RetryPolicy,
    ScheduleFrequency,
    SchedulerState,
    ThrottlePolicy,
)

__all__ = [
    "BatchRunResult",
    "BatchRunStatus",
    "CronSpec",
    "DeadLetter",
    "JobOutcome",
    "JobPayload",
    "JobResult",
    "JobSchedule",
    "RetryPolicy",
    "ScheduleFrequency",
    "SchedulerState",
    "ThrottlePolicy",
    "compute_next_run",
    "matches_cron",
    "parse_cron",
    "should_fire",
]
