"""
BatchOrchestrator -- composition root for the scheduler.

Contract:
    Wires the task registry (catch-up and budget-alert tasks), the
    dispatcher with its retry and throttle policies, and the scheduler
    from one ``PennyConfig``.  Single place where batch dependencies are
    composed; every collaborator is injected, none is a module global.

Non-goals:
    - Does NOT start the scheduler -- the caller decides.
    - Does NOT create tables or initialize the engine.
"""

from __future__ import annotations

from typing import Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from penny_config import PennyConfig
from penny_kernel.domain.clock import Clock, SystemClock
from penny_kernel.domain.ports import OccurrenceNotifier
from penny_kernel.logging_config import get_logger
from penny_kernel.services.notifier import LoggingNotifier

from penny_batch.domain.types import (
    JobSchedule,
    RetryPolicy,
    ScheduleFrequency,
    ThrottlePolicy,
)
from penny_batch.services.dispatcher import JobDispatcher
from penny_batch.services.scheduler import BatchScheduler
from penny_batch.services.throttle import PerKeyThrottle
from penny_batch.tasks.base import TaskRegistry
from penny_batch.tasks.budget_tasks import BUDGET_ALERT_TASK_TYPE, BudgetAlertTask
from penny_batch.tasks.recurring_tasks import CATCH_UP_TASK_TYPE, RecurringCatchUpTask

logger = get_logger("batch.orchestrator")


def default_schedules(config: PennyConfig) -> tuple[JobSchedule, ...]:
    """The catch-up (daily) and budget-alert schedules from config."""
    return (
        JobSchedule(
            schedule_id=uuid4(),
            job_name="Recurring transaction catch-up",
            task_type=CATCH_UP_TASK_TYPE,
            frequency=ScheduleFrequency.DAILY,
            cron_expression=config.scheduler.catch_up_cron,
        ),
        JobSchedule(
            schedule_id=uuid4(),
            job_name="Budget alerts",
            task_type=BUDGET_ALERT_TASK_TYPE,
            frequency=ScheduleFrequency.HOURLY,
            cron_expression=config.scheduler.budget_alert_cron,
        ),
    )


class BatchOrchestrator:
    def __init__(
        self,
        config: PennyConfig,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        notifier: OccurrenceNotifier | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._sleep = sleep
        self._task_registry = self._build_registry()

    def _build_registry(self) -> TaskRegistry:
        registry = TaskRegistry()
        registry.register(
            RecurringCatchUpTask(
                self._session_factory,
                self._clock,
                self._notifier,
                max_occurrences=self._config.scheduler.max_occurrences,
            )
        )
        registry.register(
            BudgetAlertTask(
                self._session_factory,
                self._notifier,
                threshold_percent=self._config.budget.alert_threshold_percent,
            )
        )
        return registry

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def clock(self) -> Clock:
        return self._clock

    def retry_policy(self) -> RetryPolicy:
        r = self._config.retry
        return RetryPolicy(
            max_attempts=r.max_attempts,
            base_delay_seconds=r.base_delay_seconds,
            multiplier=r.multiplier,
            max_delay_seconds=r.max_delay_seconds,
        )

    def throttle_policy(self) -> ThrottlePolicy:
        t = self._config.throttle
        return ThrottlePolicy(
            limit=t.limit,
            period_seconds=t.period_seconds,
            max_concurrent=t.max_concurrent,
        )

    def create_dispatcher(self) -> JobDispatcher:
        extra = {"sleep": self._sleep} if self._sleep is not None else {}
        return JobDispatcher(
            retry_policy=self.retry_policy(),
            throttle=PerKeyThrottle(self.throttle_policy(), **extra),
            max_workers=self._config.scheduler.max_workers,
            job_timeout_seconds=self._config.scheduler.job_timeout_seconds,
            **extra,
        )

    def create_scheduler(self, install_schedules: bool = True) -> BatchScheduler:
        """Build a scheduler; by default also upserts the default schedules.

        Raises:
            ValueError: a configured cron expression is malformed.
        """
        scheduler = BatchScheduler(
            session_factory=self._session_factory,
            task_registry=self._task_registry,
            dispatcher=self.create_dispatcher(),
            clock=self._clock,
            tick_interval_seconds=self._config.scheduler.tick_interval_seconds,
        )
        if install_schedules:
            created = scheduler.ensure_schedules(default_schedules(self._config))
            logger.info(
                "scheduler_configured",
                extra={
                    "tasks": list(self._task_registry.list_tasks()),
                    "schedules_created": created,
                },
            )
        return scheduler
