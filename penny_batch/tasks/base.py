"""
ScheduledTask protocol and TaskRegistry.

Contract:
    ``ScheduledTask`` is what the scheduler fires: it selects the jobs for a
    run and executes one job at a time.  ``TaskRegistry`` stores tasks keyed
    by ``task_type``; one task per key.

Architecture:
    penny_batch/tasks.  The dispatcher owns retries, throttling and the
    per-attempt deadline; a task owns its unit of work and commits it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from sqlalchemy.orm import Session

from penny_kernel.domain.deadline import Deadline
from penny_kernel.exceptions import TaskNotRegisteredError

from penny_batch.domain.types import JobOutcome, JobPayload


@runtime_checkable
class ScheduledTask(Protocol):
    """Interface for every task the scheduler can fire.

    Contract:
        - ``task_type``: unique key registered in TaskRegistry.
        - ``description``: human-readable label for logs and the CLI.
        - ``select_jobs()``: read-only query for the run's job payloads.
        - ``run_job()``: processes ONE job in its own unit of work and
          returns SUCCEEDED or NOOP.  Failures propagate as exceptions.

    Non-goals:
        - Does NOT retry; the dispatcher does.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def select_jobs(
        self,
        session: Session,
        as_of: datetime,
    ) -> tuple[JobPayload, ...]:
        """Return the payloads to dispatch for a run at ``as_of``."""
        ...

    def run_job(
        self,
        payload: JobPayload,
        as_of: datetime,
        deadline: Deadline,
    ) -> JobOutcome:
        """Execute one job attempt.

        Must check ``deadline`` before each write and before commit.
        """
        ...


class TaskRegistry:
    """Registry mapping task_type strings to ScheduledTask implementations."""

    def __init__(self) -> None:
        self._tasks: dict[str, ScheduledTask] = {}

    def register(self, task: ScheduledTask) -> None:
        """
        Raises:
            ValueError: If a task with the same task_type is already registered.
        """
        if task.task_type in self._tasks:
            raise ValueError(
                f"Task type '{task.task_type}' is already registered"
            )
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> ScheduledTask:
        """
        Raises:
            TaskNotRegisteredError: If no task is registered for ``task_type``.
        """
        try:
            return self._tasks[task_type]
        except KeyError:
            raise TaskNotRegisteredError(task_type, self.list_tasks()) from None

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks.keys()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
