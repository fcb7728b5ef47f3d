"""Scheduled task implementations and the registry they are wired into."""

from penny_batch.tasks.base import ScheduledTask, TaskRegistry
from penny_batch.tasks.budget_tasks import BUDGET_ALERT_TASK_TYPE, BudgetAlertTask
from penny_batch.tasks.recurring_tasks import CATCH_UP_TASK_TYPE, RecurringCatchUpTask

__all__ = [
    "BUDGET_ALERT_TASK_TYPE",
    "BudgetAlertTask",
    "CATCH_UP_TASK_TYPE",
    "RecurringCatchUpTask",
    "ScheduledTask",
    "TaskRegistry",
]
