"""Kernel services.  All of them flush only; the caller commits."""

from penny_kernel.services.budget_alert_service import BudgetAlertService
from penny_kernel.services.catchup_service import CatchUpService
from penny_kernel.services.notifier import LoggingNotifier
from penny_kernel.services.transaction_service import TransactionService

__all__ = [
    "BudgetAlertService",
    "CatchUpService",
    "LoggingNotifier",
    "TransactionService",
]
