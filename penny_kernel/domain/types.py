"""Enumerations shared by the transaction models and the recurrence domain."""

from enum import Enum


class TransactionType(str, Enum):
    """Direction of a transaction relative to its account balance."""

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class RecurringInterval(str, Enum):
    """How often a recurring template produces an occurrence."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
