"""
Typed exception hierarchy for the penny tracker.

Every exception carries a class-level ``code`` (machine-readable) and keeps
its context as attributes, so the structured log formatter and the batch
run ledger can record them without parsing messages.

Hierarchy::

    PennyError
    |
    +-- TemplateError
    |   +-- TemplateNotFoundError        (NotFound -- job becomes a no-op)
    |
    +-- BudgetError
    |   +-- BudgetNotFoundError          (NotFound -- job becomes a no-op)
    |
    +-- RetryableError                   (dispatcher retries with backoff)
    |   +-- StorageError
    |   |   +-- CheckpointConflictError
    |   |   +-- AccountNotFoundError
    |   +-- JobDeadlineExceededError
    |
    +-- ContractViolationError           (fatal, never retried)
    |   +-- InvalidIntervalError
    |   +-- InvalidAmountError
    |   +-- CatchUpBacklogError
    |
    +-- BatchError
        +-- TaskNotRegisteredError
        +-- RetryExhaustedError

The dispatcher treats ``RetryableError`` and any
``sqlalchemy.exc.SQLAlchemyError`` as transient.  Everything else that
escapes a job is fatal: it is recorded and logged, never silently dropped.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID


class PennyError(Exception):
    """Base exception for all penny errors."""

    code: str = "PENNY_ERROR"


# Not-found errors


class TemplateError(PennyError):
    """Base exception for recurring-template errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFoundError(TemplateError):
    """Template was deleted, or is no longer marked recurring."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: UUID, reason: str = "not found"):
        self.template_id = template_id
        self.reason = reason
        super().__init__(f"Recurring template {template_id}: {reason}")


class BudgetError(PennyError):
    """Base exception for budget errors."""

    code: str = "BUDGET_ERROR"


class BudgetNotFoundError(BudgetError):
    code: str = "BUDGET_NOT_FOUND"

    def __init__(self, budget_id: UUID):
        self.budget_id = budget_id
        super().__init__(f"Budget not found: {budget_id}")


# Transient errors


class RetryableError(PennyError):
    """Base exception for failures that are safe to retry from scratch."""

    code: str = "RETRYABLE_ERROR"


class StorageError(RetryableError):
    """The unit of work could not be persisted."""

    code: str = "STORAGE_FAILURE"


class CheckpointConflictError(StorageError):
    """Another runner advanced the template checkpoint first."""

    code: str = "CHECKPOINT_CONFLICT"

    def __init__(self, template_id: UUID, expected: datetime | None):
        self.template_id = template_id
        self.expected = expected
        super().__init__(
            f"Checkpoint of template {template_id} moved away from "
            f"{expected.isoformat() if expected else 'never processed'}"
        )


class AccountNotFoundError(StorageError):
    """A balance increment matched no account row."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: UUID):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class JobDeadlineExceededError(RetryableError):
    """A job attempt ran past its wall-clock budget."""

    code: str = "JOB_DEADLINE_EXCEEDED"

    def __init__(self, stage: str, budget_seconds: float):
        self.stage = stage
        self.budget_seconds = budget_seconds
        super().__init__(
            f"Job exceeded its {budget_seconds:g}s budget at stage '{stage}'"
        )


# Contract violations (fatal)


class ContractViolationError(PennyError):
    """Programming-contract violation: fail loudly, never retry."""

    code: str = "CONTRACT_VIOLATION"


class InvalidIntervalError(ContractViolationError):
    code: str = "INVALID_INTERVAL"

    def __init__(self, interval: object):
        self.interval = interval
        super().__init__(f"Invalid recurring interval: {interval!r}")


class InvalidAmountError(ContractViolationError):
    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid monetary amount {value!r}: {reason}")


class CatchUpBacklogError(ContractViolationError):
    """More missed occurrences than a single catch-up is allowed to create."""

    code: str = "CATCH_UP_BACKLOG_EXCEEDED"

    def __init__(self, template_id: UUID, limit: int):
        self.template_id = template_id
        self.limit = limit
        super().__init__(
            f"Template {template_id} has more than {limit} missed occurrences"
        )


# Batch errors


class BatchError(PennyError):
    """Base exception for scheduler and dispatch errors."""

    code: str = "BATCH_ERROR"


class TaskNotRegisteredError(BatchError):
    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str, available: tuple[str, ...] = ()):
        self.task_type = task_type
        self.available = available
        super().__init__(
            f"No task registered for type '{task_type}'. "
            f"Available: {list(available)}"
        )


class RetryExhaustedError(BatchError):
    """A job failed on every attempt the retry policy allowed."""

    code: str = "RETRY_EXHAUSTED"

    def __init__(
        self,
        task_type: str,
        subject_id: UUID,
        attempts: int,
        last_error: BaseException | None = None,
    ):
        self.task_type = task_type
        self.subject_id = subject_id
        self.attempts = attempts
        self.last_error_code = getattr(last_error, "code", None) or (
            type(last_error).__name__ if last_error is not None else None
        )
        super().__init__(
            f"{task_type} job for {subject_id} failed after {attempts} attempt(s)"
            + (f": {last_error}" if last_error is not None else "")
        )
