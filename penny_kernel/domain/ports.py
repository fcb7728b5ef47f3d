"""
Repository and collaborator protocols consumed by the catch-up services.

The services depend on these shapes only; ``penny_kernel.repositories``
provides the SQLAlchemy implementations and tests may pass in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol, Sequence
from uuid import UUID

from penny_kernel.domain.dtos import (
    BudgetAlert,
    MaterializedOccurrence,
    RecurringTemplate,
)


class TransactionRepository(Protocol):
    """Reads templates, writes occurrences and checkpoints.

    All calls run inside the caller's unit of work; nothing commits here.
    """

    def get_template(
        self, template_id: UUID, for_update: bool = False,
    ) -> RecurringTemplate | None:
        """Return the template, or None if missing or no longer recurring."""
        ...

    def add_occurrence(self, occurrence: MaterializedOccurrence) -> None:
        ...

    def advance_checkpoint(
        self,
        template_id: UUID,
        expected_last_processed: datetime | None,
        last_processed: datetime,
        next_due_date: datetime,
    ) -> None:
        """Move the checkpoint iff it still equals ``expected_last_processed``.

        Raises:
            CheckpointConflictError: another runner moved it first.
        """
        ...


class AccountRepository(Protocol):
    def increment_balance(self, account_id: UUID, delta: Decimal) -> None:
        """Atomically add ``delta`` to the stored balance.

        Raises:
            AccountNotFoundError: no such account.
        """
        ...


class UnitOfWork(Protocol):
    """Atomic scope: commit on clean exit, roll back on exception."""

    transactions: TransactionRepository
    accounts: AccountRepository

    def __enter__(self) -> "UnitOfWork": ...

    def __exit__(self, exc_type, exc, tb) -> None: ...


class OccurrenceNotifier(Protocol):
    """Receives committed occurrences and alerts for user notification."""

    def occurrences_materialized(
        self, user_id: UUID, occurrences: Sequence[MaterializedOccurrence],
    ) -> None: ...

    def budget_alert(self, alert: BudgetAlert) -> None: ...
