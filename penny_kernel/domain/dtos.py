"""
Frozen value objects exchanged between repositories, the recurrence domain,
services and the batch layer.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from penny_kernel.domain.types import RecurringInterval, TransactionType


def signed_amount(txn_type: TransactionType, amount: Decimal) -> Decimal:
    """INCOME adds to the balance, EXPENSE subtracts."""
    if txn_type == TransactionType.INCOME:
        return amount
    return -amount


@dataclass(frozen=True)
class RecurringTemplate:
    """Read-only snapshot of a transaction flagged recurring.

    Only ``last_processed`` and ``next_due_date`` ever change in storage,
    and only through the catch-up checkpoint update.
    """

    template_id: UUID
    account_id: UUID
    user_id: UUID
    type: TransactionType
    amount: Decimal
    category: str
    description: str | None
    interval: RecurringInterval
    original_date: datetime
    last_processed: datetime | None = None
    next_due_date: datetime | None = None


@dataclass(frozen=True)
class MaterializedOccurrence:
    """One concrete transaction derived from a template for a missed date."""

    template_id: UUID
    account_id: UUID
    user_id: UUID
    type: TransactionType
    amount: Decimal
    category: str
    description: str
    date: datetime
    occurrence_id: UUID = field(default_factory=uuid4)

    @property
    def signed_amount(self) -> Decimal:
        return signed_amount(self.type, self.amount)


@dataclass(frozen=True)
class CatchUpResult:
    """Outcome of one catch-up pass over a template.

    ``created_count == 0`` means nothing was due and nothing was written.
    """

    template_id: UUID
    user_id: UUID
    created_count: int
    balance_delta: Decimal
    new_next_due: datetime | None
    occurrences: tuple[MaterializedOccurrence, ...] = ()

    @property
    def applied(self) -> bool:
        return self.created_count > 0


@dataclass(frozen=True)
class TemplatePreview:
    """Dry-run view of what a catch-up would create for one template.

    ``error`` is set when the template cannot be enumerated (bad interval,
    backlog over the bound); the counts are zero then.
    """

    template_id: UUID
    description: str | None
    interval: RecurringInterval | str
    original_date: datetime
    last_processed: datetime | None
    next_due_date: datetime | None
    missed_count: int
    first_dates: tuple[datetime, ...]
    amount: Decimal
    error: str | None = None


@dataclass(frozen=True)
class CatchUpPreview:
    total_recurring: int
    templates: tuple[TemplatePreview, ...]

    @property
    def total_missed(self) -> int:
        return sum(t.missed_count for t in self.templates)

    @property
    def needing_catch_up(self) -> int:
        return sum(1 for t in self.templates if t.missed_count > 0)

    @property
    def with_errors(self) -> int:
        return sum(1 for t in self.templates if t.error is not None)


@dataclass(frozen=True)
class BudgetAlert:
    """A budget crossed its alert threshold for the current month."""

    budget_id: UUID
    user_id: UUID
    account_id: UUID
    account_name: str
    budget_amount: Decimal
    total_expenses: Decimal
    percentage_used: Decimal
    alerted_at: datetime


@dataclass(frozen=True)
class DueTemplate:
    """A template selected for catch-up, with the user key used for throttling."""

    template_id: UUID
    user_id: UUID
