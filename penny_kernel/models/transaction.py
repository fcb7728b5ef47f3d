"""
Module: penny_kernel.models.transaction
Responsibility: ORM persistence for transactions -- plain ones, recurring
    templates (``is_recurring = true``) and the occurrences materialized
    from templates (``source_template_id`` set).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A template's type, amount, category, description and date are never
      written by the scheduler; only ``last_processed`` and
      ``next_recurring_date`` move, through a conditional checkpoint update.
    - Materialized occurrences are never recurring and are never updated
      after insert by the scheduler.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from penny_kernel.db.base import TrackedBase, UUIDString


class Transaction(TrackedBase):
    """A single income or expense line on an account."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_user", "user_id"),
        Index("ix_transactions_recurring_due", "is_recurring", "next_recurring_date"),
        Index("ix_transactions_source_template", "source_template_id"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    date: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="COMPLETED", nullable=False)

    # Recurring template fields
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_interval: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_processed: Mapped[datetime | None] = mapped_column(nullable=True)
    next_recurring_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Set on occurrences materialized by the catch-up
    source_template_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.type} {self.amount} on {self.date}>"
