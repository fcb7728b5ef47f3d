"""
Module: penny_kernel.models.account
Responsibility: ORM persistence for user accounts and their running balance.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``balance`` equals the signed sum of the account's transactions
      whenever no catch-up is in flight.  Writers change it only through
      ``AccountRepository.increment_balance`` (an atomic SQL delta), never
      by assigning a value computed from a possibly stale read.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from penny_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"


class Account(TrackedBase):
    """A user's money account."""

    __tablename__ = "accounts"

    __table_args__ = (
        Index("ix_accounts_user_default", "user_id", "is_default"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[str] = mapped_column(
        String(20), default=AccountType.CURRENT.value, nullable=False,
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0.00"), nullable=False,
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.name} balance={self.balance}>"
