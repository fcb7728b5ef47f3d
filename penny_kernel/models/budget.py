"""
Module: penny_kernel.models.budget
Responsibility: Monthly spending budget per user, plus the stamp that keeps
    budget alerts to one per calendar month.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Numeric
from sqlalchemy.orm import Mapped, mapped_column

from penny_kernel.db.base import TrackedBase, UUIDString


class Budget(TrackedBase):
    __tablename__ = "budgets"

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    last_alert_sent: Mapped[datetime | None] = mapped_column(nullable=True)
