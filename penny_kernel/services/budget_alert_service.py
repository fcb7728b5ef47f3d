"""
BudgetAlertService -- monthly budget threshold check.

Contract:
    ``evaluate(budget_id, now)`` sums the current calendar month's EXPENSE
    transactions on the user's default account.  When usage reaches the
    threshold and no alert has been sent this month it stamps
    ``last_alert_sent = now`` and returns a BudgetAlert; otherwise it
    returns None.  The stamp is flushed, never committed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from penny_kernel.db.types import ZERO, round_money
from penny_kernel.domain.dtos import BudgetAlert
from penny_kernel.domain.recurrence import align_to
from penny_kernel.domain.types import TransactionType
from penny_kernel.exceptions import BudgetNotFoundError
from penny_kernel.logging_config import get_logger
from penny_kernel.models.account import Account
from penny_kernel.models.budget import Budget
from penny_kernel.models.transaction import Transaction
from penny_kernel.services.base import BaseService

logger = get_logger("services.budget_alerts")

DEFAULT_THRESHOLD_PERCENT = Decimal("80")


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def is_new_month(last_alert: datetime | None, now: datetime) -> bool:
    if last_alert is None:
        return True
    last_alert = align_to(now, last_alert)
    return (last_alert.year, last_alert.month) != (now.year, now.month)


class BudgetAlertService(BaseService):
    def __init__(
        self,
        session: Session,
        threshold_percent: Decimal = DEFAULT_THRESHOLD_PERCENT,
    ):
        super().__init__(session)
        self.threshold_percent = threshold_percent

    def budget_subjects(self) -> tuple[tuple[UUID, UUID], ...]:
        """``(budget_id, user_id)`` for every budget, in a stable order."""
        rows = self.session.execute(
            select(Budget.id, Budget.user_id).order_by(Budget.user_id)
        ).all()
        return tuple((r.id, r.user_id) for r in rows)

    def monthly_expenses(self, user_id: UUID, account_id: UUID, now: datetime) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.user_id == user_id,
                Transaction.account_id == account_id,
                Transaction.type == TransactionType.EXPENSE.value,
                Transaction.date >= month_start(now),
            )
        ).scalar_one()
        return round_money(Decimal(str(total)))

    def evaluate(self, budget_id: UUID, now: datetime) -> BudgetAlert | None:
        """
        Raises:
            BudgetNotFoundError: the budget was deleted.
        """
        budget = self.session.get(Budget, budget_id)
        if budget is None:
            raise BudgetNotFoundError(budget_id)

        account = self.session.execute(
            select(Account).where(
                Account.user_id == budget.user_id,
                Account.is_default.is_(True),
            )
        ).scalars().first()
        if account is None:
            logger.debug(
                "budget_no_default_account",
                extra={"budget_id": str(budget_id), "user_id": str(budget.user_id)},
            )
            return None

        if budget.amount <= ZERO:
            return None

        expenses = self.monthly_expenses(budget.user_id, account.id, now)
        percentage = (expenses / budget.amount * 100).quantize(Decimal("0.1"))

        if percentage < self.threshold_percent:
            return None
        if not is_new_month(budget.last_alert_sent, now):
            logger.debug(
                "budget_alert_already_sent",
                extra={"budget_id": str(budget_id), "last_alert_sent": budget.last_alert_sent},
            )
            return None

        budget.last_alert_sent = now
        self.session.flush()

        alert = BudgetAlert(
            budget_id=budget.id,
            user_id=budget.user_id,
            account_id=account.id,
            account_name=account.name,
            budget_amount=budget.amount,
            total_expenses=expenses,
            percentage_used=percentage,
            alerted_at=now,
        )
        logger.info(
            "budget_threshold_reached",
            extra={
                "budget_id": str(budget.id),
                "percentage_used": percentage,
                "threshold_percent": self.threshold_percent,
            },
        )
        return alert
