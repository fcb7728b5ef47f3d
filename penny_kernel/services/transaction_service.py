"""
TransactionService -- records a user-entered transaction.

Contract:
    ``create_transaction(...)`` inserts one ``transactions`` row in the
    caller's session and applies its signed amount to the owning account
    with an atomic increment.  A recurring transaction becomes a template:
    ``next_recurring_date`` is set to the first occurrence after its date
    and ``last_processed`` stays null until the first catch-up.

Failure modes:
    - InvalidAmountError for floats, non-positive or over-precise amounts.
    - InvalidIntervalError when ``is_recurring`` is set without a valid
      interval.
    - AccountNotFoundError when the account is missing or belongs to a
      different user.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from penny_kernel.db.types import to_money
from penny_kernel.domain.dtos import signed_amount
from penny_kernel.domain.recurrence import coerce_interval, next_occurrence
from penny_kernel.domain.types import RecurringInterval, TransactionStatus, TransactionType
from penny_kernel.exceptions import AccountNotFoundError, InvalidAmountError, InvalidIntervalError
from penny_kernel.logging_config import get_logger
from penny_kernel.models.account import Account
from penny_kernel.models.transaction import Transaction
from penny_kernel.repositories.account_repository import SqlAccountRepository
from penny_kernel.services.base import BaseService

logger = get_logger("services.transactions")


class TransactionService(BaseService):
    def create_transaction(
        self,
        *,
        user_id: UUID,
        account_id: UUID,
        type: TransactionType | str,
        amount: Decimal | int | str,
        category: str,
        date: datetime,
        description: str | None = None,
        is_recurring: bool = False,
        recurring_interval: RecurringInterval | str | None = None,
    ) -> Transaction:
        txn_type = TransactionType(type)
        money = to_money(amount)
        if money <= 0:
            raise InvalidAmountError(amount, "amount must be positive")

        interval: RecurringInterval | None = None
        if is_recurring:
            if recurring_interval is None:
                raise InvalidIntervalError(recurring_interval)
            interval = coerce_interval(recurring_interval)

        account = self.session.get(Account, account_id)
        if account is None or account.user_id != user_id:
            raise AccountNotFoundError(account_id)

        transaction = Transaction(
            account_id=account_id,
            user_id=user_id,
            type=txn_type.value,
            amount=money,
            category=category,
            description=description,
            date=date,
            status=TransactionStatus.COMPLETED.value,
            is_recurring=is_recurring,
            recurring_interval=interval.value if interval else None,
            next_recurring_date=next_occurrence(date, interval) if interval else None,
        )
        self.session.add(transaction)
        self.session.flush()

        SqlAccountRepository(self.session).increment_balance(
            account_id, signed_amount(txn_type, money),
        )

        logger.info(
            "transaction_created",
            extra={
                "transaction_id": str(transaction.id),
                "account_id": str(account_id),
                "type": txn_type.value,
                "amount": money,
                "is_recurring": is_recurring,
                "next_recurring_date": transaction.next_recurring_date,
            },
        )
        return transaction
