"""SqlAccountRepository -- atomic balance deltas on ``accounts``."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from penny_kernel.exceptions import AccountNotFoundError
from penny_kernel.models.account import Account


class SqlAccountRepository:
    def __init__(self, session: Session):
        self.session = session

    def increment_balance(self, account_id: UUID, delta: Decimal) -> None:
        """``UPDATE accounts SET balance = balance + :delta``.

        The delta is applied relative to whatever the row holds at write
        time, so concurrent writers compose instead of overwriting.
        """
        result = self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=Account.balance + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AccountNotFoundError(account_id)
