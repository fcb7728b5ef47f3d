"""
SqlUnitOfWork -- one session, one database transaction.

Usage:
    with SqlUnitOfWork(session_factory) as uow:
        uow.transactions.add_occurrence(...)
        uow.accounts.increment_balance(...)
    # committed here; any exception inside the block rolls everything back
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from penny_kernel.logging_config import get_logger
from penny_kernel.repositories.account_repository import SqlAccountRepository
from penny_kernel.repositories.transaction_repository import SqlTransactionRepository

logger = get_logger("repositories.unit_of_work")


class SqlUnitOfWork:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self.session: Session | None = None

    def __enter__(self) -> SqlUnitOfWork:
        self.session = self._session_factory()
        self.transactions = SqlTransactionRepository(self.session)
        self.accounts = SqlAccountRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.session.commit()
            else:
                self.session.rollback()
                logger.debug(
                    "unit_of_work_rolled_back",
                    extra={"exc_type": exc_type.__name__},
                )
        finally:
            self.session.close()
