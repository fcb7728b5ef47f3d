"""SQLAlchemy implementations of the kernel repository protocols."""

from penny_kernel.repositories.account_repository import SqlAccountRepository
from penny_kernel.repositories.transaction_repository import (
    SqlTransactionRepository,
    template_from_row,
)
from penny_kernel.repositories.unit_of_work import SqlUnitOfWork

__all__ = [
    "SqlAccountRepository",
    "SqlTransactionRepository",
    "SqlUnitOfWork",
    "template_from_row",
]
