"""ORM models. Importing this package registers every kernel table."""

from penny_kernel.models.account import Account, AccountType
from penny_kernel.models.budget import Budget
from penny_kernel.models.transaction import Transaction

__all__ = [
    "Account",
    "AccountType",
    "Budget",
    "Transaction",
]
