"""
Module: penny_kernel.db.types
Responsibility: Annotated money column type plus the one sanctioned way to
    turn an incoming amount into a fixed-point ``Decimal``.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, repositories/ and selectors/.

Invariants enforced:
    - Amounts are ``Decimal`` with MONEY_DECIMAL_PLACES places.  Floats are
      rejected outright: a float has already lost the exact minor units.
    - ``round_money`` is the ONLY rounding function for money.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric

from penny_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

# 18 digits, 2 minor-unit places
Money = Annotated[Decimal, Numeric(18, MONEY_DECIMAL_PLACES)]

ZERO = Decimal("0.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Quantize a Decimal to ``decimal_places`` places."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce a repository-boundary amount into a fixed-point Decimal.

    Accepts Decimal, int, or a numeric string.  Rejects floats, bools,
    NaN/Infinity and values with more precision than minor units.

    Raises:
        InvalidAmountError: If the value cannot be represented exactly.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "floating-point amounts are not accepted")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmountError(value, "not a number") from None
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")

    if not amount.is_finite():
        raise InvalidAmountError(value, "amount must be finite")

    rounded = round_money(amount)
    if rounded != amount:
        raise InvalidAmountError(
            value, f"more than {MONEY_DECIMAL_PLACES} decimal places"
        )
    return rounded
