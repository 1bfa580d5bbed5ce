"""
Monetary amount helpers

Amounts are plain Decimal values in a single currency. Float is never used:
inputs are converted through str() and display values are rounded to two
fraction digits with ROUND_HALF_UP.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number or numeric string to Decimal.

    Raises:
        ValueError: if the value is None, not numeric, NaN or infinite
    """
    if isinstance(value, Decimal):
        result = value
    elif value is None or isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def quantize(amount: Decimal) -> Decimal:
    """Round to two fraction digits"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """Two-fraction-digit string used in API responses"""
    return str(quantize(amount))


def split_debit_credit(amount: Decimal):
    """
    Split a signed amount into (debit, credit).

    Positive amounts increase what the entity owes and show as debit;
    negative amounts show their magnitude as credit.
    """
    if amount > 0:
        return amount, ZERO
    if amount < 0:
        return ZERO, -amount
    return ZERO, ZERO
