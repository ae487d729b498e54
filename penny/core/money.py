"""
Money - cent-precision amounts.

All balances, prices and fees are Decimal values quantized to 0.01 and
serialized as fixed 2-decimal strings.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

AmountLike = Union[Decimal, int, float, str]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a cent-quantized Decimal.

    Floats go through str() first so 0.1 becomes 0.10, not 0.1000000000000000055.

    Raises:
        ValueError: If value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not an amount: {value!r}") from None
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: AmountLike) -> str:
    """Fixed 2-decimal string form, e.g. '0.05'."""
    return f"{to_amount(value):.2f}"
