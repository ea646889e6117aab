"""
Money precision helpers.

Amounts are Decimals quantized to two places with ROUND_HALF_UP, which is how
the counter rounds rupee amounts. Never pass floats around for money; convert
through ``str`` first.
"""
import math
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")


def quantize(value) -> Decimal:
    """Converts ``value`` (Decimal, int, str or float) to a two-place Decimal."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def points_earned(total) -> int:
    """Loyalty points earned for an order: one point per whole currency unit."""
    return int(math.floor(quantize(total)))


def points_required(total) -> int:
    """Points needed to pay ``total`` with loyalty points (rounded up)."""
    return int(math.ceil(quantize(total)))
