"""Fixed-point money helpers. All amounts are ``Decimal``; never floats."""
from decimal import Decimal, ROUND_HALF_EVEN

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # go through str so 0.1 stays 0.1 instead of its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def to_money(value) -> Decimal:
    """Round to cents using banker's rounding (12.005 -> 12.00, 12.015 -> 12.02)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return amount * to_decimal(percent) / HUNDRED


def clamp(amount: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(amount, upper))
