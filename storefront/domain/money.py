# storefront/domain/money.py
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value) -> Decimal:
    """Round a monetary amount to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
