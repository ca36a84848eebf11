"""Decimal helpers for pool quantities.

All quantities leaving the core are rounded to 8 fractional digits, and curve
math runs under a high-precision context to keep logarithm and exponential
rounding far below that resolution.
"""

from __future__ import annotations

import decimal
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from liquidity.constants import QUANTITY_DECIMALS, SMALLEST_UNITS_PER_COIN
from liquidity.errors import ValidationError

# 40 significant digits: reserves are small, but ln/exp need headroom
DECIMAL_CURVE_CONTEXT = decimal.Context(prec=40)

QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMALS)  # Decimal("0.00000001")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a collaborator-supplied quantity to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"Quantity must be numeric, got bool: {value}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as err:
            raise ValidationError(f"Quantity is not a number: {value!r}") from err
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValidationError(f"Quantity must be numeric, got {type(value).__name__}")

    if not result.is_finite():
        raise ValidationError(f"Quantity must be finite: {value!r}")
    return result


def round8(value: Decimal | int | float | str) -> Decimal:
    """Round a quantity to 8 fractional digits (half up)."""
    return to_decimal(value).quantize(QUANTUM, rounding=ROUND_HALF_UP)


def to_smallest_unit(coins: Decimal) -> int:
    """Convert a coin quantity to whole smallest units, rounding down.

    Rounding down never pays out more than the quote.
    """
    return int((coins * SMALLEST_UNITS_PER_COIN).to_integral_value(rounding=ROUND_DOWN))


__all__ = [
    "DECIMAL_CURVE_CONTEXT",
    "QUANTUM",
    "to_decimal",
    "round8",
    "to_smallest_unit",
]
