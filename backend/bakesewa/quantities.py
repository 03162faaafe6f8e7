"""
Decimal handling for stock quantities and costs.

Quantities and unit costs carry six places, money totals four. Every
service converts inputs with to_decimal() so floats never reach the
weighted-average arithmetic.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

QUANTITY_PLACES = Decimal("0.000001")
MONEY_PLACES = Decimal("0.0001")
RATIO_PLACES = Decimal("0.0001")

ZERO = Decimal("0")


def to_decimal(value: Any, *, field: str = "value") -> Decimal:
    """
    Convert user or database input to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than the
    binary expansion. Booleans are rejected even though they are ints.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"{field} must be a number")
        if not result.is_finite():
            raise ValueError(f"{field} must be a finite number")
        return result
    raise ValueError(f"{field} must be a number")


def quantize_qty(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """JSON form: plain notation, trailing zeros stripped."""
    if value is None:
        return None
    value = Decimal(value)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return format(value.normalize(), "f")
