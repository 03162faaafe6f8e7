"""
Weighted-average cost arithmetic.

Every receipt path goes through next_weighted_average(); nothing else in
the codebase recomputes an average cost.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Tuple

from ..quantities import ZERO, quantize_qty, to_decimal


def next_weighted_average(
    current_qty,
    current_cost,
    added_qty,
    added_cost,
) -> Tuple[Decimal, Decimal]:
    """
    Return (new_qty, new_cost) after receiving added_qty at added_cost.

        new_qty  = current_qty + added_qty
        new_cost = (current_qty * current_cost + added_qty * added_cost) / new_qty

    When new_qty is zero the purchase cost becomes the new average, so an
    empty item never divides by zero.
    """
    current_qty = to_decimal(current_qty, field="current_qty")
    current_cost = to_decimal(current_cost, field="current_cost")
    added_qty = to_decimal(added_qty, field="added_qty")
    added_cost = to_decimal(added_cost, field="added_cost")

    total_current_value = current_qty * current_cost
    total_purchase_value = added_qty * added_cost
    new_qty = current_qty + added_qty

    if new_qty > ZERO:
        new_cost = (total_current_value + total_purchase_value) / new_qty
    else:
        new_cost = added_cost

    return quantize_qty(new_qty), quantize_qty(new_cost)


def stock_value(quantity, cost_per_unit) -> Decimal:
    return to_decimal(quantity) * to_decimal(cost_per_unit)
