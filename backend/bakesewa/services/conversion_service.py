"""
Quantity conversion between units.

Resolution order (first match wins):
1. same unit            -> quantity unchanged, no lookup at all
2. direct override row  -> quantity * factor
3. reverse override row -> quantity / factor
4. shared base unit     -> quantity * from.factor / to.factor (same type only)
5. otherwise            -> ConversionNotFoundError

Override rows beat the base-unit path because they can encode
ingredient-specific factors (a cup of flour in grams, say) that the
generic same-type arithmetic cannot know about.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..errors import ConversionNotFoundError
from ..quantities import ZERO, decimal_str, to_decimal
from .unit_service import UnitCatalog, get_unit_catalog


def convert_quantity(
    quantity,
    from_unit_id: int,
    to_unit_id: int,
    *,
    catalog: UnitCatalog | None = None,
) -> Decimal:
    quantity = to_decimal(quantity, field="quantity")

    if from_unit_id == to_unit_id:
        return quantity

    catalog = catalog or get_unit_catalog()

    direct = catalog.find_conversion(from_unit_id, to_unit_id)
    if direct is not None and direct.conversion_factor > ZERO:
        return quantity * direct.conversion_factor

    reverse = catalog.find_conversion(to_unit_id, from_unit_id)
    if reverse is not None and reverse.conversion_factor > ZERO:
        return quantity / reverse.conversion_factor

    from_unit = catalog.get_unit(from_unit_id)
    to_unit = catalog.get_unit(to_unit_id)
    if (
        from_unit is not None
        and to_unit is not None
        and from_unit.measurement_type == to_unit.measurement_type
        and from_unit.base_unit_name
        and from_unit.base_unit_name == to_unit.base_unit_name
        and to_unit.conversion_factor > ZERO
    ):
        base_quantity = quantity * from_unit.conversion_factor
        return base_quantity / to_unit.conversion_factor

    raise ConversionNotFoundError(from_unit_id, to_unit_id)


def can_convert(from_unit_id: int, to_unit_id: int, *, catalog: UnitCatalog | None = None) -> bool:
    try:
        convert_quantity(1, from_unit_id, to_unit_id, catalog=catalog)
    except ConversionNotFoundError:
        return False
    return True


# Dual-unit helpers. conversion_rate is primary units per one secondary unit.

def secondary_to_primary(secondary_quantity, conversion_rate) -> Decimal:
    return to_decimal(secondary_quantity) * to_decimal(conversion_rate)


def primary_to_secondary(primary_quantity, conversion_rate) -> Decimal:
    rate = to_decimal(conversion_rate)
    if rate <= ZERO:
        raise ValueError("conversion_rate must be greater than 0")
    return to_decimal(primary_quantity) / rate


def dual_unit_stock(item) -> dict:
    """Current stock of an item expressed in its primary and secondary units."""
    primary = to_decimal(item.current_stock or 0)
    secondary: Optional[Decimal] = None
    if item.secondary_unit_id is not None and item.conversion_rate:
        secondary = primary_to_secondary(primary, item.conversion_rate)
    return {
        "primary_unit_id": item.primary_unit_id,
        "primary_stock": decimal_str(primary),
        "secondary_unit_id": item.secondary_unit_id,
        "secondary_stock": decimal_str(secondary),
    }


def unit_display(primary_quantity, primary_unit: str, secondary_quantity=None, secondary_unit: str | None = None) -> str:
    display = f"{decimal_str(to_decimal(primary_quantity))} {primary_unit}"
    if secondary_quantity is not None and secondary_unit:
        display += f" ({decimal_str(to_decimal(secondary_quantity))} {secondary_unit})"
    return display
