"""Recipe costing for products.

Synopsis:
Convert each recipe quantity into the inventory item's stock unit, multiply
by the item's weighted-average ``cost_per_unit`` and sum the lines.

Glossary:
- Recipe unit: unit on the ProductIngredient line (e.g. gram).
- Stock unit: the inventory item's primary unit, the one ``cost_per_unit``
  is priced in (e.g. kilogram).

When a recipe unit cannot be converted the line falls back to the raw
quantity and is flagged ``conversion_failed``. That can overstate or
understate the cost, so it is always logged as a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from ..errors import ConversionNotFoundError, ItemNotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, Product, ProductIngredient, Unit
from ..quantities import RATIO_PLACES, ZERO, decimal_str, quantize_money, to_decimal
from ..time_utils import utcnow
from . import audit_service
from .audit_service import Actor
from .conversion_service import convert_quantity
from .unit_service import UnitCatalog

logger = logging.getLogger(__name__)


@dataclass
class IngredientCost:
    inventory_item_id: int
    item_name: str
    quantity: Decimal
    unit_id: Optional[int]
    converted_quantity: Decimal
    stock_unit_id: int
    cost_per_unit: Decimal
    line_cost: Decimal
    conversion_used: bool = False
    conversion_failed: bool = False

    def to_dict(self) -> dict:
        return {
            "inventory_item_id": self.inventory_item_id,
            "item_name": self.item_name,
            "quantity": decimal_str(self.quantity),
            "unit_id": self.unit_id,
            "converted_quantity": decimal_str(self.converted_quantity),
            "stock_unit_id": self.stock_unit_id,
            "cost_per_unit": decimal_str(self.cost_per_unit),
            "line_cost": decimal_str(self.line_cost),
            "conversion_used": self.conversion_used,
            "conversion_failed": self.conversion_failed,
        }


@dataclass
class ProductCostBreakdown:
    product_id: int
    total_cost: Decimal
    ingredients: list = field(default_factory=list)
    skipped_ingredients: list = field(default_factory=list)

    @property
    def has_conversion_failures(self) -> bool:
        return any(line.conversion_failed for line in self.ingredients)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "total_cost": decimal_str(self.total_cost),
            "ingredients": [line.to_dict() for line in self.ingredients],
            "skipped_ingredients": self.skipped_ingredients,
            "has_conversion_failures": self.has_conversion_failures,
        }


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ItemNotFoundError("product", product_id)
    return product


def get_product(product_id: int) -> Product:
    return _get_product(product_id)


def list_products(*, active_only: bool = False) -> list[Product]:
    q = db.session.query(Product)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def _cost_line(ingredient: ProductIngredient, item: InventoryItem, catalog: UnitCatalog | None) -> IngredientCost:
    quantity = to_decimal(ingredient.quantity)
    cost_per_unit = to_decimal(item.cost_per_unit or 0)
    recipe_unit_id = ingredient.unit_id or item.primary_unit_id

    converted = quantity
    conversion_used = False
    conversion_failed = False
    if recipe_unit_id != item.primary_unit_id:
        try:
            converted = convert_quantity(quantity, recipe_unit_id, item.primary_unit_id, catalog=catalog)
            conversion_used = True
        except ConversionNotFoundError:
            logger.warning(
                "Failed to convert recipe quantity for costing: product_id=%s item_id=%s from=%s to=%s qty=%s",
                ingredient.product_id,
                item.id,
                recipe_unit_id,
                item.primary_unit_id,
                quantity,
            )
            conversion_failed = True

    return IngredientCost(
        inventory_item_id=item.id,
        item_name=item.name,
        quantity=quantity,
        unit_id=ingredient.unit_id,
        converted_quantity=converted,
        stock_unit_id=item.primary_unit_id,
        cost_per_unit=cost_per_unit,
        line_cost=converted * cost_per_unit,
        conversion_used=conversion_used,
        conversion_failed=conversion_failed,
    )


def calculate_product_cost(product_id: int, *, catalog: UnitCatalog | None = None) -> ProductCostBreakdown:
    """Sum the recipe at current weighted-average costs. Read-only."""
    product = _get_product(product_id)

    lines = []
    skipped = []
    for ingredient in product.ingredients:
        item = db.session.get(InventoryItem, ingredient.inventory_item_id)
        if item is None:
            logger.warning(
                "Product %s references missing inventory item %s; ingredient skipped",
                product_id, ingredient.inventory_item_id,
            )
            skipped.append(ingredient.inventory_item_id)
            continue
        lines.append(_cost_line(ingredient, item, catalog))

    total = sum((line.line_cost for line in lines), ZERO)
    return ProductCostBreakdown(
        product_id=product_id,
        total_cost=quantize_money(total),
        ingredients=lines,
        skipped_ingredients=skipped,
    )


def compute_margin(price, cost) -> Decimal:
    """(price - cost) / price as a ratio; 0 when there is no price."""
    price = to_decimal(price or 0)
    cost = to_decimal(cost or 0)
    if price <= ZERO:
        return ZERO
    return ((price - cost) / price).quantize(RATIO_PLACES)


def _apply_cost(product: Product, breakdown: ProductCostBreakdown) -> None:
    product.cost = breakdown.total_cost
    product.margin = compute_margin(product.price, breakdown.total_cost)
    product.cost_updated_at = utcnow()


def update_product_cost(product_id: int, *, catalog: UnitCatalog | None = None) -> ProductCostBreakdown:
    """Recompute the recipe cost and persist cost, margin and cost_updated_at."""
    breakdown = calculate_product_cost(product_id, catalog=catalog)
    product = _get_product(product_id)
    previous = product.cost
    _apply_cost(product, breakdown)
    db.session.commit()
    logger.info("Product %s cost %s -> %s (margin %s)", product_id, previous, product.cost, product.margin)
    return breakdown


def recalculate_products_using_item(item_id: int, *, catalog: UnitCatalog | None = None) -> int:
    """Refresh the cached cost of every product whose recipe uses the item."""
    product_ids = [
        pid for (pid,) in db.session.query(ProductIngredient.product_id)
        .filter(ProductIngredient.inventory_item_id == item_id)
        .distinct()
        .all()
    ]
    for pid in product_ids:
        product = _get_product(pid)
        _apply_cost(product, calculate_product_cost(pid, catalog=catalog))
    if product_ids:
        db.session.commit()
        logger.info("Refreshed cost of %d product(s) using inventory item %s", len(product_ids), item_id)
    return len(product_ids)


def recalculate_all_products(*, catalog: UnitCatalog | None = None) -> int:
    products = list_products()
    for product in products:
        _apply_cost(product, calculate_product_cost(product.id, catalog=catalog))
    db.session.commit()
    return len(products)


def _build_ingredients(ingredients: Iterable[dict]) -> list[ProductIngredient]:
    rows = []
    for raw in ingredients:
        if not isinstance(raw, dict):
            raise ValidationError("each ingredient must be an object")
        item_id = raw.get("inventory_item_id")
        if item_id is None:
            raise ValidationError("inventory_item_id is required")
        if db.session.get(InventoryItem, item_id) is None:
            raise ItemNotFoundError("inventory item", item_id)
        unit_id = raw.get("unit_id")
        if unit_id is not None and db.session.get(Unit, unit_id) is None:
            raise ItemNotFoundError("unit", unit_id)
        try:
            quantity = to_decimal(raw.get("quantity"), field="quantity")
        except ValueError as e:
            raise ValidationError(str(e))
        if quantity <= ZERO:
            raise ValidationError("quantity must be greater than 0")
        rows.append(ProductIngredient(inventory_item_id=item_id, quantity=quantity, unit_id=unit_id))
    return rows


def create_product(
    *,
    name: str,
    price=0,
    sku: str | None = None,
    description: str | None = None,
    unit_id: int | None = None,
    ingredients: Iterable[dict] = (),
    actor: Actor | None = None,
    catalog: UnitCatalog | None = None,
) -> Product:
    if not name or not name.strip():
        raise ValidationError("name is required")
    try:
        price_value = to_decimal(price, field="price")
    except ValueError as e:
        raise ValidationError(str(e))
    if price_value < ZERO:
        raise ValidationError("price must not be negative")
    if sku and db.session.query(Product).filter_by(sku=sku).first():
        raise ValidationError(f"sku {sku!r} already exists")

    product = Product(
        name=name.strip(),
        description=description,
        sku=sku,
        price=price_value,
        unit_id=unit_id,
        is_active=True,
    )
    product.ingredients = _build_ingredients(ingredients)
    db.session.add(product)
    db.session.flush()
    _apply_cost(product, calculate_product_cost(product.id, catalog=catalog))
    db.session.commit()

    audit_service.try_record_action(
        action="CREATE",
        resource="products",
        resource_id=product.id,
        actor=actor,
        new_values=product.to_dict(include_ingredients=True),
    )
    return product


def set_ingredients(
    product_id: int,
    ingredients: Iterable[dict],
    *,
    actor: Actor | None = None,
    catalog: UnitCatalog | None = None,
) -> ProductCostBreakdown:
    """Replace the recipe and refresh the cost cache in one commit."""
    product = _get_product(product_id)
    old_values = product.to_dict(include_ingredients=True)

    product.ingredients = _build_ingredients(ingredients)
    db.session.flush()
    breakdown = calculate_product_cost(product_id, catalog=catalog)
    _apply_cost(product, breakdown)
    db.session.commit()

    audit_service.try_record_action(
        action="UPDATE",
        resource="products",
        resource_id=product_id,
        actor=actor,
        details={"operation": "set_ingredients"},
        old_values=old_values,
        new_values=product.to_dict(include_ingredients=True),
    )
    return breakdown
