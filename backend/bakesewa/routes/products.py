# backend/bakesewa/routes/products.py
"""
Product and recipe-cost routes.

Product.cost and Product.margin are a cache: GET /cost computes a fresh
breakdown without writing, POST /cost/refresh persists it.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, with_actor
from ..errors import ValidationError
from ..models import Product
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "sku", "price", "unit_id"},
    required_on_create={"name"},
)


def _ingredients_from(payload: dict) -> list:
    ingredients = payload.get("ingredients", [])
    if not isinstance(ingredients, list):
        raise ValidationError("ingredients must be a list")
    return ingredients


@products_bp.get("")
def list_products_route():
    from ..services.product_cost_service import list_products

    active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
    return {"items": [p.to_dict() for p in list_products(active_only=active_only)]}


@products_bp.post("")
@with_actor
@handle_service_errors
def create_product_route():
    """
    Create a product, optionally with its recipe.

    Body: {"name": ..., "price": "4.50", "ingredients": [
        {"inventory_item_id": 1, "quantity": "500", "unit_id": 2}
    ]}
    """
    payload = dict(request.get_json(silent=True) or {})
    ingredients = _ingredients_from(payload)
    payload.pop("ingredients", None)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    from ..services.product_cost_service import create_product

    product = create_product(ingredients=ingredients, actor=g.actor, **patch)
    return product.to_dict(include_ingredients=True), 201


@products_bp.get("/<int:product_id>")
@handle_service_errors
def get_product_route(product_id: int):
    from ..services.product_cost_service import get_product

    return get_product(product_id).to_dict(include_ingredients=True)


@products_bp.get("/<int:product_id>/cost")
@handle_service_errors
def product_cost_route(product_id: int):
    from ..services.product_cost_service import calculate_product_cost

    return calculate_product_cost(product_id).to_dict()


@products_bp.post("/<int:product_id>/cost/refresh")
@with_actor
@handle_service_errors
def refresh_product_cost_route(product_id: int):
    from ..services.product_cost_service import get_product, update_product_cost

    breakdown = update_product_cost(product_id)
    return {
        "product": get_product(product_id).to_dict(),
        "breakdown": breakdown.to_dict(),
    }


@products_bp.put("/<int:product_id>/ingredients")
@with_actor
@handle_service_errors
def set_ingredients_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict) or "ingredients" not in payload:
        raise ValidationError("Missing required fields: ingredients")

    from ..services.product_cost_service import get_product, set_ingredients

    breakdown = set_ingredients(product_id, _ingredients_from(payload), actor=g.actor)
    return {
        "product": get_product(product_id).to_dict(include_ingredients=True),
        "breakdown": breakdown.to_dict(),
    }
