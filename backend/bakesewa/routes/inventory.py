# backend/bakesewa/routes/inventory.py
"""
Inventory valuation routes.

Quantities and costs are accepted as JSON numbers or strings and returned
as decimal strings. Receipts may be given in any unit convertible to the
item's primary unit (unit_id); the response carries the stock summary
after the change.

Time semantics:
- purchase_date accepts ISO-8601 with Z/offsets; stored as UTC-naive.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, with_actor
from ..models import InventoryItem
from ..validation import (
    ModelValidationPolicy,
    decimal_field,
    enforce_rules_inventory_adjust,
    enforce_rules_inventory_consume,
    enforce_rules_inventory_receive,
    optional_date,
    optional_datetime,
    optional_int,
    reject_unknown_fields,
    require_fields,
    validate_payload,
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "code",
        "name",
        "opening_stock",
        "cost_per_unit",
        "min_level",
        "primary_unit_id",
        "secondary_unit_id",
        "conversion_rate",
        "supplier",
        "category_id",
        "is_ingredient",
        "notes",
    },
    required_on_create={"name", "primary_unit_id"},
)

RECEIVE_FIELDS = {
    "quantity", "unit_cost", "unit_id", "purchase_date", "reference", "batch_number", "expiry_date", "supplier",
}
CONSUME_FIELDS = {"quantity", "reason", "reference"}
ADJUST_FIELDS = {"counted_quantity", "reason"}


@inventory_bp.get("")
def list_inventory_route():
    """
    Query params:
    - low_stock: "1"/"true" to return only items at or below min_level
    """
    from ..services.inventory_service import list_items

    low_stock_only = request.args.get("low_stock", "").lower() in ("1", "true", "yes")
    return {"items": [i.to_dict() for i in list_items(low_stock_only=low_stock_only)]}


@inventory_bp.get("/low-stock")
def low_stock_route():
    from ..services.inventory_service import list_low_stock_items

    return {"items": [i.to_dict() for i in list_low_stock_items()]}


@inventory_bp.post("")
@with_actor
@handle_service_errors
def create_inventory_item_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_ITEM_POLICY, partial=False)

    from ..services.inventory_service import create_item

    item = create_item(actor=g.actor, **patch)
    return item.to_dict(), 201


@inventory_bp.get("/<int:item_id>")
@handle_service_errors
def get_inventory_item_route(item_id: int):
    from ..services.inventory_service import get_item, get_stock_summary

    item = get_item(item_id)
    return {"item": item.to_dict(), "summary": get_stock_summary(item_id)}


@inventory_bp.post("/<int:item_id>/receive")
@with_actor
@handle_service_errors
def receive_stock_route(item_id: int):
    """Receive purchased stock; updates the weighted-average cost."""
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "quantity", "unit_cost")
    reject_unknown_fields(payload, RECEIVE_FIELDS)

    patch = {
        "quantity": decimal_field(payload, "quantity"),
        "unit_cost": decimal_field(payload, "unit_cost"),
    }
    enforce_rules_inventory_receive(patch)

    from ..services.inventory_service import get_stock_summary, receive_stock

    tx = receive_stock(
        item_id,
        patch["quantity"],
        patch["unit_cost"],
        purchase_date=optional_datetime(payload, "purchase_date"),
        unit_id=optional_int(payload, "unit_id"),
        reference=payload.get("reference"),
        batch_number=payload.get("batch_number"),
        expiry_date=optional_date(payload, "expiry_date"),
        supplier=payload.get("supplier"),
        actor=g.actor,
    )
    return {"transaction": tx.to_dict(), "summary": get_stock_summary(item_id)}, 201


@inventory_bp.post("/<int:item_id>/consume")
@with_actor
@handle_service_errors
def consume_stock_route(item_id: int):
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "quantity")
    reject_unknown_fields(payload, CONSUME_FIELDS)

    patch = {"quantity": decimal_field(payload, "quantity")}
    enforce_rules_inventory_consume(patch)

    from ..services.inventory_service import consume_stock, get_stock_summary

    tx = consume_stock(
        item_id,
        patch["quantity"],
        payload.get("reason"),
        reference=payload.get("reference"),
        actor=g.actor,
    )
    return {"transaction": tx.to_dict(), "summary": get_stock_summary(item_id)}, 201


@inventory_bp.post("/<int:item_id>/adjust")
@with_actor
@handle_service_errors
def adjust_stock_route(item_id: int):
    """Set stock to a physically counted quantity. Cost is unchanged."""
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "counted_quantity")
    reject_unknown_fields(payload, ADJUST_FIELDS)

    patch = {"counted_quantity": decimal_field(payload, "counted_quantity")}
    enforce_rules_inventory_adjust(patch)

    from ..services.inventory_service import adjust_stock, get_stock_summary

    tx = adjust_stock(item_id, patch["counted_quantity"], payload.get("reason"), actor=g.actor)
    return {
        "transaction": tx.to_dict() if tx else None,
        "summary": get_stock_summary(item_id),
    }, 201 if tx else 200


@inventory_bp.get("/<int:item_id>/transactions")
@handle_service_errors
def list_transactions_route(item_id: int):
    from ..services.inventory_service import list_transactions

    limit = request.args.get("limit", default=200, type=int)
    if limit <= 0:
        return {"error": "limit must be positive"}, 400
    return {"items": [t.to_dict() for t in list_transactions(item_id, limit=limit)]}
