# backend/bakesewa/routes/units.py
"""
Unit catalog routes.

Reads come from the per-app UnitCatalog snapshot; writes go to the
database and refresh the snapshot before returning.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, with_actor
from ..errors import ValidationError
from ..models import Unit, UnitConversion
from ..quantities import decimal_str
from ..services import audit_service
from ..validation import (
    ModelValidationPolicy,
    decimal_field,
    reject_unknown_fields,
    require_fields,
    validate_payload,
)

units_bp = Blueprint("units", __name__, url_prefix="/api/units")

UNIT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "abbreviation", "measurement_type", "base_unit_name", "conversion_factor"},
    required_on_create={"name", "abbreviation", "measurement_type"},
)

CONVERSION_POLICY = ModelValidationPolicy(
    writable_fields={"from_unit_id", "to_unit_id", "conversion_factor", "formula"},
    required_on_create={"from_unit_id", "to_unit_id", "conversion_factor"},
)


@units_bp.get("")
def list_units_route():
    from ..services.unit_service import get_unit_catalog

    units = get_unit_catalog().get_units()
    measurement_type = request.args.get("type")
    if measurement_type:
        units = [u for u in units if u.measurement_type == measurement_type]
    return {"items": [u.to_dict() for u in units]}


@units_bp.post("")
@with_actor
@handle_service_errors
def create_unit_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Unit, payload=payload, policy=UNIT_POLICY, partial=False)

    from ..services.unit_service import create_unit

    unit = create_unit(**patch)
    audit_service.try_record_action(
        action="CREATE", resource="units", resource_id=unit.id, actor=g.actor, new_values=unit.to_dict(),
    )
    return unit.to_dict(), 201


@units_bp.get("/conversions")
def list_conversions_route():
    from ..services.unit_service import get_unit_catalog

    catalog = get_unit_catalog()
    unit_id = request.args.get("unit_id", type=int)
    conversions = catalog.available_conversions(unit_id) if unit_id else catalog.get_conversions()
    return {"items": [c.to_dict() for c in conversions]}


@units_bp.post("/conversions")
@with_actor
@handle_service_errors
def create_conversion_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=UnitConversion, payload=payload, policy=CONVERSION_POLICY, partial=False)

    from ..services.unit_service import create_conversion

    conversion = create_conversion(**patch)
    audit_service.try_record_action(
        action="CREATE",
        resource="unit_conversions",
        resource_id=conversion.id,
        actor=g.actor,
        new_values=conversion.to_dict(),
    )
    return conversion.to_dict(), 201


@units_bp.post("/convert")
@handle_service_errors
def convert_route():
    """
    Convert a quantity between two units.

    Body: {"quantity": "500", "from_unit_id": 2, "to_unit_id": 1}
    Units may also be given by name or abbreviation as "from"/"to".
    """
    payload = request.get_json(silent=True) or {}
    reject_unknown_fields(payload, {"quantity", "from_unit_id", "to_unit_id", "from", "to"})
    require_fields(payload, "quantity")
    quantity = decimal_field(payload, "quantity")

    from ..services.conversion_service import convert_quantity
    from ..services.unit_service import get_unit_catalog

    catalog = get_unit_catalog()
    resolved = {}
    for side in ("from", "to"):
        label = payload.get(f"{side}_unit_id", payload.get(side))
        unit = catalog.find_unit(label)
        if unit is None:
            raise ValidationError(f"unknown {side} unit: {label!r}")
        resolved[side] = unit

    converted = convert_quantity(quantity, resolved["from"].id, resolved["to"].id, catalog=catalog)
    return {
        "quantity": decimal_str(quantity),
        "from_unit": resolved["from"].to_dict(),
        "to_unit": resolved["to"].to_dict(),
        "converted_quantity": decimal_str(converted),
    }
