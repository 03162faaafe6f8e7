from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .quantities import ZERO, to_decimal
from .time_utils import parse_iso_datetime


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_integer(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{key} must be an integer")
        return int(stripped)
    raise ValidationError(f"{key} must be an integer")


def _coerce_decimal(key: str, value: Any) -> Decimal:
    try:
        return to_decimal(value, field=key)
    except ValueError as e:
        raise ValidationError(str(e))


def _coerce_date(key: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 date")
    raise ValidationError(f"{key} must be a date")


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    if isinstance(coltype, Integer):
        return _coerce_integer(col.key, value)

    # Quantities and money; floats go through str() in to_decimal
    if isinstance(coltype, Numeric):
        return _coerce_decimal(col.key, value)

    # DateTime subclasses Date in SQLAlchemy, so check it first
    if isinstance(coltype, DateTime):
        return _coerce_datetime(col.key, value)

    if isinstance(coltype, Date):
        return _coerce_date(col.key, value)

    if isinstance(coltype, JSON):
        return value

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# Stock actions (receive/consume/adjust/convert) are not row writes, so their
# payloads are checked field by field instead of against a model.

def require_fields(payload: dict, *fields: str) -> None:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in fields if payload.get(f) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def reject_unknown_fields(payload: dict, allowed: set[str]) -> None:
    for k in payload.keys():
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}")


def optional_int(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    return _coerce_integer(key, value)


def optional_date(payload: dict, key: str) -> date | None:
    value = payload.get(key)
    if value is None:
        return None
    return _coerce_date(key, value)


def optional_datetime(payload: dict, key: str) -> datetime | None:
    value = payload.get(key)
    if value is None:
        return None
    return _coerce_datetime(key, value)


def decimal_field(payload: dict, key: str) -> Decimal:
    return _coerce_decimal(key, payload.get(key))


def enforce_rules_inventory_receive(patch: dict) -> None:
    # RECEIVE requires quantity > 0 and unit_cost >= 0
    if patch["quantity"] <= ZERO:
        raise ValidationError("quantity must be > 0 for RECEIVE")
    if patch["unit_cost"] < ZERO:
        raise ValidationError("unit_cost must be >= 0")


def enforce_rules_inventory_consume(patch: dict) -> None:
    if patch["quantity"] <= ZERO:
        raise ValidationError("quantity must be > 0 for CONSUME")


def enforce_rules_inventory_adjust(patch: dict) -> None:
    # ADJUST takes a counted quantity, never a cost
    if patch["counted_quantity"] < ZERO:
        raise ValidationError("counted_quantity must be >= 0 for ADJUST")


def enforce_rules_product(patch: dict) -> None:
    if "price" in patch and patch["price"] is not None and patch["price"] < ZERO:
        raise ValidationError("price must be >= 0")
