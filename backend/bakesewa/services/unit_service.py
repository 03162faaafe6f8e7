"""
Unit catalog: units of measure and explicit conversion overrides.

The catalog keeps an in-memory snapshot of active rows. One catalog is
created per Flask app (see get_unit_catalog) and can be passed explicitly
to the conversion resolver, so tests and CLI commands never share hidden
process-wide state.

Snapshot rows are frozen dataclasses rather than ORM instances because
ORM objects expire on commit and detach when the request session closes.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ItemNotFoundError, ValidationError
from ..extensions import db
from ..models import MEASUREMENT_TYPES, Unit, UnitConversion
from ..quantities import ZERO, decimal_str, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitRecord:
    id: int
    name: str
    abbreviation: str
    measurement_type: str
    base_unit_name: Optional[str]
    conversion_factor: Decimal

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "abbreviation": self.abbreviation,
            "measurement_type": self.measurement_type,
            "base_unit_name": self.base_unit_name,
            "conversion_factor": decimal_str(self.conversion_factor),
        }


@dataclass(frozen=True)
class ConversionRecord:
    id: int
    from_unit_id: int
    to_unit_id: int
    conversion_factor: Decimal
    formula: Optional[str]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_unit_id": self.from_unit_id,
            "to_unit_id": self.to_unit_id,
            "conversion_factor": decimal_str(self.conversion_factor),
            "formula": self.formula,
        }


class UnitCatalog:
    """
    Cached view of active units and conversions.

    ttl_seconds=0 keeps the snapshot until refresh() or invalidate() is
    called; a positive TTL reloads lazily on the next read after expiry.
    """

    def __init__(self, ttl_seconds: float = 0, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._units: dict[int, UnitRecord] = {}
        self._conversions: list[ConversionRecord] = []
        self._loaded_at: float | None = None

    def refresh(self) -> None:
        try:
            units = db.session.query(Unit).filter(Unit.is_active.is_(True)).order_by(Unit.id).all()
            conversions = (
                db.session.query(UnitConversion)
                .filter(UnitConversion.is_active.is_(True))
                .order_by(UnitConversion.id)
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Error loading unit conversions")
            self._units = {}
            self._conversions = []
            self._loaded_at = self._clock()
            return

        self._units = {
            u.id: UnitRecord(
                id=u.id,
                name=u.name,
                abbreviation=u.abbreviation,
                measurement_type=u.measurement_type,
                base_unit_name=u.base_unit_name,
                conversion_factor=to_decimal(u.conversion_factor),
            )
            for u in units
        }
        self._conversions = [
            ConversionRecord(
                id=c.id,
                from_unit_id=c.from_unit_id,
                to_unit_id=c.to_unit_id,
                conversion_factor=to_decimal(c.conversion_factor),
                formula=c.formula,
            )
            for c in conversions
        ]
        self._loaded_at = self._clock()
        logger.debug("Unit catalog loaded: %d units, %d conversions", len(self._units), len(self._conversions))

    def invalidate(self) -> None:
        self._loaded_at = None

    def _ensure_loaded(self) -> None:
        if self._loaded_at is None:
            self.refresh()
        elif self.ttl_seconds and (self._clock() - self._loaded_at) >= self.ttl_seconds:
            self.refresh()

    def get_units(self) -> list[UnitRecord]:
        self._ensure_loaded()
        return list(self._units.values())

    def get_conversions(self) -> list[ConversionRecord]:
        self._ensure_loaded()
        return list(self._conversions)

    def get_unit(self, unit_id: int) -> Optional[UnitRecord]:
        self._ensure_loaded()
        return self._units.get(unit_id)

    def find_unit(self, label) -> Optional[UnitRecord]:
        """Resolve by id, name or abbreviation (case-insensitive)."""
        if label is None:
            return None
        if isinstance(label, int) and not isinstance(label, bool):
            return self.get_unit(label)
        text = str(label).strip().lower()
        if not text:
            return None
        if text.isdigit():
            return self.get_unit(int(text))
        for unit in self.get_units():
            if unit.name.lower() == text or unit.abbreviation.lower() == text:
                return unit
        return None

    def find_conversion(self, from_unit_id: int, to_unit_id: int) -> Optional[ConversionRecord]:
        for c in self.get_conversions():
            if c.from_unit_id == from_unit_id and c.to_unit_id == to_unit_id:
                return c
        return None

    def available_conversions(self, unit_id: int) -> list[ConversionRecord]:
        return [
            c for c in self.get_conversions()
            if c.from_unit_id == unit_id or c.to_unit_id == unit_id
        ]


def get_unit_catalog() -> UnitCatalog:
    """The catalog owned by the current Flask app."""
    return current_app.extensions["unit_catalog"]


def _positive_factor(value) -> Decimal:
    try:
        factor = to_decimal(value, field="conversion_factor")
    except ValueError as e:
        raise ValidationError(str(e))
    if factor <= ZERO:
        raise ValidationError("conversion_factor must be greater than 0")
    return factor


def create_unit(
    *,
    name: str,
    abbreviation: str,
    measurement_type: str,
    base_unit_name: str | None = None,
    conversion_factor=1,
    catalog: UnitCatalog | None = None,
) -> Unit:
    if not name or not name.strip():
        raise ValidationError("name is required")
    if not abbreviation or not abbreviation.strip():
        raise ValidationError("abbreviation is required")
    if measurement_type not in MEASUREMENT_TYPES:
        raise ValidationError(f"measurement_type must be one of {', '.join(MEASUREMENT_TYPES)}")
    factor = _positive_factor(conversion_factor)

    if db.session.query(Unit).filter(db.func.lower(Unit.name) == name.strip().lower()).first():
        raise ValidationError(f"unit {name!r} already exists")
    if base_unit_name:
        # A base unit belongs to exactly one measurement type
        clash = db.session.query(Unit).filter(
            Unit.base_unit_name == base_unit_name,
            Unit.measurement_type != measurement_type,
        ).first()
        if clash is not None:
            raise ValidationError(
                f"base unit {base_unit_name!r} is already used by {clash.measurement_type} units"
            )

    unit = Unit(
        name=name.strip(),
        abbreviation=abbreviation.strip(),
        measurement_type=measurement_type,
        base_unit_name=base_unit_name,
        conversion_factor=factor,
        is_active=True,
    )
    db.session.add(unit)
    db.session.commit()
    (catalog or get_unit_catalog()).refresh()
    return unit


def create_conversion(
    *,
    from_unit_id: int,
    to_unit_id: int,
    conversion_factor,
    formula: str | None = None,
    catalog: UnitCatalog | None = None,
) -> UnitConversion:
    factor = _positive_factor(conversion_factor)
    if from_unit_id == to_unit_id:
        raise ValidationError("from_unit_id and to_unit_id must differ")
    for unit_id in (from_unit_id, to_unit_id):
        if db.session.get(Unit, unit_id) is None:
            raise ItemNotFoundError("unit", unit_id)

    conversion = UnitConversion(
        from_unit_id=from_unit_id,
        to_unit_id=to_unit_id,
        conversion_factor=factor,
        formula=formula,
        is_active=True,
    )
    db.session.add(conversion)
    db.session.commit()
    (catalog or get_unit_catalog()).refresh()
    return conversion


def deactivate_conversion(conversion_id: int, *, catalog: UnitCatalog | None = None) -> UnitConversion:
    conversion = db.session.get(UnitConversion, conversion_id)
    if conversion is None:
        raise ItemNotFoundError("unit conversion", conversion_id)
    conversion.is_active = False
    db.session.commit()
    (catalog or get_unit_catalog()).refresh()
    return conversion


# name, abbreviation, type, base unit, base units per one of this unit
DEFAULT_UNITS = (
    ("Kilograms", "kg", "weight", "gram", "1000"),
    ("Grams", "g", "weight", "gram", "1"),
    ("Pounds", "lbs", "weight", "gram", "453.59237"),
    ("Liters", "L", "volume", "milliliter", "1000"),
    ("Milliliters", "ml", "volume", "milliliter", "1"),
    ("Cups", "cups", "volume", "milliliter", "240"),
    ("Tablespoons", "tbsp", "volume", "milliliter", "15"),
    ("Teaspoons", "tsp", "volume", "milliliter", "5"),
    ("Pieces", "pcs", "count", "piece", "1"),
    ("Packets", "pkt", "count", None, "1"),
    ("Boxes", "box", "count", None, "1"),
    ("Bags", "bag", "count", None, "1"),
)


def seed_default_units(*, catalog: UnitCatalog | None = None) -> int:
    """
    Insert the default bakery units. Safe to call repeatedly (idempotent).

    Packets, boxes and bags have no base unit: their size depends on the
    item, so they only convert through explicit UnitConversion rows.
    """
    existing = {name.lower() for (name,) in db.session.query(Unit.name).all()}
    created = 0
    for name, abbreviation, measurement_type, base_unit_name, factor in DEFAULT_UNITS:
        if name.lower() in existing:
            continue
        db.session.add(Unit(
            name=name,
            abbreviation=abbreviation,
            measurement_type=measurement_type,
            base_unit_name=base_unit_name,
            conversion_factor=Decimal(factor),
            is_active=True,
        ))
        created += 1
    db.session.commit()
    (catalog or get_unit_catalog()).refresh()
    return created
