from __future__ import annotations

from ..extensions import db
from ..quantities import decimal_str
from ..time_utils import to_utc_z

MEASUREMENT_TYPES = ("weight", "volume", "count", "length", "temperature")


class Unit(db.Model):
    """
    Unit of measure.

    conversion_factor is how many base units equal one of this unit, e.g.
    kg has base_unit_name="gram" and conversion_factor=1000. Units sharing a
    base_unit_name are mutually convertible; anything else needs an explicit
    UnitConversion row.
    """
    __tablename__ = "units"
    __table_args__ = (
        db.CheckConstraint("conversion_factor > 0", name="ck_units_factor_positive"),
        db.Index("ix_units_type_active", "measurement_type", "is_active"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    abbreviation = db.Column(db.String(10), nullable=False)
    measurement_type = db.Column(db.String(20), nullable=False)
    base_unit_name = db.Column(db.String(100), nullable=True)
    conversion_factor = db.Column(db.Numeric(18, 6), nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Unit id={self.id} abbreviation={self.abbreviation!r} base={self.base_unit_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "abbreviation": self.abbreviation,
            "measurement_type": self.measurement_type,
            "base_unit_name": self.base_unit_name,
            "conversion_factor": decimal_str(self.conversion_factor),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UnitConversion(db.Model):
    """
    Explicit conversion override: quantity_in_to_unit = quantity * factor.

    Only one direction is usually stored; lookups honor the inverse.
    """
    __tablename__ = "unit_conversions"
    __table_args__ = (
        db.CheckConstraint("conversion_factor > 0", name="ck_unit_conversions_factor_positive"),
        db.Index("ix_unit_conversions_pair", "from_unit_id", "to_unit_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    from_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    to_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    conversion_factor = db.Column(db.Numeric(18, 6), nullable=False)
    formula = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    from_unit = db.relationship("Unit", foreign_keys=[from_unit_id])
    to_unit = db.relationship("Unit", foreign_keys=[to_unit_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_unit_id": self.from_unit_id,
            "to_unit_id": self.to_unit_id,
            "conversion_factor": decimal_str(self.conversion_factor),
            "formula": self.formula,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
