from __future__ import annotations

from ..extensions import db
from ..quantities import decimal_str
from ..time_utils import to_utc_z


class InventoryCategory(db.Model):
    __tablename__ = "inventory_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


class InventoryItem(db.Model):
    """
    Stock-keeping record for a raw material or ingredient.

    current_stock and cost_per_unit are mutable state owned by
    inventory_service; nothing else should write them directly.

    Invariants (maintained by inventory_service, not the database):
    - closing_stock = opening_stock + purchased_quantity - consumed_quantity
    - cost_per_unit is the running weighted average of receipts, never a spot price
    - current_stock >= 0

    version_id makes concurrent read-modify-write cycles on the same row fail
    with StaleDataError instead of silently losing one update.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_nonnegative"),
        db.CheckConstraint("cost_per_unit >= 0", name="ck_inventory_items_cost_nonnegative"),
        db.Index("ix_inventory_items_name", "name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=True, unique=True)
    name = db.Column(db.String(200), nullable=False)

    current_stock = db.Column(db.Numeric(18, 6), nullable=False, default=0)
    opening_stock = db.Column(db.Numeric(18, 6), nullable=False, default=0)
    purchased_quantity = db.Column(db.Numeric(18, 6), nullable=False, default=0)
    consumed_quantity = db.Column(db.Numeric(18, 6), nullable=False, default=0)
    closing_stock = db.Column(db.Numeric(18, 6), nullable=False, default=0)
    min_level = db.Column(db.Numeric(18, 6), nullable=False, default=0)

    primary_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    secondary_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True)
    # Primary units per one secondary unit (e.g. 25 kg per bag)
    conversion_rate = db.Column(db.Numeric(18, 6), nullable=False, default=1)

    cost_per_unit = db.Column(db.Numeric(18, 6), nullable=False, default=0)
    supplier = db.Column(db.String(200), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("inventory_categories.id"), nullable=True, index=True)
    is_ingredient = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)
    last_restocked = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    primary_unit = db.relationship("Unit", foreign_keys=[primary_unit_id])
    secondary_unit = db.relationship("Unit", foreign_keys=[secondary_unit_id])
    category = db.relationship("InventoryCategory", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} code={self.code!r} stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return (self.current_stock or 0) <= (self.min_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "current_stock": decimal_str(self.current_stock),
            "opening_stock": decimal_str(self.opening_stock),
            "purchased_quantity": decimal_str(self.purchased_quantity),
            "consumed_quantity": decimal_str(self.consumed_quantity),
            "closing_stock": decimal_str(self.closing_stock),
            "min_level": decimal_str(self.min_level),
            "primary_unit_id": self.primary_unit_id,
            "secondary_unit_id": self.secondary_unit_id,
            "conversion_rate": decimal_str(self.conversion_rate),
            "cost_per_unit": decimal_str(self.cost_per_unit),
            "supplier": self.supplier,
            "category_id": self.category_id,
            "is_ingredient": self.is_ingredient,
            "notes": self.notes,
            "last_restocked": to_utc_z(self.last_restocked),
            "version_id": self.version_id,
            "is_low_stock": self.is_low_stock,
        }


class InventoryTransaction(db.Model):
    """Stock movement. Written once per mutation, never edited."""
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_item_created", "inventory_item_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    # in, out, adjustment
    type = db.Column(db.String(32), nullable=False, index=True)
    # Signed: positive for in, negative for out, delta for adjustment
    quantity = db.Column(db.Numeric(18, 6), nullable=False)
    unit_cost = db.Column(db.Numeric(18, 6), nullable=True)

    reason = db.Column(db.String(200), nullable=True)
    reference = db.Column(db.String(100), nullable=True)
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory_item = db.relationship("InventoryItem", backref=db.backref("transactions", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "type": self.type,
            "quantity": decimal_str(self.quantity),
            "unit_cost": decimal_str(self.unit_cost),
            "reason": self.reason,
            "reference": self.reference,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class StockBatch(db.Model):
    """Received lot, depleted first-in-first-out by consume_stock."""
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.Index("ix_stock_batches_item_received", "inventory_item_id", "received_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    inventory_transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True)
    batch_number = db.Column(db.String(100), nullable=True)
    quantity_received = db.Column(db.Numeric(18, 6), nullable=False)
    remaining_quantity = db.Column(db.Numeric(18, 6), nullable=False)
    unit_cost = db.Column(db.Numeric(18, 6), nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=False)
    supplier = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "batch_number": self.batch_number,
            "quantity_received": decimal_str(self.quantity_received),
            "remaining_quantity": decimal_str(self.remaining_quantity),
            "unit_cost": decimal_str(self.unit_cost),
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "received_date": to_utc_z(self.received_date),
            "is_active": self.is_active,
        }


class StockBatchConsumption(db.Model):
    __tablename__ = "stock_batch_consumptions"

    id = db.Column(db.Integer, primary_key=True)
    stock_batch_id = db.Column(db.Integer, db.ForeignKey("stock_batches.id"), nullable=False, index=True)
    inventory_transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True)
    quantity_consumed = db.Column(db.Numeric(18, 6), nullable=False)
    unit_cost_at_consumption = db.Column(db.Numeric(18, 6), nullable=False)
    total_cost = db.Column(db.Numeric(18, 4), nullable=False)
    reason = db.Column(db.String(100), nullable=True)
    consumed_by = db.Column(db.String(100), nullable=True)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    stock_batch = db.relationship("StockBatch", backref=db.backref("consumptions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_batch_id": self.stock_batch_id,
            "inventory_transaction_id": self.inventory_transaction_id,
            "quantity_consumed": decimal_str(self.quantity_consumed),
            "unit_cost_at_consumption": decimal_str(self.unit_cost_at_consumption),
            "total_cost": decimal_str(self.total_cost),
            "reason": self.reason,
            "consumed_at": to_utc_z(self.consumed_at),
        }


class InventoryCostHistory(db.Model):
    """One row per change of an item's weighted-average cost."""
    __tablename__ = "inventory_cost_history"

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    previous_cost = db.Column(db.Numeric(18, 6), nullable=True)
    new_cost = db.Column(db.Numeric(18, 6), nullable=False)
    previous_average_cost = db.Column(db.Numeric(18, 6), nullable=True)
    new_average_cost = db.Column(db.Numeric(18, 6), nullable=False)
    # purchase, adjustment, revaluation
    change_reason = db.Column(db.String(100), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(50), nullable=True)
    changed_by = db.Column(db.String(100), nullable=True)
    change_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "previous_cost": decimal_str(self.previous_cost),
            "new_cost": decimal_str(self.new_cost),
            "previous_average_cost": decimal_str(self.previous_average_cost),
            "new_average_cost": decimal_str(self.new_average_cost),
            "change_reason": self.change_reason,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "changed_by": self.changed_by,
            "change_date": to_utc_z(self.change_date),
        }
