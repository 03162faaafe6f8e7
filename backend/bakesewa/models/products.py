from __future__ import annotations

from ..extensions import db
from ..quantities import decimal_str
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Sellable product built from a recipe of inventory items.

    COST CACHE:
    cost and margin are derived from the recipe and are only refreshed by
    product_cost_service.update_product_cost(). cost_updated_at records the
    last refresh so readers can tell how stale the cached figures are.
    Receipts refresh every product that uses the received item; direct
    edits to a recipe must call update_product_cost() themselves.
    """
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(50), nullable=True, unique=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    # (price - cost) / price
    margin = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    cost_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    ingredients = db.relationship(
        "ProductIngredient",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductIngredient.id",
    )
    unit = db.relationship("Unit")

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self, *, include_ingredients: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "price": decimal_str(self.price),
            "cost": decimal_str(self.cost),
            "margin": decimal_str(self.margin),
            "cost_updated_at": to_utc_z(self.cost_updated_at),
            "unit_id": self.unit_id,
            "is_active": self.is_active,
        }
        if include_ingredients:
            data["ingredients"] = [i.to_dict() for i in self.ingredients]
        return data


class ProductIngredient(db.Model):
    """Recipe line; quantity is expressed in unit_id, not the item's stock unit."""
    __tablename__ = "product_ingredients"
    __table_args__ = (
        db.Index("ix_product_ingredients_item", "inventory_item_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False)
    quantity = db.Column(db.Numeric(18, 6), nullable=False)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="ingredients")
    inventory_item = db.relationship("InventoryItem")
    unit = db.relationship("Unit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "inventory_item_id": self.inventory_item_id,
            "quantity": decimal_str(self.quantity),
            "unit_id": self.unit_id,
        }
