"""
Caller-visible business errors.

All of them subclass ValueError so route handlers can catch the family in
one clause and map the concrete type to a status code.
"""
from __future__ import annotations


class ValidationError(ValueError):
    """400-level input problem."""


class ItemNotFoundError(ValueError):
    """An inventory item, product or unit id does not resolve."""

    def __init__(self, kind: str, item_id):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} {item_id} not found")


class ConversionNotFoundError(ValueError):
    """No direct, reverse or base-unit path connects two units."""

    def __init__(self, from_unit_id, to_unit_id):
        self.from_unit_id = from_unit_id
        self.to_unit_id = to_unit_id
        super().__init__(f"No conversion found from unit {from_unit_id} to unit {to_unit_id}")


class InsufficientStockError(ValueError):
    def __init__(self, item_id, available, requested):
        self.item_id = item_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"inventory item {item_id} has {available} in stock, cannot consume {requested}"
        )


class AuditImmutabilityError(RuntimeError):
    """Raised when code tries to update or delete an audit log row."""
