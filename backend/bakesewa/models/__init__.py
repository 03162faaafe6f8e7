from .units import Unit, UnitConversion, MEASUREMENT_TYPES
from .inventory import (
    InventoryCategory,
    InventoryItem,
    InventoryTransaction,
    StockBatch,
    StockBatchConsumption,
    InventoryCostHistory,
)
from .products import Product, ProductIngredient
from .audit import AuditLogEntry, LoginLog, AUDIT_ACTIONS, AUDIT_STATUSES, register_audit_immutability

__all__ = [
    'Unit', 'UnitConversion', 'MEASUREMENT_TYPES',
    'InventoryCategory', 'InventoryItem', 'InventoryTransaction',
    'StockBatch', 'StockBatchConsumption', 'InventoryCostHistory',
    'Product', 'ProductIngredient',
    'AuditLogEntry', 'LoginLog', 'AUDIT_ACTIONS', 'AUDIT_STATUSES',
    'register_audit_immutability',
]
