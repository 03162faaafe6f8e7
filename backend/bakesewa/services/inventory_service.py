# Overview: Inventory valuation engine; stock receipts, consumption and adjustments.

# backend/bakesewa/services/inventory_service.py

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal

from ..errors import InsufficientStockError, ItemNotFoundError, ValidationError
from ..extensions import db
from ..models import (
    InventoryCostHistory,
    InventoryItem,
    InventoryTransaction,
    StockBatch,
    StockBatchConsumption,
    Unit,
)
from ..quantities import ZERO, decimal_str, quantize_money, quantize_qty, to_decimal
from ..time_utils import coerce_datetime, utcnow
from . import audit_service
from .audit_service import Actor
from .concurrency import lock_for_update, run_with_retry
from .conversion_service import convert_quantity, dual_unit_stock
from .costing import next_weighted_average, stock_value
from .unit_service import UnitCatalog
"""
Inventory Invariants (authoritative)

Stock model:
- InventoryItem.current_stock is the mutable on-hand quantity in the item's
  primary unit. Every change also writes an InventoryTransaction row.
- closing_stock = opening_stock + purchased_quantity - consumed_quantity,
  and current_stock == closing_stock after every mutation in this module.
- current_stock never goes negative: consumption beyond stock is rejected
  with InsufficientStockError (no clamping, no backorders).

Cost model:
- cost_per_unit is the weighted average of receipts, computed only by
  costing.next_weighted_average().
- Consumption and count adjustments never change cost_per_unit.
- Receipts in another unit are converted to the primary unit first; the
  unit cost is rescaled so the purchase value stays the same.

FIFO:
- Each receipt opens a StockBatch; consumption depletes active batches
  oldest first and records StockBatchConsumption rows. Opening stock has no
  batch, so batch totals can be lower than current_stock.

Concurrency:
- Mutations lock the item row (SELECT ... FOR UPDATE) and rely on
  InventoryItem.version_id; conflicts are retried by run_with_retry().
- Audit rows are written after the commit and can never fail the mutation.
"""

logger = logging.getLogger(__name__)

RECEIPT_REASON = "Purchase - Weighted average update"


def _positive(value, field: str) -> Decimal:
    try:
        d = to_decimal(value, field=field)
    except ValueError as e:
        raise ValidationError(str(e))
    if d <= ZERO:
        raise ValidationError(f"{field} must be greater than 0")
    return d


def _stock_quantity(value: Decimal, field: str = "quantity") -> Decimal:
    """Quantize to stock precision; amounts that round to zero are rejected."""
    qty = quantize_qty(value)
    if qty <= ZERO:
        raise ValidationError(f"{field} rounds to 0 at stock precision")
    return qty


def _non_negative(value, field: str) -> Decimal:
    try:
        d = to_decimal(value, field=field)
    except ValueError as e:
        raise ValidationError(str(e))
    if d < ZERO:
        raise ValidationError(f"{field} must not be negative")
    return d


def _get_item(item_id: int, *, lock: bool = False) -> InventoryItem:
    query = db.session.query(InventoryItem).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise ItemNotFoundError("inventory item", item_id)
    return item


def get_item(item_id: int) -> InventoryItem:
    return _get_item(item_id)


def _sync_closing_stock(item: InventoryItem) -> None:
    item.closing_stock = quantize_qty(
        to_decimal(item.opening_stock or 0)
        + to_decimal(item.purchased_quantity or 0)
        - to_decimal(item.consumed_quantity or 0)
    )
    item.current_stock = item.closing_stock


def _valuation_snapshot(item: InventoryItem) -> dict:
    return {
        "current_stock": decimal_str(item.current_stock),
        "cost_per_unit": decimal_str(item.cost_per_unit),
        "closing_stock": decimal_str(item.closing_stock),
    }


def create_item(
    *,
    name: str,
    primary_unit_id: int,
    code: str | None = None,
    opening_stock=0,
    cost_per_unit=0,
    min_level=0,
    secondary_unit_id: int | None = None,
    conversion_rate=1,
    supplier: str | None = None,
    category_id: int | None = None,
    is_ingredient: bool = True,
    notes: str | None = None,
    actor: Actor | None = None,
) -> InventoryItem:
    if not name or not name.strip():
        raise ValidationError("name is required")
    opening = _non_negative(opening_stock, "opening_stock")
    cost = _non_negative(cost_per_unit, "cost_per_unit")
    minimum = _non_negative(min_level, "min_level")
    rate = _positive(conversion_rate, "conversion_rate")

    for unit_id in (primary_unit_id, secondary_unit_id):
        if unit_id is not None and db.session.get(Unit, unit_id) is None:
            raise ItemNotFoundError("unit", unit_id)
    if code and db.session.query(InventoryItem).filter_by(code=code).first():
        raise ValidationError(f"inventory code {code!r} already exists")

    item = InventoryItem(
        code=code,
        name=name.strip(),
        current_stock=opening,
        opening_stock=opening,
        purchased_quantity=ZERO,
        consumed_quantity=ZERO,
        closing_stock=opening,
        min_level=minimum,
        primary_unit_id=primary_unit_id,
        secondary_unit_id=secondary_unit_id,
        conversion_rate=rate,
        cost_per_unit=cost,
        supplier=supplier,
        category_id=category_id,
        is_ingredient=is_ingredient,
        notes=notes,
    )
    db.session.add(item)
    db.session.commit()

    audit_service.try_record_action(
        action="CREATE",
        resource="inventory",
        resource_id=item.id,
        actor=actor,
        new_values=item.to_dict(),
    )
    return item


def _previous_purchase_cost(item_id: int) -> Decimal | None:
    last = (
        db.session.query(StockBatch)
        .filter(StockBatch.inventory_item_id == item_id)
        .order_by(StockBatch.received_date.desc(), StockBatch.id.desc())
        .first()
    )
    return last.unit_cost if last else None


def _receive_stock_inner(
    *,
    item: InventoryItem,
    quantity: Decimal,
    unit_cost: Decimal,
    received_at: datetime,
    reference: str | None,
    batch_number: str | None,
    expiry_date: date | None,
    supplier: str | None,
    created_by: str,
) -> InventoryTransaction:
    """Apply one receipt to a locked item. No commit."""
    previous_stock = to_decimal(item.current_stock or 0)
    previous_average = to_decimal(item.cost_per_unit or 0)
    previous_purchase_cost = _previous_purchase_cost(item.id)

    new_stock, new_average = next_weighted_average(previous_stock, previous_average, quantity, unit_cost)

    item.purchased_quantity = quantize_qty(to_decimal(item.purchased_quantity or 0) + quantity)
    _sync_closing_stock(item)
    if item.current_stock != new_stock:
        # opening/purchased/consumed drifted from current_stock before this receipt
        logger.warning(
            "Inventory item %s counters disagree with current stock (%s vs %s); counters win",
            item.id, item.current_stock, new_stock,
        )
    item.cost_per_unit = new_average
    item.last_restocked = received_at

    tx = InventoryTransaction(
        inventory_item_id=item.id,
        type="in",
        quantity=quantity,
        unit_cost=unit_cost,
        reason=RECEIPT_REASON,
        reference=reference or f"Purchase at {decimal_str(unit_cost)}/unit",
        created_by=created_by,
        created_at=received_at,
    )
    db.session.add(tx)
    db.session.flush()

    db.session.add(StockBatch(
        inventory_item_id=item.id,
        inventory_transaction_id=tx.id,
        batch_number=batch_number,
        quantity_received=quantity,
        remaining_quantity=quantity,
        unit_cost=unit_cost,
        expiry_date=expiry_date,
        received_date=received_at,
        supplier=supplier or item.supplier,
        is_active=True,
    ))
    db.session.add(InventoryCostHistory(
        inventory_item_id=item.id,
        previous_cost=previous_purchase_cost,
        new_cost=unit_cost,
        previous_average_cost=previous_average,
        new_average_cost=new_average,
        change_reason="purchase",
        reference_id=tx.id,
        reference_type="inventory_transaction",
        changed_by=created_by,
        change_date=received_at,
    ))

    logger.info(
        "Inventory item %s received %s @ %s: stock %s -> %s, average cost %s -> %s",
        item.id, quantity, unit_cost, previous_stock, item.current_stock, previous_average, new_average,
    )
    return tx


def receive_stock(
    item_id: int,
    quantity,
    unit_cost,
    *,
    purchase_date=None,
    unit_id: int | None = None,
    reference: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    supplier: str | None = None,
    actor: Actor | None = None,
    catalog: UnitCatalog | None = None,
    recalculate_products: bool = True,
) -> InventoryTransaction:
    """
    Receive purchased stock and update the weighted-average cost.

    quantity/unit_cost are in unit_id when given (e.g. a purchase invoiced
    in grams for an item stocked in kg); otherwise in the item's primary
    unit. Raises ConversionNotFoundError when the purchase unit cannot be
    converted to the stock unit.
    """
    purchased_qty = _positive(quantity, "quantity")
    purchase_cost = _non_negative(unit_cost, "unit_cost")
    try:
        received_at = coerce_datetime(purchase_date)
    except ValueError:
        raise ValidationError("invalid purchase_date")
    actor = actor or audit_service.SYSTEM_ACTOR

    def _op():
        item = _get_item(item_id, lock=True)

        stock_qty, stock_cost = purchased_qty, purchase_cost
        if unit_id is not None and unit_id != item.primary_unit_id:
            stock_qty = convert_quantity(purchased_qty, unit_id, item.primary_unit_id, catalog=catalog)
            if stock_qty <= ZERO:
                raise ValidationError("converted quantity must be greater than 0")
            # Same purchase value, expressed per stock unit
            stock_cost = purchased_qty * purchase_cost / stock_qty
        stock_qty = _stock_quantity(stock_qty)

        old_values = _valuation_snapshot(item)
        tx = _receive_stock_inner(
            item=item,
            quantity=stock_qty,
            unit_cost=quantize_qty(stock_cost),
            received_at=received_at,
            reference=reference,
            batch_number=batch_number,
            expiry_date=expiry_date,
            supplier=supplier,
            created_by=actor.label,
        )
        new_values = _valuation_snapshot(item)
        db.session.commit()
        return tx, old_values, new_values

    tx, old_values, new_values = run_with_retry(_op)

    audit_service.try_record_action(
        action="UPDATE",
        resource="inventory",
        resource_id=item_id,
        actor=actor,
        details={
            "operation": "receive",
            "transaction_id": tx.id,
            "quantity": decimal_str(purchased_qty),
            "unit_cost": decimal_str(purchase_cost),
            "unit_id": unit_id,
        },
        old_values=old_values,
        new_values=new_values,
    )

    if recalculate_products:
        from .product_cost_service import recalculate_products_using_item
        try:
            recalculate_products_using_item(item_id, catalog=catalog)
        except Exception:
            # The receipt is committed; a stale product cost cache is recoverable
            logger.exception("Failed to refresh product costs after receipt for inventory item %s", item_id)
            db.session.rollback()

    return tx


def _deplete_batches_fifo(
    *,
    item_id: int,
    quantity: Decimal,
    tx: InventoryTransaction,
    reason: str | None,
    consumed_by: str,
) -> Decimal:
    """Consume from active batches oldest first. Returns the unbatched remainder."""
    remaining = quantity
    batches = (
        db.session.query(StockBatch)
        .filter(
            StockBatch.inventory_item_id == item_id,
            StockBatch.is_active.is_(True),
            StockBatch.remaining_quantity > 0,
        )
        .order_by(StockBatch.received_date.asc(), StockBatch.id.asc())
        .all()
    )
    for batch in batches:
        if remaining <= ZERO:
            break
        available = to_decimal(batch.remaining_quantity)
        take = min(available, remaining)
        batch_cost = to_decimal(batch.unit_cost)
        db.session.add(StockBatchConsumption(
            stock_batch_id=batch.id,
            inventory_transaction_id=tx.id,
            quantity_consumed=take,
            unit_cost_at_consumption=batch_cost,
            total_cost=quantize_money(take * batch_cost),
            reason=reason,
            consumed_by=consumed_by,
            consumed_at=tx.created_at,
        ))
        batch.remaining_quantity = quantize_qty(available - take)
        if batch.remaining_quantity <= ZERO:
            batch.is_active = False
        remaining -= take
    return remaining


def _consume_stock_inner(
    *,
    item: InventoryItem,
    quantity: Decimal,
    tx_type: str,
    reason: str | None,
    reference: str | None,
    created_by: str,
) -> InventoryTransaction:
    """Remove stock from a locked item. No commit; cost is untouched."""
    available = to_decimal(item.current_stock or 0)
    if quantity > available:
        raise InsufficientStockError(item.id, decimal_str(available), decimal_str(quantity))

    item.consumed_quantity = quantize_qty(to_decimal(item.consumed_quantity or 0) + quantity)
    _sync_closing_stock(item)

    tx = InventoryTransaction(
        inventory_item_id=item.id,
        type=tx_type,
        quantity=-quantity,
        unit_cost=item.cost_per_unit,
        reason=reason,
        reference=reference,
        created_by=created_by,
        created_at=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()

    unbatched = _deplete_batches_fifo(
        item_id=item.id, quantity=quantity, tx=tx, reason=reason, consumed_by=created_by,
    )
    if unbatched > ZERO:
        logger.debug("Inventory item %s consumed %s from unbatched opening stock", item.id, unbatched)
    return tx


def consume_stock(
    item_id: int,
    quantity,
    reason: str | None = None,
    *,
    reference: str | None = None,
    actor: Actor | None = None,
) -> InventoryTransaction:
    """
    Take stock out (production, wastage, sale).

    Rejects with InsufficientStockError instead of going negative.
    """
    qty = _stock_quantity(_positive(quantity, "quantity"))
    actor = actor or audit_service.SYSTEM_ACTOR

    def _op():
        item = _get_item(item_id, lock=True)
        old_values = _valuation_snapshot(item)
        tx = _consume_stock_inner(
            item=item,
            quantity=qty,
            tx_type="out",
            reason=reason,
            reference=reference,
            created_by=actor.label,
        )
        new_values = _valuation_snapshot(item)
        db.session.commit()
        return tx, old_values, new_values

    tx, old_values, new_values = run_with_retry(_op)

    audit_service.try_record_action(
        action="UPDATE",
        resource="inventory",
        resource_id=item_id,
        actor=actor,
        details={
            "operation": "consume",
            "transaction_id": tx.id,
            "quantity": decimal_str(qty),
            "reason": reason,
        },
        old_values=old_values,
        new_values=new_values,
    )
    return tx


def adjust_stock(
    item_id: int,
    counted_quantity,
    reason: str | None = None,
    *,
    actor: Actor | None = None,
) -> InventoryTransaction | None:
    """
    Set stock to a physically counted quantity.

    A shortfall is booked as consumption (and depletes FIFO batches); a
    surplus is booked as a receipt at the current average cost, so
    cost_per_unit does not move and closing_stock stays consistent.
    Returns None when the count matches current stock.
    """
    counted = _non_negative(counted_quantity, "counted_quantity")
    actor = actor or audit_service.SYSTEM_ACTOR

    def _op():
        item = _get_item(item_id, lock=True)
        current = to_decimal(item.current_stock or 0)
        delta = quantize_qty(counted - current)
        if delta == ZERO:
            return None, None, None

        old_values = _valuation_snapshot(item)
        if delta < ZERO:
            tx = _consume_stock_inner(
                item=item,
                quantity=-delta,
                tx_type="adjustment",
                reason=reason or "Stock count adjustment",
                reference=None,
                created_by=actor.label,
            )
        else:
            item.purchased_quantity = quantize_qty(to_decimal(item.purchased_quantity or 0) + delta)
            _sync_closing_stock(item)
            tx = InventoryTransaction(
                inventory_item_id=item.id,
                type="adjustment",
                quantity=delta,
                unit_cost=item.cost_per_unit,
                reason=reason or "Stock count adjustment",
                created_by=actor.label,
                created_at=utcnow(),
            )
            db.session.add(tx)
            db.session.flush()
        new_values = _valuation_snapshot(item)
        db.session.commit()
        return tx, old_values, new_values

    tx, old_values, new_values = run_with_retry(_op)
    if tx is None:
        return None

    audit_service.try_record_action(
        action="UPDATE",
        resource="inventory",
        resource_id=item_id,
        actor=actor,
        details={"operation": "adjust", "transaction_id": tx.id, "reason": reason},
        old_values=old_values,
        new_values=new_values,
    )
    return tx


def list_items(*, low_stock_only: bool = False) -> list[InventoryItem]:
    q = db.session.query(InventoryItem)
    if low_stock_only:
        q = q.filter(InventoryItem.current_stock <= InventoryItem.min_level)
    return q.order_by(InventoryItem.name.asc(), InventoryItem.id.asc()).all()


def list_low_stock_items() -> list[InventoryItem]:
    return list_items(low_stock_only=True)


def list_transactions(item_id: int, *, limit: int = 200) -> list[InventoryTransaction]:
    _get_item(item_id)
    return (
        db.session.query(InventoryTransaction)
        .filter_by(inventory_item_id=item_id)
        .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )


def list_batches(item_id: int, *, active_only: bool = True) -> list[StockBatch]:
    q = db.session.query(StockBatch).filter(StockBatch.inventory_item_id == item_id)
    if active_only:
        q = q.filter(StockBatch.is_active.is_(True))
    return q.order_by(StockBatch.received_date.asc(), StockBatch.id.asc()).all()


def get_stock_summary(item_id: int) -> dict:
    item = _get_item(item_id)
    batches = list_batches(item_id)

    qty = to_decimal(item.current_stock or 0)
    average = to_decimal(item.cost_per_unit or 0)
    fifo_value = sum(
        (to_decimal(b.remaining_quantity) * to_decimal(b.unit_cost) for b in batches),
        ZERO,
    )
    return {
        "inventory_item_id": item.id,
        "name": item.name,
        "current_stock": decimal_str(qty),
        "cost_per_unit": decimal_str(average),
        "stock_value": decimal_str(quantize_money(stock_value(qty, average))),
        "active_batches": len(batches),
        "batched_quantity": decimal_str(sum((to_decimal(b.remaining_quantity) for b in batches), ZERO)),
        "fifo_batch_value": decimal_str(quantize_money(fifo_value)),
        "is_low_stock": item.is_low_stock,
        "last_restocked": item.to_dict()["last_restocked"],
        "units": dual_unit_stock(item),
    }
