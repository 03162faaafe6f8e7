# Overview: Pytest coverage for stock receipts, consumption, adjustments and FIFO batches.

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from bakesewa.errors import (
    ConversionNotFoundError,
    InsufficientStockError,
    ItemNotFoundError,
    ValidationError,
)
from bakesewa.extensions import db
from bakesewa.models import (
    AuditLogEntry,
    InventoryCostHistory,
    InventoryItem,
    InventoryTransaction,
    StockBatch,
    StockBatchConsumption,
)
from bakesewa.services import audit_service, inventory_service
from bakesewa.services.audit_service import Actor
from bakesewa.services.concurrency import run_with_retry

from conftest import make_item


def _reload(item_id):
    db.session.expire_all()
    return db.session.get(InventoryItem, item_id)


def _assert_closing_invariant(item):
    assert item.closing_stock == item.opening_stock + item.purchased_quantity - item.consumed_quantity
    assert item.current_stock == item.closing_stock


class TestReceiveStock:

    def test_weighted_average_on_existing_stock(self, flour):
        inventory_service.receive_stock(flour.id, "30", "3.00")

        item = _reload(flour.id)
        assert item.current_stock == Decimal("80")
        assert item.cost_per_unit == Decimal("2.6875")
        assert item.purchased_quantity == Decimal("30")
        assert item.last_restocked is not None
        _assert_closing_invariant(item)

    def test_two_receipts_into_empty_item(self, butter):
        inventory_service.receive_stock(butter.id, 50, 2)
        inventory_service.receive_stock(butter.id, 50, 4)

        item = _reload(butter.id)
        assert item.current_stock == Decimal("100")
        assert item.cost_per_unit == Decimal("3")

    def test_first_receipt_sets_cost(self, butter):
        inventory_service.receive_stock(butter.id, 20, 5)

        item = _reload(butter.id)
        assert item.current_stock == Decimal("20")
        assert item.cost_per_unit == Decimal("5")

    def test_writes_movement_batch_and_cost_history(self, flour):
        tx = inventory_service.receive_stock(
            flour.id, "30", "3.00", reference="INV-1001", batch_number="B-7", supplier="Mill Co",
        )

        assert tx.type == "in"
        assert tx.quantity == Decimal("30")
        assert tx.reference == "INV-1001"

        batch = db.session.query(StockBatch).filter_by(inventory_transaction_id=tx.id).one()
        assert batch.remaining_quantity == Decimal("30")
        assert batch.unit_cost == Decimal("3")
        assert batch.batch_number == "B-7"
        assert batch.supplier == "Mill Co"

        history = db.session.query(InventoryCostHistory).filter_by(inventory_item_id=flour.id).one()
        assert history.previous_average_cost == Decimal("2.5")
        assert history.new_average_cost == Decimal("2.6875")
        assert history.new_cost == Decimal("3")
        assert history.previous_cost is None
        assert history.reference_id == tx.id

    def test_default_reference_mentions_purchase_cost(self, butter):
        tx = inventory_service.receive_stock(butter.id, 1, "4.5")
        assert tx.reference == "Purchase at 4.5/unit"

    def test_purchase_unit_is_converted(self, butter, units):
        # 500 g at 0.002 per gram is 0.5 kg at 2.00 per kg
        tx = inventory_service.receive_stock(butter.id, 500, "0.002", unit_id=units["g"])

        item = _reload(butter.id)
        assert item.current_stock == Decimal("0.5")
        assert item.cost_per_unit == Decimal("2")
        assert tx.quantity == Decimal("0.5")
        assert tx.unit_cost == Decimal("2")

    def test_unconvertible_purchase_unit_changes_nothing(self, flour, units):
        with pytest.raises(ConversionNotFoundError):
            inventory_service.receive_stock(flour.id, 3, 1, unit_id=units["L"])
        db.session.rollback()

        item = _reload(flour.id)
        assert item.current_stock == Decimal("50")
        assert item.cost_per_unit == Decimal("2.5")
        assert db.session.query(InventoryTransaction).count() == 0

    @pytest.mark.parametrize("quantity, unit_cost", [(0, 1), (-5, 1), (5, -1), ("abc", 1)])
    def test_rejects_bad_input(self, flour, quantity, unit_cost):
        with pytest.raises(ValidationError):
            inventory_service.receive_stock(flour.id, quantity, unit_cost)

    def test_quantity_below_stock_precision_is_rejected(self, butter):
        with pytest.raises(ValidationError):
            inventory_service.receive_stock(butter.id, "0.0000004", "5.00")
        db.session.rollback()

        item = _reload(butter.id)
        assert item.cost_per_unit == Decimal("0")
        assert db.session.query(InventoryTransaction).count() == 0
        assert db.session.query(StockBatch).count() == 0
        assert db.session.query(InventoryCostHistory).count() == 0

    def test_converted_quantity_below_stock_precision_is_rejected(self, butter, units):
        # 0.0004 g is 0.0000004 kg
        with pytest.raises(ValidationError):
            inventory_service.receive_stock(butter.id, "0.0004", "5.00", unit_id=units["g"])
        db.session.rollback()

        assert _reload(butter.id).cost_per_unit == Decimal("0")
        assert db.session.query(StockBatch).count() == 0

    def test_unknown_item(self, db_session):
        with pytest.raises(ItemNotFoundError):
            inventory_service.receive_stock(12345, 1, 1)

    def test_records_audit_row_with_old_and_new_values(self, flour):
        actor = Actor(user_id="u-9", user_email="store@bakesewa.com", ip_address="10.1.1.1")
        inventory_service.receive_stock(flour.id, "30", "3.00", actor=actor)

        entry = db.session.query(AuditLogEntry).filter_by(resource="inventory", action="UPDATE").one()
        assert entry.user_email == "store@bakesewa.com"
        assert entry.resource_id == str(flour.id)
        assert entry.old_values["cost_per_unit"] == "2.5"
        assert entry.new_values["cost_per_unit"] == "2.6875"
        assert entry.details["operation"] == "receive"

    def test_audit_failure_does_not_block_receipt(self, flour, monkeypatch):
        def broken_record_action(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(audit_service, "record_action", broken_record_action)

        inventory_service.receive_stock(flour.id, "30", "3.00")

        item = _reload(flour.id)
        assert item.current_stock == Decimal("80")
        assert item.cost_per_unit == Decimal("2.6875")
        assert db.session.query(AuditLogEntry).count() == 0


class TestConsumeStock:

    def test_consumption_keeps_cost(self, flour):
        tx = inventory_service.consume_stock(flour.id, "20", "Bread production")

        item = _reload(flour.id)
        assert item.current_stock == Decimal("30")
        assert item.cost_per_unit == Decimal("2.5")
        assert item.consumed_quantity == Decimal("20")
        assert tx.type == "out"
        assert tx.quantity == Decimal("-20")
        _assert_closing_invariant(item)

    def test_rejects_consumption_beyond_stock(self, flour):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.consume_stock(flour.id, "50.5", "Too much")
        assert exc.value.available == "50"
        db.session.rollback()

        item = _reload(flour.id)
        assert item.current_stock == Decimal("50")
        assert db.session.query(InventoryTransaction).count() == 0

    def test_can_consume_everything(self, flour):
        inventory_service.consume_stock(flour.id, 50, "Clear out")
        assert _reload(flour.id).current_stock == Decimal("0")

    def test_fifo_depletes_oldest_batch_first(self, butter):
        first = inventory_service.receive_stock(butter.id, 10, 2, purchase_date="2026-01-01T08:00:00Z")
        second = inventory_service.receive_stock(butter.id, 10, 4, purchase_date="2026-01-05T08:00:00Z")

        tx = inventory_service.consume_stock(butter.id, 15, "Croissants")

        batches = {b.inventory_transaction_id: b for b in db.session.query(StockBatch).all()}
        assert batches[first.id].remaining_quantity == Decimal("0")
        assert batches[first.id].is_active is False
        assert batches[second.id].remaining_quantity == Decimal("5")
        assert batches[second.id].is_active is True

        consumptions = (
            db.session.query(StockBatchConsumption)
            .filter_by(inventory_transaction_id=tx.id)
            .order_by(StockBatchConsumption.id)
            .all()
        )
        assert [c.quantity_consumed for c in consumptions] == [Decimal("10"), Decimal("5")]
        assert sum(c.total_cost for c in consumptions) == Decimal("40")
        # Average cost is untouched by FIFO depletion
        assert _reload(butter.id).cost_per_unit == Decimal("3")

    def test_opening_stock_has_no_batch(self, flour):
        inventory_service.consume_stock(flour.id, 5, "Sample")
        assert db.session.query(StockBatchConsumption).count() == 0

    def test_rejects_non_positive_quantity(self, flour):
        with pytest.raises(ValidationError):
            inventory_service.consume_stock(flour.id, 0, "Nothing")

    def test_rejects_quantity_below_stock_precision(self, flour):
        with pytest.raises(ValidationError):
            inventory_service.consume_stock(flour.id, "0.0000001", "Crumbs")
        assert db.session.query(InventoryTransaction).count() == 0


class TestAdjustStock:

    def test_shortfall_is_booked_as_consumption(self, flour):
        tx = inventory_service.adjust_stock(flour.id, "47", "Monthly count")

        item = _reload(flour.id)
        assert tx.type == "adjustment"
        assert tx.quantity == Decimal("-3")
        assert item.current_stock == Decimal("47")
        assert item.cost_per_unit == Decimal("2.5")
        _assert_closing_invariant(item)

    def test_surplus_keeps_average_cost(self, flour):
        tx = inventory_service.adjust_stock(flour.id, "52")

        item = _reload(flour.id)
        assert tx.quantity == Decimal("2")
        assert item.current_stock == Decimal("52")
        assert item.cost_per_unit == Decimal("2.5")
        _assert_closing_invariant(item)

    def test_matching_count_is_a_no_op(self, flour):
        assert inventory_service.adjust_stock(flour.id, "50") is None
        assert db.session.query(InventoryTransaction).count() == 0

    def test_rejects_negative_count(self, flour):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(flour.id, "-1")


class TestQueries:

    def test_stock_summary(self, flour, units):
        inventory_service.receive_stock(flour.id, "30", "3.00")
        summary = inventory_service.get_stock_summary(flour.id)

        assert summary["current_stock"] == "80"
        assert summary["cost_per_unit"] == "2.6875"
        assert summary["stock_value"] == "215"
        assert summary["active_batches"] == 1
        assert summary["fifo_batch_value"] == "90"
        assert summary["is_low_stock"] is False
        assert summary["units"]["primary_unit_id"] == units["kg"]

    def test_low_stock_listing(self, flour, butter):
        inventory_service.consume_stock(flour.id, 45, "Rush order")
        low = {i.name for i in inventory_service.list_low_stock_items()}
        # Butter has 0 stock and a 0 minimum, which counts as low
        assert low == {"Flour", "Butter"}

    def test_transactions_newest_first(self, flour):
        inventory_service.receive_stock(flour.id, 1, 1, purchase_date="2026-01-01T00:00:00Z")
        inventory_service.consume_stock(flour.id, 1, "Test bake")
        txs = inventory_service.list_transactions(flour.id)
        assert [t.type for t in txs] == ["out", "in"]

    def test_create_item_audits_and_validates(self, units):
        item = inventory_service.create_item(
            name="Yeast", primary_unit_id=units["g"], opening_stock="500", cost_per_unit="0.01", code="YST",
        )
        assert item.closing_stock == Decimal("500")
        assert db.session.query(AuditLogEntry).filter_by(action="CREATE", resource="inventory").count() == 1

        with pytest.raises(ValidationError):
            inventory_service.create_item(name="Yeast 2", primary_unit_id=units["g"], code="YST")
        with pytest.raises(ItemNotFoundError):
            inventory_service.create_item(name="Ghost", primary_unit_id=987654)


class TestConcurrency:

    def test_stale_version_is_detected(self, flour):
        item = db.session.get(InventoryItem, flour.id)
        assert item.version_id == 1
        # Another writer bumps the row underneath this session
        db.session.execute(
            update(InventoryItem.__table__)
            .where(InventoryItem.__table__.c.id == flour.id)
            .values(version_id=InventoryItem.__table__.c.version_id + 1)
        )
        item.notes = "edited"
        with pytest.raises(StaleDataError):
            db.session.commit()
        db.session.rollback()

    def test_run_with_retry_retries_conflicts(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("conflict")
            return "done"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_run_with_retry_gives_up(self, db_session):
        def always_conflicts():
            raise StaleDataError("conflict")

        with pytest.raises(StaleDataError):
            run_with_retry(always_conflicts, attempts=2, backoff_base=0)

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def fails():
            calls.append(1)
            raise InsufficientStockError(1, "0", "1")

        with pytest.raises(InsufficientStockError):
            run_with_retry(fails, attempts=3, backoff_base=0)
        assert len(calls) == 1


def test_receipt_on_item_created_with_helper_keeps_invariant(units):
    item = make_item("Cocoa", units["kg"], opening_stock="2", cost_per_unit="8")
    inventory_service.receive_stock(item.id, 2, 10)
    inventory_service.consume_stock(item.id, 1, "Brownies")
    item = _reload(item.id)
    assert item.current_stock == Decimal("3")
    assert item.cost_per_unit == Decimal("9")
    _assert_closing_invariant(item)
