# Overview: Pytest coverage for the weighted-average cost formula.

from decimal import Decimal

import pytest

from bakesewa.services.costing import next_weighted_average, stock_value


class TestNextWeightedAverage:

    def test_blends_existing_stock_with_receipt(self):
        qty, cost = next_weighted_average("50", "2.50", "30", "3.00")
        assert qty == Decimal("80")
        assert cost == Decimal("2.6875")

    def test_equal_quantities_average_the_costs(self):
        qty, cost = next_weighted_average("50", "2", "50", "4")
        assert qty == Decimal("100")
        assert cost == Decimal("3")

    def test_empty_item_takes_purchase_cost(self):
        qty, cost = next_weighted_average(0, 0, 20, 5)
        assert qty == Decimal("20")
        assert cost == Decimal("5")

    def test_zero_resulting_quantity_does_not_divide_by_zero(self):
        qty, cost = next_weighted_average(0, "3.10", 0, "4.20")
        assert qty == Decimal("0")
        assert cost == Decimal("4.20")

    def test_free_receipt_dilutes_cost(self):
        _, cost = next_weighted_average("10", "6", "10", "0")
        assert cost == Decimal("3")

    def test_float_inputs_do_not_leak_binary_error(self):
        _, cost = next_weighted_average(0.1, 0.2, 0.2, 0.1)
        # (0.02 + 0.02) / 0.3
        assert cost == Decimal("0.133333")

    def test_rejects_non_numeric_input(self):
        with pytest.raises(ValueError):
            next_weighted_average("ten", 1, 1, 1)
        with pytest.raises(ValueError):
            next_weighted_average(True, 1, 1, 1)


def test_stock_value():
    assert stock_value("80", "2.6875") == Decimal("215.0000")
