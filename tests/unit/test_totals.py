"""
Unit tests for purchase order total calculation.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from crud.purchase_orders import calculate_total, line_total


def _line(quantity, unit_cost):
    return SimpleNamespace(quantity=quantity, unit_cost=Decimal(unit_cost))


@pytest.mark.unit
class TestCalculateTotal:
    """Tests for calculate_total and line_total."""

    def test_items_tax_and_shipping_are_summed(self):
        """5 x 10 + 2 x 25 + 3 tax + 7 shipping."""
        total = calculate_total([_line(5, "10"), _line(2, "25")], Decimal("3"), Decimal("7"))
        assert total == Decimal("110.00")

    def test_no_charges(self):
        assert calculate_total([_line(1, "19.99")], 0, 0) == Decimal("19.99")

    def test_missing_charges_count_as_zero(self):
        assert calculate_total([_line(3, "4.50")], None, None) == Decimal("13.50")

    def test_rounds_to_cents(self):
        assert calculate_total([_line(1, "0.10")], Decimal("0.005"), 0) == Decimal("0.11")

    def test_line_total_uses_the_stored_unit_cost(self):
        # 0.335 is stored as 0.34, so the line is 3 x 0.34
        assert line_total(3, Decimal("0.335")) == Decimal("1.02")

    def test_empty_order_is_charges_only(self):
        assert calculate_total([], Decimal("2.50"), Decimal("1.25")) == Decimal("3.75")
