"""Unit tests for category costing rules."""

from __future__ import annotations

from decimal import Decimal

import pytest

from frccalc.config import RatesConfig
from frccalc.lineitems.pricing import CostingRates, compute_line_total
from frccalc.models import LineCategory


class TestComputeLineTotal:
    """Test line totals per category."""

    def test_part_is_price_times_quantity(self, rates):
        total = compute_line_total(
            LineCategory.PART, Decimal("125.50"), Decimal("2"), None, rates
        )
        assert total == Decimal("251.00")

    def test_part_markup_applied(self):
        rates = CostingRates(
            labour_rate=Decimal("500"),
            paint_rate=Decimal("2000"),
            part_markup_percentage=Decimal("10"),
        )
        total = compute_line_total(LineCategory.PART, Decimal("100"), Decimal("1"), None, rates)
        assert total == Decimal("110.00")

    def test_labour_uses_hours_and_rate(self, rates):
        total = compute_line_total(
            LineCategory.LABOUR, Decimal("0"), Decimal("1"), Decimal("2.5"), rates
        )
        assert total == Decimal("1250.00")

    def test_labour_without_hours_falls_back_to_price(self, rates):
        total = compute_line_total(
            LineCategory.LABOUR, Decimal("300"), Decimal("2"), None, rates
        )
        assert total == Decimal("600.00")

    def test_paint_uses_panels_and_rate(self, rates):
        total = compute_line_total(
            LineCategory.PAINT, Decimal("0"), Decimal("1"), Decimal("0.5"), rates
        )
        assert total == Decimal("1000.00")

    def test_other_uses_outwork_markup(self):
        rates = CostingRates(
            labour_rate=Decimal("500"),
            paint_rate=Decimal("2000"),
            part_markup_percentage=Decimal("50"),
            outwork_markup_percentage=Decimal("20"),
        )
        total = compute_line_total(LineCategory.OTHER, Decimal("250"), Decimal("1"), None, rates)
        assert total == Decimal("300.00")

    def test_rounds_half_up_to_cents(self, rates):
        total = compute_line_total(
            LineCategory.PART, Decimal("0.125"), Decimal("1"), None, rates
        )
        assert total == Decimal("0.13")

    @pytest.mark.parametrize("field", ["unit_price", "quantity", "hours"])
    def test_negative_inputs_rejected(self, rates, field):
        values = {"unit_price": Decimal("10"), "quantity": Decimal("1"), "hours": Decimal("1")}
        values[field] = Decimal("-1")

        with pytest.raises(ValueError, match=field):
            compute_line_total(LineCategory.LABOUR, rates=rates, **values)


class TestCostingRates:
    """Test rate construction and overrides."""

    def test_from_config(self):
        rates = CostingRates.from_config(RatesConfig(labour_rate=Decimal("420")))
        assert rates.labour_rate == Decimal("420")
        assert rates.paint_rate == Decimal("2000.00")

    def test_with_overrides_replaces_given_fields(self, rates):
        updated = rates.with_overrides({"labour_rate": "650", "paint_rate": None})

        assert updated.labour_rate == Decimal("650")
        assert updated.paint_rate == rates.paint_rate

    def test_with_overrides_empty_returns_same(self, rates):
        assert rates.with_overrides(None) is rates
        assert rates.with_overrides({"unknown": 1}) is rates

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "lots"])
    def test_with_overrides_rejects_bad_numbers(self, rates, raw):
        with pytest.raises(ValueError, match="Rate"):
            rates.with_overrides({"paint_rate": raw})
