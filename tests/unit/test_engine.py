"""Tests for frccalc.reconciliation.engine - pure FRC reconciliation.

Covers line classification, totals and the invariants that abort a run.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from frccalc.config import InvoiceMatchConfig
from frccalc.errors import ReconciliationInvariantError
from frccalc.lineitems.snapshot import LineItemSnapshot
from frccalc.models import (
    Decision,
    DecisionStatus,
    DisplayStatus,
    LineCategory,
    LineOrigin,
    MatchConfidence,
)
from frccalc.reconciliation.engine import reconcile


def _snapshot(assessment_id, *items) -> LineItemSnapshot:
    return LineItemSnapshot(assessment_id=assessment_id, items=tuple(items))


class TestScenarios:
    """Worked examples for a single bumper repair."""

    def test_pending_original_line(self, assessment_id, single_part_snapshot, make_decision):
        """One pending part: nothing approved yet."""
        result = reconcile(single_part_snapshot, [make_decision(assessment_id, "L1")])

        view = result.line("L1")
        assert view.display_status == DisplayStatus.PENDING
        assert view.effective_amount == Decimal("0.00")
        assert view.editable is True
        assert result.aggregate.baseline_total == Decimal("1000.00")
        assert result.aggregate.new_total == Decimal("0.00")
        assert result.aggregate.delta == Decimal("-1000.00")
        assert result.aggregate.pending_count == 1

    def test_approved_original_line(self, assessment_id, single_part_snapshot, make_decision):
        """Approving the part brings the new total up to the baseline."""
        decision = make_decision(assessment_id, "L1", DecisionStatus.APPROVED, version=2)

        result = reconcile(single_part_snapshot, [decision])

        assert result.line("L1").display_status == DisplayStatus.APPROVED
        assert result.line("L1").decision_version == 2
        assert result.aggregate.new_total == Decimal("1000.00")
        assert result.aggregate.delta == Decimal("0.00")

    def test_approved_additional_line(self, assessment_id, make_item, make_decision):
        """An approved additional adds to the new total but not the baseline."""
        snapshot = _snapshot(
            assessment_id,
            make_item("L1"),
            make_item("A1", total="200.00", origin=LineOrigin.ADDITIONAL),
        )
        decisions = [
            make_decision(assessment_id, "L1", DecisionStatus.APPROVED),
            make_decision(assessment_id, "A1", DecisionStatus.APPROVED),
        ]

        result = reconcile(snapshot, decisions)

        assert result.aggregate.baseline_total == Decimal("1000.00")
        assert result.aggregate.new_total == Decimal("1200.00")
        assert result.aggregate.delta == Decimal("200.00")
        assert result.aggregate.estimate_new_total == Decimal("1000.00")
        assert result.aggregate.additionals_new_total == Decimal("200.00")

    def test_removed_original_line(self, assessment_id, make_item, make_decision):
        """A line removed upstream is a locked deduction outside the baseline."""
        snapshot = _snapshot(assessment_id, make_item("L1", removed=True))
        decision = make_decision(assessment_id, "L1", DecisionStatus.APPROVED)

        result = reconcile(snapshot, [decision])

        view = result.line("L1")
        assert view.display_status == DisplayStatus.REMOVED_DEDUCTION
        assert view.decision_status == DecisionStatus.APPROVED
        assert view.effective_amount == Decimal("-1000.00")
        assert view.editable is False
        assert result.aggregate.baseline_total == Decimal("0.00")
        assert result.aggregate.new_total == Decimal("-1000.00")
        assert result.aggregate.delta == Decimal("-1000.00")


class TestClassification:
    """Test display status per decision."""

    def test_declined_never_contributes(self, assessment_id, single_part_snapshot, make_decision):
        decision = make_decision(assessment_id, "L1", DecisionStatus.DECLINED)

        result = reconcile(single_part_snapshot, [decision])

        view = result.line("L1")
        assert view.display_status == DisplayStatus.DECLINED
        assert view.effective_amount == Decimal("0.00")
        assert view.editable is False
        assert view.is_locked
        assert result.aggregate.new_total == Decimal("0.00")

    def test_adjusted_uses_adjusted_value(self, assessment_id, single_part_snapshot, make_decision):
        decision = make_decision(assessment_id, "L1", DecisionStatus.ADJUSTED, "750.456")

        result = reconcile(single_part_snapshot, [decision])

        view = result.line("L1")
        assert view.display_status == DisplayStatus.ADJUSTED
        assert view.effective_amount == Decimal("750.46")
        assert view.editable is True
        assert result.aggregate.delta == Decimal("-249.54")

    @pytest.mark.parametrize(
        "status",
        [DecisionStatus.PENDING, DecisionStatus.DECLINED, DecisionStatus.ADJUSTED],
    )
    def test_removal_wins_over_any_decision(self, assessment_id, make_item, make_decision, status):
        snapshot = _snapshot(assessment_id, make_item("L1", removed=True))
        value = "10.00" if status == DecisionStatus.ADJUSTED else None

        result = reconcile(snapshot, [make_decision(assessment_id, "L1", status, value)])

        assert result.line("L1").display_status == DisplayStatus.REMOVED_DEDUCTION
        assert result.line("L1").effective_amount == Decimal("-1000.00")

    def test_frozen_locks_every_line(self, assessment_id, single_part_snapshot, make_decision):
        decision = make_decision(assessment_id, "L1", DecisionStatus.APPROVED)

        result = reconcile(single_part_snapshot, [decision], frozen=True)

        assert result.frozen is True
        assert all(not view.editable for view in result.lines)

    def test_price_refresh_keeps_decision(self, assessment_id, make_item, make_decision):
        """Approved stays approved and follows the new baseline."""
        decision = make_decision(assessment_id, "L1", DecisionStatus.APPROVED)
        repriced = _snapshot(assessment_id, make_item("L1", total="1100.00"))

        result = reconcile(repriced, [decision])

        assert result.line("L1").display_status == DisplayStatus.APPROVED
        assert result.line("L1").effective_amount == Decimal("1100.00")


class TestAggregate:
    """Test totals and breakdowns."""

    def test_totals_always_reconcile(self, assessment_id, make_item, make_decision):
        snapshot = _snapshot(
            assessment_id,
            make_item("L1", total="1000.00"),
            make_item("L2", total="333.33", category=LineCategory.LABOUR),
            make_item("L3", total="250.00", removed=True, category=LineCategory.PAINT),
            make_item("A1", total="99.99", origin=LineOrigin.ADDITIONAL),
            make_item("A2", total="10.00", origin=LineOrigin.ADDITIONAL),
        )
        decisions = [
            make_decision(assessment_id, "L1", DecisionStatus.ADJUSTED, "900.00"),
            make_decision(assessment_id, "L2", DecisionStatus.APPROVED),
            make_decision(assessment_id, "L3", DecisionStatus.APPROVED),
            make_decision(assessment_id, "A1", DecisionStatus.DECLINED),
            make_decision(assessment_id, "A2"),
        ]

        totals = reconcile(snapshot, decisions).aggregate

        assert totals.baseline_total == Decimal("1333.33")
        assert totals.new_total == Decimal("983.33")  # 900 + 333.33 - 250
        assert totals.new_total == totals.baseline_total + totals.delta
        assert totals.pending_count == 1

    def test_category_breakdown(self, assessment_id, make_item, make_decision):
        snapshot = _snapshot(
            assessment_id,
            make_item("L1", total="1000.00"),
            make_item("L2", total="500.00", category=LineCategory.LABOUR),
        )
        decisions = [
            make_decision(assessment_id, "L1", DecisionStatus.APPROVED),
            make_decision(assessment_id, "L2"),
        ]

        breakdown = {
            row.category: row for row in reconcile(snapshot, decisions).aggregate.category_breakdown
        }

        assert list(breakdown) == list(LineCategory)
        assert breakdown[LineCategory.PART].new_total == Decimal("1000.00")
        assert breakdown[LineCategory.LABOUR].baseline_total == Decimal("500.00")
        assert breakdown[LineCategory.LABOUR].new_total == Decimal("0.00")
        assert breakdown[LineCategory.PAINT].baseline_total == Decimal("0.00")

    def test_empty_snapshot(self, assessment_id):
        result = reconcile(_snapshot(assessment_id), [])

        assert result.lines == []
        assert result.aggregate.baseline_total == Decimal("0.00")
        assert result.aggregate.delta == Decimal("0.00")


class TestDeterminism:
    """Same inputs, same output."""

    def test_identical_inputs_give_identical_json(self, assessment_id, make_item, make_decision):
        snapshot = _snapshot(
            assessment_id,
            make_item("L2", total="12.34"),
            make_item("L1", total="1000.00"),
        )
        decisions = [
            make_decision(assessment_id, "L1", DecisionStatus.APPROVED),
            make_decision(assessment_id, "L2", DecisionStatus.ADJUSTED, "10.00"),
        ]

        first = reconcile(snapshot, decisions).model_dump_json()
        second = reconcile(snapshot, list(reversed(decisions))).model_dump_json()

        assert first == second

    def test_lines_follow_snapshot_order(self, assessment_id, make_item, make_decision):
        snapshot = _snapshot(assessment_id, make_item("B"), make_item("A"))
        decisions = {
            "A": make_decision(assessment_id, "A"),
            "B": make_decision(assessment_id, "B"),
        }

        result = reconcile(snapshot, decisions)

        assert [view.line_item_id for view in result.lines] == ["B", "A"]
        assert result.snapshot_version == snapshot.fingerprint()


class TestInvoiceMatch:
    """Invoice confidence shown on line views."""

    def test_invoice_amount_sets_confidence(self, assessment_id, single_part_snapshot, make_decision):
        decision = make_decision(assessment_id, "L1", DecisionStatus.APPROVED)

        result = reconcile(
            single_part_snapshot,
            [decision],
            invoice_amounts={"L1": Decimal("1000.02")},
            match_config=InvoiceMatchConfig(),
        )

        assert result.line("L1").invoice_match == MatchConfidence.EXACT

    def test_no_invoice_leaves_match_empty(self, assessment_id, single_part_snapshot, make_decision):
        result = reconcile(single_part_snapshot, [make_decision(assessment_id, "L1")])

        assert result.line("L1").invoice_match is None


class TestInvariants:
    """Inconsistent inputs abort the run."""

    def test_duplicate_line_ids(self, assessment_id, make_item, make_decision):
        snapshot = _snapshot(assessment_id, make_item("L1"), make_item("L1"))

        with pytest.raises(ReconciliationInvariantError, match="Duplicate"):
            reconcile(snapshot, [make_decision(assessment_id, "L1")])

    def test_missing_decision(self, assessment_id, single_part_snapshot):
        with pytest.raises(ReconciliationInvariantError, match="no decision"):
            reconcile(single_part_snapshot, [])

    def test_adjusted_without_value(self, assessment_id, single_part_snapshot):
        decision = Decision(
            line_item_id="L1", assessment_id=assessment_id, status=DecisionStatus.ADJUSTED
        )

        with pytest.raises(ReconciliationInvariantError):
            reconcile(single_part_snapshot, [decision])

    def test_value_on_non_adjusted(self, assessment_id, single_part_snapshot):
        decision = Decision(
            line_item_id="L1",
            assessment_id=assessment_id,
            status=DecisionStatus.APPROVED,
            adjusted_value=Decimal("5"),
        )

        with pytest.raises(ReconciliationInvariantError):
            reconcile(single_part_snapshot, [decision])

    def test_decision_from_other_assessment(self, single_part_snapshot, make_decision):
        with pytest.raises(ReconciliationInvariantError, match="belongs to assessment"):
            reconcile(single_part_snapshot, [make_decision("other", "L1")])

    def test_stale_decision_for_present_line(self, assessment_id, single_part_snapshot):
        decision = Decision(line_item_id="L1", assessment_id=assessment_id, stale=True)

        with pytest.raises(ReconciliationInvariantError, match="stale"):
            reconcile(single_part_snapshot, [decision])

    def test_negative_line_total(self, assessment_id, make_item, make_decision):
        snapshot = _snapshot(assessment_id, make_item("L1", total="-5.00"))

        with pytest.raises(ReconciliationInvariantError, match="negative"):
            reconcile(snapshot, [make_decision(assessment_id, "L1")])

    def test_decisions_for_other_lines_are_ignored(self, assessment_id, single_part_snapshot, make_decision):
        decisions = [
            make_decision(assessment_id, "L1", DecisionStatus.APPROVED),
            make_decision(assessment_id, "GONE", DecisionStatus.APPROVED),
        ]

        result = reconcile(single_part_snapshot, decisions)

        assert [view.line_item_id for view in result.lines] == ["L1"]
        assert result.aggregate.new_total == Decimal("1000.00")
