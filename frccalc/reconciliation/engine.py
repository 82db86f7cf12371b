"""Reconciliation engine for final repair costing.

Exposes high-level function:
- reconcile(snapshot, decisions) -> FRCResult

Pure: no I/O and no hidden state. The same snapshot and decisions always
produce byte-identical output. Any integrity violation aborts the whole
run with ReconciliationInvariantError; partial totals are never returned.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from frccalc.config import InvoiceMatchConfig
from frccalc.errors import ReconciliationInvariantError
from frccalc.invoices.matching import compute_match_confidence
from frccalc.lineitems.snapshot import LineItemSnapshot
from frccalc.models import (
    CONTRIBUTING_DISPLAY_STATUSES,
    LOCKED_DISPLAY_STATUSES,
    ZERO,
    CategoryTotals,
    Decision,
    DecisionStatus,
    DisplayStatus,
    FRCAggregate,
    FRCLineView,
    FRCResult,
    LineCategory,
    LineItem,
    LineOrigin,
    quantize_money,
)

_DISPLAY_FOR_DECISION = {
    DecisionStatus.PENDING: DisplayStatus.PENDING,
    DecisionStatus.APPROVED: DisplayStatus.APPROVED,
    DecisionStatus.DECLINED: DisplayStatus.DECLINED,
    DecisionStatus.ADJUSTED: DisplayStatus.ADJUSTED,
}


# =============================================================================
# Classification
# =============================================================================

def classify_line(item: LineItem, decision: Decision, frozen: bool = False) -> FRCLineView:
    """Merge one immutable line with its decision into a line view.

    A line removed upstream is always a locked deduction, whatever the
    ledger says about it.
    """
    baseline = quantize_money(item.line_total)

    if item.removed_in_source:
        display = DisplayStatus.REMOVED_DEDUCTION
        decision_status = DecisionStatus.APPROVED
        effective = -baseline
    else:
        decision_status = decision.status
        display = _DISPLAY_FOR_DECISION[decision_status]
        if decision_status == DecisionStatus.APPROVED:
            effective = baseline
        elif decision_status == DecisionStatus.ADJUSTED:
            effective = quantize_money(decision.adjusted_value)
        else:
            effective = ZERO

    return FRCLineView(
        line_item_id=item.id,
        origin=item.origin,
        category=item.category,
        description=item.description,
        parent_line_item_id=item.parent_line_item_id,
        display_status=display,
        decision_status=decision_status,
        decision_version=decision.version,
        baseline_amount=baseline,
        effective_amount=effective,
        editable=not frozen and display not in LOCKED_DISPLAY_STATUSES,
    )


# =============================================================================
# Aggregation
# =============================================================================

def aggregate(views: Iterable[FRCLineView], removed_ids: set[str] | None = None) -> FRCAggregate:
    """Compute baseline, new total and delta from line views.

    Baseline covers original lines that were not removed upstream; the new
    total covers approved, adjusted and removed-deduction lines.
    """
    views = list(views)
    removed_ids = removed_ids or {
        view.line_item_id
        for view in views
        if view.display_status == DisplayStatus.REMOVED_DEDUCTION
    }

    baseline_total = ZERO
    new_total = ZERO
    estimate_new = ZERO
    additionals_new = ZERO
    pending = 0
    by_category = {category: [ZERO, ZERO] for category in LineCategory}

    for view in views:
        if view.origin == LineOrigin.ORIGINAL and view.line_item_id not in removed_ids:
            baseline_total += view.baseline_amount
            by_category[view.category][0] += view.baseline_amount

        if view.display_status in CONTRIBUTING_DISPLAY_STATUSES:
            new_total += view.effective_amount
            by_category[view.category][1] += view.effective_amount
            if view.origin == LineOrigin.ORIGINAL:
                estimate_new += view.effective_amount
            else:
                additionals_new += view.effective_amount

        if view.display_status == DisplayStatus.PENDING:
            pending += 1

    return FRCAggregate(
        baseline_total=quantize_money(baseline_total),
        new_total=quantize_money(new_total),
        delta=quantize_money(new_total - baseline_total),
        estimate_new_total=quantize_money(estimate_new),
        additionals_new_total=quantize_money(additionals_new),
        pending_count=pending,
        category_breakdown=[
            CategoryTotals(
                category=category,
                baseline_total=quantize_money(totals[0]),
                new_total=quantize_money(totals[1]),
            )
            for category, totals in by_category.items()
        ],
    )


# =============================================================================
# Entry point
# =============================================================================

def reconcile(
    snapshot: LineItemSnapshot,
    decisions: Iterable[Decision] | Mapping[str, Decision],
    invoice_amounts: Mapping[str, Decimal] | None = None,
    frozen: bool = False,
    match_config: InvoiceMatchConfig | None = None,
) -> FRCResult:
    """Reconcile a line-item snapshot with ledger decisions.

    Every snapshot line must already have a decision (the ledger is seeded
    before this is called).

    Args:
        snapshot: Current line-item snapshot
        decisions: Active decisions, as a list or keyed by line item id
        invoice_amounts: Invoiced amount per line, for match display only
        frozen: True once the costing has been signed off
        match_config: Invoice match tolerances

    Returns:
        FRCResult with line views in snapshot order and aggregate totals

    Raises:
        ReconciliationInvariantError: If the inputs are inconsistent
    """
    duplicates = snapshot.duplicate_ids()
    if duplicates:
        raise ReconciliationInvariantError(f"Duplicate line item ids in snapshot: {duplicates}")

    by_id = _index_decisions(snapshot.assessment_id, decisions)
    invoice_amounts = invoice_amounts or {}

    views: list[FRCLineView] = []
    for item in snapshot.items:
        _check_item(item)
        decision = by_id.get(item.id)
        if decision is None:
            raise ReconciliationInvariantError(
                f"Line item {item.id!r} has no decision; ledger was not seeded"
            )
        if decision.stale:
            raise ReconciliationInvariantError(
                f"Decision for line item {item.id!r} is stale but the line is present"
            )

        view = classify_line(item, decision, frozen=frozen)
        if item.id in invoice_amounts:
            view = view.model_copy(
                update={
                    "invoice_match": compute_match_confidence(
                        view.effective_amount, invoice_amounts[item.id], match_config
                    )
                }
            )
        views.append(view)

    removed_ids = {item.id for item in snapshot.items if item.removed_in_source}
    totals = aggregate(views, removed_ids)

    if totals.new_total != totals.baseline_total + totals.delta:
        raise ReconciliationInvariantError("Totals do not reconcile")

    return FRCResult(
        assessment_id=snapshot.assessment_id,
        snapshot_version=snapshot.fingerprint(),
        frozen=frozen,
        lines=views,
        aggregate=totals,
    )


def _index_decisions(
    assessment_id: str,
    decisions: Iterable[Decision] | Mapping[str, Decision],
) -> dict[str, Decision]:
    values = decisions.values() if isinstance(decisions, Mapping) else decisions

    by_id: dict[str, Decision] = {}
    for decision in values:
        if decision.assessment_id != assessment_id:
            raise ReconciliationInvariantError(
                f"Decision for {decision.line_item_id!r} belongs to assessment "
                f"{decision.assessment_id!r}, not {assessment_id!r}"
            )
        if not decision.is_consistent:
            raise ReconciliationInvariantError(
                f"Decision for {decision.line_item_id!r} is {decision.status.value} "
                f"with adjusted value {decision.adjusted_value!r}"
            )
        if decision.line_item_id in by_id:
            raise ReconciliationInvariantError(
                f"More than one decision for line item {decision.line_item_id!r}"
            )
        by_id[decision.line_item_id] = decision
    return by_id


def _check_item(item: LineItem) -> None:
    if item.line_total < 0:
        raise ReconciliationInvariantError(
            f"Line item {item.id!r} has negative total {item.line_total}"
        )
    if item.parent_line_item_id == item.id:
        raise ReconciliationInvariantError(f"Line item {item.id!r} is its own parent")
