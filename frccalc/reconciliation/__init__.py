"""Reconciliation of immutable line items with human decisions."""

from frccalc.reconciliation.engine import aggregate, classify_line, reconcile
from frccalc.reconciliation.grouping import FRCLineGroup, group_lines
from frccalc.reconciliation.service import FRCService

__all__ = [
    "FRCLineGroup",
    "FRCService",
    "aggregate",
    "classify_line",
    "group_lines",
    "reconcile",
]
