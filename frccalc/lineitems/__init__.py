"""Line item store: costing rules and immutable snapshots."""

from frccalc.lineitems.pricing import CostingRates, compute_line_total
from frccalc.lineitems.snapshot import (
    LineItemSnapshot,
    build_snapshot,
    parse_category,
    snapshot_from_payload,
)

__all__ = [
    "CostingRates",
    "LineItemSnapshot",
    "build_snapshot",
    "compute_line_total",
    "parse_category",
    "snapshot_from_payload",
]
