"""Invoice amount vs. FRC line amount comparison."""

from __future__ import annotations

from decimal import Decimal

from frccalc.config import InvoiceMatchConfig
from frccalc.models import MatchConfidence

_HUNDRED = Decimal("100")


def compute_match_confidence(
    effective_amount: Decimal,
    invoice_amount: Decimal | None,
    config: InvoiceMatchConfig | None = None,
) -> MatchConfidence:
    """Grade how well an invoiced amount agrees with a line's effective amount.

    Exact within ``exact_tolerance``; Partial within the wider of that and
    ``partial_tolerance_pct`` percent of the effective amount; otherwise None.
    """
    if invoice_amount is None:
        return MatchConfidence.NONE
    if config is None:
        config = InvoiceMatchConfig()

    difference = abs(Decimal(invoice_amount) - Decimal(effective_amount))
    if difference <= config.exact_tolerance:
        return MatchConfidence.EXACT

    partial_window = max(
        config.exact_tolerance,
        abs(Decimal(effective_amount)) * config.partial_tolerance_pct / _HUNDRED,
    )
    if difference <= partial_window:
        return MatchConfidence.PARTIAL
    return MatchConfidence.NONE
