"""Invoice attachments shown alongside FRC lines."""

from frccalc.invoices.matching import compute_match_confidence
from frccalc.invoices.tracker import InvoiceAttachmentTracker

__all__ = [
    "InvoiceAttachmentTracker",
    "compute_match_confidence",
]
