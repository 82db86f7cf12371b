"""FRCCalc Pydantic models for type-safe data validation.

Line items are immutable facts from upstream; decisions are the mutable
human judgments layered over them. All money values are Decimal, two
decimal places.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(value: Decimal | int | float | str) -> Decimal:
    """Round a money value to cents (half-up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class LineOrigin(str, Enum):
    """Where a line item came from."""

    ORIGINAL = "original"  # Finalized estimate
    ADDITIONAL = "additional"  # Additionals workflow


class LineCategory(str, Enum):
    """Costing category; drives the line-total rule."""

    PART = "part"
    LABOUR = "labour"
    PAINT = "paint"
    OTHER = "other"  # Outwork, sundries


class DecisionStatus(str, Enum):
    """Human decision recorded in the ledger."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    ADJUSTED = "adjusted"


class DisplayStatus(str, Enum):
    """Status shown on an FRC line."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    ADJUSTED = "adjusted"
    REMOVED_DEDUCTION = "removed_deduction"


class MatchConfidence(str, Enum):
    """How closely attached invoices agree with a line's effective amount."""

    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


class FRCStatus(str, Enum):
    """Lifecycle of an assessment's final repair costing."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


LOCKED_DISPLAY_STATUSES = frozenset(
    {DisplayStatus.DECLINED, DisplayStatus.REMOVED_DEDUCTION}
)
CONTRIBUTING_DISPLAY_STATUSES = frozenset(
    {DisplayStatus.APPROVED, DisplayStatus.ADJUSTED, DisplayStatus.REMOVED_DEDUCTION}
)


class LineItem(BaseModel):
    """One billable item from the estimate or the additionals workflow."""

    model_config = ConfigDict(frozen=True)

    id: str
    origin: LineOrigin
    category: LineCategory
    description: str = ""

    unit_price: Decimal = ZERO
    quantity: Decimal = Decimal("1")
    hours: Decimal | None = None  # Labour hours or paint panels
    line_total: Decimal

    removed_in_source: bool = False
    parent_line_item_id: str | None = None  # Original line this one replaces

    @field_validator("unit_price", "line_total")
    @classmethod
    def round_money(cls, v: Decimal) -> Decimal:
        return quantize_money(v)


class Decision(BaseModel):
    """Ledger record of the human decision for one line item."""

    line_item_id: str
    assessment_id: str
    status: DecisionStatus = DecisionStatus.PENDING
    adjusted_value: Decimal | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None
    version: int = 1
    stale: bool = False

    @property
    def is_consistent(self) -> bool:
        """Adjusted decisions carry a value; every other status carries none."""
        if self.status == DecisionStatus.ADJUSTED:
            return self.adjusted_value is not None
        return self.adjusted_value is None


class FRCLineView(BaseModel):
    """Reconciled view of one line. Derived, never persisted."""

    line_item_id: str
    origin: LineOrigin
    category: LineCategory
    description: str
    parent_line_item_id: str | None = None

    display_status: DisplayStatus
    decision_status: DecisionStatus
    decision_version: int

    baseline_amount: Decimal
    effective_amount: Decimal
    editable: bool

    invoice_match: MatchConfidence | None = None

    @property
    def is_locked(self) -> bool:
        return self.display_status in LOCKED_DISPLAY_STATUSES


class CategoryTotals(BaseModel):
    """Baseline and new subtotal for one costing category."""

    category: LineCategory
    baseline_total: Decimal = ZERO
    new_total: Decimal = ZERO


class FRCAggregate(BaseModel):
    """Totals derived from the line views. Holds no independent state."""

    baseline_total: Decimal
    new_total: Decimal
    delta: Decimal

    estimate_new_total: Decimal = ZERO
    additionals_new_total: Decimal = ZERO
    pending_count: int = 0
    category_breakdown: list[CategoryTotals] = Field(default_factory=list)


class FRCResult(BaseModel):
    """Output of one reconciliation run."""

    assessment_id: str
    snapshot_version: str
    frozen: bool = False
    lines: list[FRCLineView]
    aggregate: FRCAggregate

    def line(self, line_item_id: str) -> FRCLineView | None:
        for view in self.lines:
            if view.line_item_id == line_item_id:
                return view
        return None


class InvoiceMatch(BaseModel):
    """An uploaded invoice document attached to an FRC line."""

    line_item_id: str
    invoice_document_id: str
    invoice_amount: Decimal | None = None
    match_confidence: MatchConfidence = MatchConfidence.NONE
    attached_at: datetime | None = None


class FRCRecord(BaseModel):
    """Lifecycle and sign-off state of an assessment's costing."""

    assessment_id: str
    status: FRCStatus = FRCStatus.NOT_STARTED
    snapshot_version: str | None = None
    line_items_version: int = 0
    started_at: datetime | None = None
    last_merge_at: datetime | None = None
    completed_at: datetime | None = None
    signed_off_by_name: str | None = None
    signed_off_by_email: str | None = None
    signed_off_by_role: str | None = None
    sign_off_notes: str | None = None

    @property
    def is_frozen(self) -> bool:
        return self.status == FRCStatus.COMPLETED


class AuditEntry(BaseModel):
    """Audit event emitted for each recorded decision."""

    assessment_id: str
    line_item_id: str
    action: str = "frc_decision_recorded"
    old_status: DecisionStatus | None = None
    new_status: DecisionStatus
    adjusted_value: Decimal | None = None
    actor: str
    timestamp: datetime
