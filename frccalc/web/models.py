"""Request/response models for the FRC web API.

Usage:
    from frccalc.web.models import DecisionRequest

    @router.post("/assessments/{assessment_id}/frc/decisions")
    async def record_decision(assessment_id: str, request: DecisionRequest):
        ...
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from frccalc.lineitems.snapshot import LineItemSnapshot, snapshot_from_payload
from frccalc.models import Decision, DecisionStatus, FRCRecord, FRCResult, InvoiceMatch
from frccalc.reconciliation.grouping import FRCLineGroup


# ============================================================================
# Requests
# ============================================================================


class SnapshotPayload(BaseModel):
    """Upstream estimate and additionals lines the snapshot is built from."""

    estimate_lines: list[dict[str, Any]] = Field(default_factory=list)
    additional_lines: list[dict[str, Any]] = Field(default_factory=list)
    excluded_line_ids: list[str] = Field(default_factory=list)
    rates: dict[str, Decimal | None] | None = None  # Per-estimate rate overrides

    def to_snapshot(self, assessment_id: str) -> LineItemSnapshot:
        return snapshot_from_payload(assessment_id, self.model_dump())


class DecisionRequest(BaseModel):
    """Used by: POST /assessments/{id}/frc/decisions"""

    snapshot: SnapshotPayload
    line_item_id: str
    status: DecisionStatus
    adjusted_value: Decimal | None = None
    decided_by: str | None = None
    expected_version: int | None = None


class InvoiceAttachRequest(BaseModel):
    """Used by: POST /assessments/{id}/frc/invoices"""

    snapshot: SnapshotPayload
    line_item_id: str
    invoice_document_id: str
    invoice_amount: Decimal | None = None


class SignOffRequest(BaseModel):
    """Used by: POST /assessments/{id}/frc/sign-off"""

    snapshot: SnapshotPayload
    name: str
    email: str | None = None
    role: str | None = None
    notes: str | None = None


# ============================================================================
# Responses
# ============================================================================


class LineGroupResponse(BaseModel):
    """One display row: a line plus the replacements nested under it."""

    line_item_id: str
    struck: bool
    orphan: bool
    net_amount: Decimal
    replacement_ids: list[str]

    @classmethod
    def from_group(cls, group: FRCLineGroup) -> LineGroupResponse:
        return cls(
            line_item_id=group.line.line_item_id,
            struck=group.struck,
            orphan=group.orphan,
            net_amount=group.net_amount,
            replacement_ids=[view.line_item_id for view in group.replacements],
        )


class ReconcileResponse(BaseModel):
    result: FRCResult
    groups: list[LineGroupResponse]
    record: FRCRecord


class DecisionResponse(BaseModel):
    decision: Decision


class InvoiceAttachResponse(BaseModel):
    match: InvoiceMatch


class SignOffResponse(BaseModel):
    record: FRCRecord
