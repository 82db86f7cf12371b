"""Final repair costing routes.

Routes:
- POST /assessments/{assessment_id}/frc/reconcile  - Run reconciliation
- POST /assessments/{assessment_id}/frc/decisions  - Record a line decision
- POST /assessments/{assessment_id}/frc/invoices   - Attach an invoice to a line
- POST /assessments/{assessment_id}/frc/sign-off   - Sign off the costing
- GET  /assessments/{assessment_id}/frc/history    - Decision audit trail

FRCError subclasses propagate to the app's exception handlers.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from frccalc.db.connection import get_session
from frccalc.lineitems.snapshot import LineItemSnapshot
from frccalc.models import AuditEntry
from frccalc.reconciliation.grouping import group_lines
from frccalc.reconciliation.service import FRCService
from frccalc.web.models import (
    DecisionRequest,
    DecisionResponse,
    InvoiceAttachRequest,
    InvoiceAttachResponse,
    LineGroupResponse,
    ReconcileResponse,
    SignOffRequest,
    SignOffResponse,
    SnapshotPayload,
)

router = APIRouter(prefix="/assessments/{assessment_id}/frc", tags=["frc"])


def _build_snapshot(assessment_id: str, payload: SnapshotPayload) -> LineItemSnapshot:
    try:
        return payload.to_snapshot(assessment_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid line items: {e}") from e


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(assessment_id: str, payload: SnapshotPayload):
    """Reconcile the submitted line items with recorded decisions."""
    snapshot = _build_snapshot(assessment_id, payload)

    async with get_session() as session:
        service = FRCService(session, assessment_id)
        result = await service.reconcile(snapshot)
        record = await service.get_record()

    return ReconcileResponse(
        result=result,
        groups=[LineGroupResponse.from_group(group) for group in group_lines(result.lines)],
        record=record,
    )


@router.post("/decisions", response_model=DecisionResponse)
async def record_decision(assessment_id: str, request: DecisionRequest):
    """Record a human decision for one line."""
    snapshot = _build_snapshot(assessment_id, request.snapshot)

    async with get_session() as session:
        service = FRCService(session, assessment_id)
        decision = await service.record_decision(
            snapshot,
            request.line_item_id,
            request.status,
            adjusted_value=request.adjusted_value,
            decided_by=request.decided_by,
            expected_version=request.expected_version,
        )

    return DecisionResponse(decision=decision)


@router.post("/invoices", response_model=InvoiceAttachResponse)
async def attach_invoice(assessment_id: str, request: InvoiceAttachRequest):
    """Attach an uploaded invoice document to a line."""
    snapshot = _build_snapshot(assessment_id, request.snapshot)

    async with get_session() as session:
        service = FRCService(session, assessment_id)
        match = await service.attach_invoice(
            snapshot,
            request.line_item_id,
            request.invoice_document_id,
            request.invoice_amount,
        )

    return InvoiceAttachResponse(match=match)


@router.post("/sign-off", response_model=SignOffResponse)
async def sign_off(assessment_id: str, request: SignOffRequest):
    """Sign off the costing once every line is decided."""
    snapshot = _build_snapshot(assessment_id, request.snapshot)

    async with get_session() as session:
        service = FRCService(session, assessment_id)
        record = await service.sign_off(
            snapshot,
            request.name,
            email=request.email,
            role=request.role,
            notes=request.notes,
        )

    return SignOffResponse(record=record)


@router.get("/history", response_model=list[AuditEntry])
async def history(
    assessment_id: str,
    line_item_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
):
    """Recorded decision changes, newest first."""
    async with get_session() as session:
        service = FRCService(session, assessment_id)
        return await service.history(line_item_id=line_item_id, limit=limit)
