"""FRC service: one reconciliation run against the database.

Orchestrates seeding, the pure engine, invoice totals and the FRC
lifecycle record (start, merge tracking, sign-off).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from frccalc.config import AppConfig, get_config
from frccalc.core.audit_logger import AuditSink, DatabaseAuditSink, fetch_decision_history
from frccalc.core.logging import bind_assessment
from frccalc.db.models import FRCRecordModel
from frccalc.errors import FRCSignOffError, ReconciliationInvariantError
from frccalc.invoices.tracker import InvoiceAttachmentTracker
from frccalc.ledger.repository import DecisionLedger
from frccalc.lineitems.snapshot import LineItemSnapshot
from frccalc.models import (
    AuditEntry,
    Decision,
    DecisionStatus,
    FRCRecord,
    FRCResult,
    FRCStatus,
    InvoiceMatch,
)
from frccalc.reconciliation.engine import reconcile as run_engine

logger = logging.getLogger(__name__)


class FRCService:
    """Final repair costing for one assessment."""

    def __init__(
        self,
        session: AsyncSession,
        assessment_id: str,
        audit_sink: AuditSink | None = None,
        config: AppConfig | None = None,
    ):
        """Initialize service.

        Args:
            session: SQLAlchemy async session
            assessment_id: Assessment being costed
            audit_sink: Destination for decision audit events (defaults to
                the audit_logs table, written in this session)
            config: Application config (defaults to the global config)
        """
        self.session = session
        self.assessment_id = assessment_id
        self.config = config if config is not None else get_config()
        if audit_sink is None:
            audit_sink = DatabaseAuditSink(session)
        self.ledger = DecisionLedger(session, assessment_id, audit_sink=audit_sink)
        self.invoices = InvoiceAttachmentTracker(
            session, assessment_id, config=self.config.invoice_match
        )

    async def reconcile(self, snapshot: LineItemSnapshot) -> FRCResult:
        """Run a full reconciliation for the snapshot.

        Seeds the ledger (additive) and stales vanished decisions before
        the engine runs.

        Raises:
            ReconciliationInvariantError: If the data is inconsistent
        """
        self._check_snapshot(snapshot)
        bind_assessment(self.assessment_id)

        record = await self._get_or_create_record()
        now = _now()
        if record.status == FRCStatus.NOT_STARTED.value:
            record.status = FRCStatus.IN_PROGRESS.value
            record.started_at = now
            logger.info("Started final repair costing")

        seeded, staled = await self.ledger.sync_with_snapshot(snapshot)
        decisions = await self.ledger.list_decisions()
        invoice_totals = await self.invoices.invoice_totals()

        try:
            result = run_engine(
                snapshot,
                decisions,
                invoice_amounts=invoice_totals,
                frozen=record.status == FRCStatus.COMPLETED.value,
                match_config=self.config.invoice_match,
            )
        except ReconciliationInvariantError:
            logger.error("Reconciliation aborted", exc_info=True)
            raise

        if record.snapshot_version != result.snapshot_version:
            if record.snapshot_version is not None:
                logger.info(
                    "Line items changed (%s -> %s)",
                    record.snapshot_version,
                    result.snapshot_version,
                )
            record.snapshot_version = result.snapshot_version
            record.line_items_version += 1
        record.last_merge_at = now
        await self.session.flush()

        logger.info(
            "Reconciled %d lines (seeded=%d, stale=%d): baseline=%s new=%s delta=%s",
            len(result.lines),
            seeded,
            staled,
            result.aggregate.baseline_total,
            result.aggregate.new_total,
            result.aggregate.delta,
        )
        return result

    async def record_decision(
        self,
        snapshot: LineItemSnapshot,
        line_item_id: str,
        status: DecisionStatus | str,
        adjusted_value: Decimal | int | str | None = None,
        decided_by: str | None = None,
        expected_version: int | None = None,
    ) -> Decision:
        """Record a decision; rejected once the costing is signed off."""
        self._check_snapshot(snapshot)
        bind_assessment(self.assessment_id)

        record = await self._get_record_model()
        frozen = record is not None and record.status == FRCStatus.COMPLETED.value

        return await self.ledger.record_decision(
            snapshot,
            line_item_id,
            status,
            adjusted_value=adjusted_value,
            decided_by=decided_by or self.config.default_actor,
            expected_version=expected_version,
            frozen=frozen,
        )

    async def attach_invoice(
        self,
        snapshot: LineItemSnapshot,
        line_item_id: str,
        invoice_document_id: str,
        invoice_amount: Decimal | int | str | None = None,
    ) -> InvoiceMatch:
        """Attach an invoice against the current reconciliation of ``snapshot``."""
        result = await self.reconcile(snapshot)
        return await self.invoices.attach_invoice(
            result, line_item_id, invoice_document_id, invoice_amount
        )

    async def sign_off(
        self,
        snapshot: LineItemSnapshot,
        name: str,
        email: str | None = None,
        role: str | None = None,
        notes: str | None = None,
    ) -> FRCRecord:
        """Complete the costing.

        Raises:
            FRCSignOffError: If a line is still pending, the costing is
                already signed off, or no signer name was given
        """
        if not name or not name.strip():
            raise FRCSignOffError("Sign-off requires a signer name")

        result = await self.reconcile(snapshot)
        if result.frozen:
            raise FRCSignOffError(
                "Costing is already signed off",
                user_message="This costing has already been signed off.",
            )
        if result.aggregate.pending_count:
            raise FRCSignOffError(
                f"{result.aggregate.pending_count} lines are still pending"
            )

        record = await self._get_record_model()
        record.status = FRCStatus.COMPLETED.value
        record.completed_at = _now()
        record.signed_off_by_name = name.strip()
        record.signed_off_by_email = email
        record.signed_off_by_role = role
        record.sign_off_notes = notes
        await self.session.flush()

        logger.info("Costing signed off by %s (new total %s)", name, result.aggregate.new_total)
        return _to_record(record)

    async def get_record(self) -> FRCRecord:
        """Current lifecycle state; not-started if the costing never ran."""
        record = await self._get_record_model()
        if record is None:
            return FRCRecord(assessment_id=self.assessment_id)
        return _to_record(record)

    async def history(self, line_item_id: str | None = None, limit: int = 100) -> list[AuditEntry]:
        return await fetch_decision_history(
            self.session, self.assessment_id, line_item_id=line_item_id, limit=limit
        )

    def _check_snapshot(self, snapshot: LineItemSnapshot) -> None:
        if snapshot.assessment_id != self.assessment_id:
            raise ValueError(
                f"Snapshot belongs to {snapshot.assessment_id!r}, "
                f"service to {self.assessment_id!r}"
            )

    async def _get_record_model(self) -> FRCRecordModel | None:
        stmt = select(FRCRecordModel).where(
            FRCRecordModel.assessment_id == self.assessment_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_or_create_record(self) -> FRCRecordModel:
        record = await self._get_record_model()
        if record is None:
            record = FRCRecordModel(
                assessment_id=self.assessment_id,
                status=FRCStatus.NOT_STARTED.value,
                line_items_version=0,
            )
            self.session.add(record)
            await self.session.flush()
        return record


def _to_record(model: FRCRecordModel) -> FRCRecord:
    return FRCRecord(
        assessment_id=model.assessment_id,
        status=FRCStatus(model.status),
        snapshot_version=model.snapshot_version,
        line_items_version=model.line_items_version,
        started_at=model.started_at,
        last_merge_at=model.last_merge_at,
        completed_at=model.completed_at,
        signed_off_by_name=model.signed_off_by_name,
        signed_off_by_email=model.signed_off_by_email,
        signed_off_by_role=model.signed_off_by_role,
        sign_off_notes=model.sign_off_notes,
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)
