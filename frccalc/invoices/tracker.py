"""Invoice attachment tracker.

Links uploaded invoice documents to FRC lines. Matches are display data
only; they never change decisions or totals.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from frccalc.config import InvoiceMatchConfig, get_config
from frccalc.db.models import InvoiceMatchModel
from frccalc.errors import LineItemNotEditableError, LineItemNotFoundError
from frccalc.invoices.matching import compute_match_confidence
from frccalc.models import (
    LOCKED_DISPLAY_STATUSES,
    FRCResult,
    InvoiceMatch,
    MatchConfidence,
    quantize_money,
)

logger = logging.getLogger(__name__)


class InvoiceAttachmentTracker:
    """Invoice matches for one assessment."""

    def __init__(
        self,
        session: AsyncSession,
        assessment_id: str,
        config: InvoiceMatchConfig | None = None,
    ):
        self.session = session
        self.assessment_id = assessment_id
        self.config = config if config is not None else get_config().invoice_match

    async def attach_invoice(
        self,
        result: FRCResult,
        line_item_id: str,
        invoice_document_id: str,
        invoice_amount: Decimal | int | str | None = None,
    ) -> InvoiceMatch:
        """Attach an invoice document to a line.

        Re-attaching a document already linked elsewhere in this assessment
        moves it to the new line.

        Args:
            result: Latest reconciliation result for the assessment
            line_item_id: Line the invoice belongs to
            invoice_document_id: Uploaded document id
            invoice_amount: Amount read from the invoice, if known

        Returns:
            InvoiceMatch with confidence computed against the line's
            effective amount at attach time

        Raises:
            LineItemNotFoundError: Line is not in the result
            LineItemNotEditableError: Line is declined or removed
            ValueError: Invoice amount is not a finite number
        """
        if result.assessment_id != self.assessment_id:
            raise ValueError(
                f"Result belongs to {result.assessment_id!r}, "
                f"tracker to {self.assessment_id!r}"
            )

        view = result.line(line_item_id)
        if view is None:
            raise LineItemNotFoundError(line_item_id)
        if view.display_status in LOCKED_DISPLAY_STATUSES:
            raise LineItemNotEditableError(
                line_item_id, f"invoices cannot be attached to {view.display_status.value} lines"
            )

        amount = _invoice_amount(invoice_amount)
        confidence = compute_match_confidence(view.effective_amount, amount, self.config)
        now = datetime.now(timezone.utc)

        stmt = select(InvoiceMatchModel).where(
            and_(
                InvoiceMatchModel.assessment_id == self.assessment_id,
                InvoiceMatchModel.invoice_document_id == invoice_document_id,
            )
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()

        if model is None:
            model = InvoiceMatchModel(
                assessment_id=self.assessment_id,
                line_item_id=line_item_id,
                invoice_document_id=invoice_document_id,
                invoice_amount=amount,
                match_confidence=confidence.value,
                attached_at=now,
            )
            self.session.add(model)
        else:
            if model.line_item_id != line_item_id:
                logger.info(
                    "Moving invoice %s from %s to %s",
                    invoice_document_id,
                    model.line_item_id,
                    line_item_id,
                )
            model.line_item_id = line_item_id
            model.invoice_amount = amount
            model.match_confidence = confidence.value
            model.attached_at = now

        await self.session.flush()

        logger.info(
            "Attached invoice %s to %s (%s match)",
            invoice_document_id,
            line_item_id,
            confidence.value,
        )
        return _to_match(model)

    async def invoice_totals(self) -> dict[str, Decimal]:
        """Sum of attached invoice amounts per line; lines with no amount are omitted."""
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for match in await self.list_matches():
            if match.invoice_amount is not None:
                totals[match.line_item_id] += match.invoice_amount
        return {line_id: quantize_money(amount) for line_id, amount in totals.items()}

    async def list_matches(self, line_item_id: str | None = None) -> list[InvoiceMatch]:
        stmt = select(InvoiceMatchModel).where(
            InvoiceMatchModel.assessment_id == self.assessment_id
        )
        if line_item_id is not None:
            stmt = stmt.where(InvoiceMatchModel.line_item_id == line_item_id)
        stmt = stmt.order_by(
            InvoiceMatchModel.line_item_id.asc(),
            InvoiceMatchModel.invoice_document_id.asc(),
        )

        result = await self.session.execute(stmt)
        return [_to_match(row) for row in result.scalars().all()]


def _to_match(model: InvoiceMatchModel) -> InvoiceMatch:
    return InvoiceMatch(
        line_item_id=model.line_item_id,
        invoice_document_id=model.invoice_document_id,
        invoice_amount=model.invoice_amount,
        match_confidence=MatchConfidence(model.match_confidence),
        attached_at=model.attached_at,
    )


def _invoice_amount(value: Decimal | int | str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        amount = quantize_money(value)
    except InvalidOperation:
        raise ValueError(f"Invoice amount {value!r} is not a number") from None
    if not amount.is_finite():
        raise ValueError(f"Invoice amount {value!r} is not a finite number")
    return amount
