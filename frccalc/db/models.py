"""SQLAlchemy async database models for FRCCalc.

Decision rows carry a ``version`` column for optimistic concurrency and a
``stale`` flag instead of being deleted when their line item disappears.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class DecisionModel(Base):
    """Human decision for one FRC line, keyed by (assessment_id, line_item_id)."""

    __tablename__ = "frc_decisions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    assessment_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    line_item_id: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    adjusted_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    # Audit
    decided_by: Mapped[str | None] = mapped_column(Text)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    stale: Mapped[bool] = mapped_column(nullable=False, default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("assessment_id", "line_item_id", name="uq_decision_line"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'declined', 'adjusted')",
            name="check_decision_status_valid",
        ),
        CheckConstraint(
            "(status = 'adjusted' AND adjusted_value IS NOT NULL) "
            "OR (status <> 'adjusted' AND adjusted_value IS NULL)",
            name="check_adjusted_value",
        ),
        CheckConstraint("version >= 1", name="check_version_positive"),
        Index("idx_decisions_assessment_active", "assessment_id", "stale"),
    )


class InvoiceMatchModel(Base):
    """Invoice document attached to an FRC line (display only)."""

    __tablename__ = "frc_invoice_matches"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    assessment_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    line_item_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    invoice_document_id: Mapped[str] = mapped_column(Text, nullable=False)
    invoice_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    match_confidence: Mapped[str] = mapped_column(Text, nullable=False, default="none")

    attached_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # Each invoice document belongs to exactly one line
        UniqueConstraint("assessment_id", "invoice_document_id", name="uq_invoice_document"),
        CheckConstraint(
            "match_confidence IN ('exact', 'partial', 'none')",
            name="check_match_confidence_valid",
        ),
    )


class FRCRecordModel(Base):
    """Lifecycle and sign-off state of one assessment's final repair costing."""

    __tablename__ = "frc_records"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    assessment_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="not_started")

    snapshot_version: Mapped[str | None] = mapped_column(Text)
    line_items_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_merge_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Sign-off
    signed_off_by_name: Mapped[str | None] = mapped_column(Text)
    signed_off_by_email: Mapped[str | None] = mapped_column(Text)
    signed_off_by_role: Mapped[str | None] = mapped_column(Text)
    sign_off_notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('not_started', 'in_progress', 'completed')",
            name="check_frc_status_valid",
        ),
    )


class AuditLogModel(Base):
    """Write-only audit trail of decision changes."""

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    assessment_id: Mapped[str | None] = mapped_column(Text)
    line_item_id: Mapped[str | None] = mapped_column(Text)
    field_name: Mapped[str | None] = mapped_column(Text)
    old_value: Mapped[str | None] = mapped_column(Text)
    new_value: Mapped[str | None] = mapped_column(Text)
    changed_by: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_audit_assessment_line", "assessment_id", "line_item_id", "created_at"),
    )
