"""Decision ledger for FRC lines.

Source of truth for what has already been decided, independent of how
often reconciliation reruns. Seeding is additive only: an existing decision
is never overwritten by a refresh. Writes use compare-and-swap on the
``version`` column.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from frccalc.core.audit_logger import AuditSink, log_decision
from frccalc.db.models import DecisionModel
from frccalc.errors import (
    ConcurrentModificationError,
    InvalidDecisionError,
    LineItemNotEditableError,
    LineItemNotFoundError,
)
from frccalc.lineitems.snapshot import LineItemSnapshot
from frccalc.models import AuditEntry, Decision, DecisionStatus, quantize_money

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def validate_decision(
    status: DecisionStatus | str, adjusted_value: Decimal | int | str | None
) -> tuple[DecisionStatus, Decimal | None]:
    """Check the Adjusted-requires-value invariant.

    Returns:
        Normalized (status, adjusted_value)

    Raises:
        InvalidDecisionError: If the payload is malformed
    """
    try:
        status = DecisionStatus(status)
    except ValueError:
        raise InvalidDecisionError(f"Unknown decision status: {status!r}") from None

    if status == DecisionStatus.ADJUSTED:
        if adjusted_value is None:
            raise InvalidDecisionError("Adjusted decisions require an adjusted value")
        try:
            value = quantize_money(adjusted_value)
        except ArithmeticError:
            raise InvalidDecisionError(f"Adjusted value {adjusted_value!r} is not a number") from None
        if not value.is_finite():
            raise InvalidDecisionError(f"Adjusted value {adjusted_value!r} is not a number")
        if value < 0:
            raise InvalidDecisionError("Adjusted value must be non-negative")
        return status, value

    if adjusted_value is not None:
        raise InvalidDecisionError(
            f"A {status.value} decision must not carry an adjusted value"
        )
    return status, None


class DecisionLedger:
    """Keyed store of human decisions for one assessment."""

    def __init__(
        self,
        session: AsyncSession,
        assessment_id: str,
        audit_sink: AuditSink | None = None,
    ):
        """Initialize ledger.

        Args:
            session: SQLAlchemy async session
            assessment_id: Assessment whose decisions this ledger holds
            audit_sink: Where decision changes are reported (best-effort)
        """
        self.session = session
        self.assessment_id = assessment_id
        self.audit_sink = audit_sink

    async def get_decision(self, line_item_id: str) -> Decision | None:
        """Return the current decision, or None if the line was never seen."""
        model = await self._load(line_item_id)
        return _to_decision(model) if model is not None else None

    async def list_decisions(self, include_stale: bool = False) -> list[Decision]:
        stmt = select(DecisionModel).where(DecisionModel.assessment_id == self.assessment_id)
        if not include_stale:
            stmt = stmt.where(DecisionModel.stale.is_(False))
        stmt = stmt.order_by(DecisionModel.line_item_id.asc()).execution_options(
            populate_existing=True
        )

        result = await self.session.execute(stmt)
        return [_to_decision(row) for row in result.scalars().all()]

    async def ensure_seeded(
        self,
        line_item_ids: Iterable[str],
        approved_ids: Iterable[str] = (),
    ) -> int:
        """Create a decision for every id that has none yet.

        New rows start Pending, except ids in ``approved_ids`` (lines removed
        upstream), which start Approved by the system. Existing rows are never
        overwritten; stale rows whose id is back in the snapshot are revived.

        Returns:
            Number of decisions created
        """
        ids = list(dict.fromkeys(line_item_ids))
        if not ids:
            return 0
        approved = set(approved_ids)

        existing = await self._existing(ids)
        missing = [line_id for line_id in ids if line_id not in existing]

        revived = [line_id for line_id, stale in existing.items() if stale]
        if revived:
            await self.session.execute(
                update(DecisionModel)
                .where(
                    and_(
                        DecisionModel.assessment_id == self.assessment_id,
                        DecisionModel.line_item_id.in_(revived),
                    )
                )
                .values(stale=False)
            )
            logger.info("Revived %d stale decisions", len(revived))

        if missing:
            now = _now()
            rows = [
                {
                    "id": uuid4(),
                    "assessment_id": self.assessment_id,
                    "line_item_id": line_id,
                    "status": (
                        DecisionStatus.APPROVED.value
                        if line_id in approved
                        else DecisionStatus.PENDING.value
                    ),
                    "adjusted_value": None,
                    "decided_by": SYSTEM_ACTOR if line_id in approved else None,
                    "decided_at": now if line_id in approved else None,
                    "version": 1,
                    "stale": False,
                }
                for line_id in missing
            ]
            await self._insert_ignoring_conflicts(rows)
            logger.info("Seeded %d decisions", len(missing))

        return len(missing)

    async def mark_stale(self, line_item_ids: Iterable[str]) -> int:
        """Flag decisions whose line vanished from the latest snapshot.

        Returns:
            Number of decisions newly marked stale
        """
        ids = list(dict.fromkeys(line_item_ids))
        if not ids:
            return 0

        result = await self.session.execute(
            update(DecisionModel)
            .where(
                and_(
                    DecisionModel.assessment_id == self.assessment_id,
                    DecisionModel.line_item_id.in_(ids),
                    DecisionModel.stale.is_(False),
                )
            )
            .values(stale=True)
        )
        if result.rowcount:
            logger.info("Marked %d decisions stale", result.rowcount)
        return result.rowcount

    async def sync_with_snapshot(self, snapshot: LineItemSnapshot) -> tuple[int, int]:
        """Seed every snapshot line and mark vanished lines stale.

        Returns:
            (seeded, marked_stale)
        """
        present = snapshot.ids
        result = await self.session.execute(
            select(DecisionModel.line_item_id).where(
                DecisionModel.assessment_id == self.assessment_id
            )
        )
        known = set(result.scalars().all())
        vanished = sorted(known - set(present))

        staled = await self.mark_stale(vanished)
        seeded = await self.ensure_seeded(
            present,
            approved_ids=[item.id for item in snapshot.items if item.removed_in_source],
        )
        return seeded, staled

    async def record_decision(
        self,
        snapshot: LineItemSnapshot,
        line_item_id: str,
        status: DecisionStatus | str,
        adjusted_value: Decimal | int | str | None = None,
        decided_by: str = SYSTEM_ACTOR,
        expected_version: int | None = None,
        frozen: bool = False,
    ) -> Decision:
        """Record a human decision for one line.

        Args:
            snapshot: Current line-item snapshot
            line_item_id: Line being decided
            status: New decision status
            adjusted_value: Amount, required for (and only for) Adjusted
            decided_by: Actor making the decision
            expected_version: Version the caller last saw; defaults to the
                version read here
            frozen: True once the costing has been signed off

        Returns:
            The stored decision

        Raises:
            InvalidDecisionError: Malformed payload
            LineItemNotFoundError: Line is not in the snapshot
            LineItemNotEditableError: Line is locked
            ConcurrentModificationError: Another writer changed the decision
        """
        status, adjusted_value = validate_decision(status, adjusted_value)

        if snapshot.assessment_id != self.assessment_id:
            raise ValueError(
                f"Snapshot belongs to {snapshot.assessment_id!r}, "
                f"ledger to {self.assessment_id!r}"
            )

        item = snapshot.get(line_item_id)
        if item is None:
            raise LineItemNotFoundError(line_item_id)
        if frozen:
            raise LineItemNotEditableError(line_item_id, "costing has been signed off")
        if item.removed_in_source:
            raise LineItemNotEditableError(line_item_id, "line was removed upstream")

        current = await self._load(line_item_id)
        if current is None or current.stale:
            await self.ensure_seeded([line_item_id])
            current = await self._load(line_item_id)

        if current.status == DecisionStatus.DECLINED.value:
            raise LineItemNotEditableError(line_item_id, "line was declined")

        if expected_version is None:
            expected_version = current.version
        elif expected_version != current.version:
            raise ConcurrentModificationError(line_item_id, expected_version)

        old_status = DecisionStatus(current.status)
        now = _now()

        result = await self.session.execute(
            update(DecisionModel)
            .where(
                and_(
                    DecisionModel.id == current.id,
                    DecisionModel.version == expected_version,
                )
            )
            .values(
                status=status.value,
                adjusted_value=adjusted_value,
                decided_by=decided_by,
                decided_at=now,
                version=expected_version + 1,
                stale=False,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(line_item_id, expected_version)

        decision = Decision(
            line_item_id=line_item_id,
            assessment_id=self.assessment_id,
            status=status,
            adjusted_value=adjusted_value,
            decided_by=decided_by,
            decided_at=now,
            version=expected_version + 1,
        )

        logger.info(
            "Recorded decision for %s: %s -> %s by %s",
            line_item_id,
            old_status.value,
            status.value,
            decided_by,
        )

        await log_decision(
            self.audit_sink,
            AuditEntry(
                assessment_id=self.assessment_id,
                line_item_id=line_item_id,
                old_status=old_status,
                new_status=status,
                adjusted_value=adjusted_value,
                actor=decided_by,
                timestamp=now,
            ),
        )
        return decision

    async def _load(self, line_item_id: str) -> DecisionModel | None:
        stmt = (
            select(DecisionModel)
            .where(
                and_(
                    DecisionModel.assessment_id == self.assessment_id,
                    DecisionModel.line_item_id == line_item_id,
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _existing(self, line_item_ids: list[str]) -> dict[str, bool]:
        result = await self.session.execute(
            select(DecisionModel.line_item_id, DecisionModel.stale).where(
                and_(
                    DecisionModel.assessment_id == self.assessment_id,
                    DecisionModel.line_item_id.in_(line_item_ids),
                )
            )
        )
        return {row.line_item_id: row.stale for row in result.all()}

    async def _insert_ignoring_conflicts(self, rows: list[dict]) -> None:
        """Insert seed rows; a row another run inserted first is left alone."""
        dialect = self.session.get_bind().dialect.name

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            self.session.add_all(DecisionModel(**row) for row in rows)
            await self.session.flush()
            return

        stmt = insert(DecisionModel).values(rows).on_conflict_do_nothing(
            index_elements=["assessment_id", "line_item_id"]
        )
        await self.session.execute(stmt)


def _to_decision(model: DecisionModel) -> Decision:
    return Decision(
        line_item_id=model.line_item_id,
        assessment_id=model.assessment_id,
        status=DecisionStatus(model.status),
        adjusted_value=model.adjusted_value,
        decided_by=model.decided_by,
        decided_at=model.decided_at,
        version=model.version,
        stale=model.stale,
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)
