"""Best-effort audit trail for FRC decisions.

Audit is a write-only sink. A failing sink is logged and swallowed so it
can never roll back the decision that triggered it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from frccalc.db.models import AuditLogModel
from frccalc.models import AuditEntry, DecisionStatus

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Destination for audit entries."""

    @abstractmethod
    async def emit(self, entry: AuditEntry) -> None:
        """Persist an audit entry."""


class DatabaseAuditSink(AuditSink):
    """Writes entries to ``audit_logs``.

    Given a session, the entry is written inside a savepoint of the
    caller's transaction, so a failed write is rolled back on its own and
    the audit row commits together with the decision. Without one, each
    entry gets a session of its own.
    """

    def __init__(
        self,
        session: AsyncSession | None = None,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] | None = None,
    ):
        if session is None and session_factory is None:
            from frccalc.db.connection import get_session

            session_factory = get_session
        self._session = session
        self._session_factory = session_factory

    async def emit(self, entry: AuditEntry) -> None:
        if self._session is not None:
            async with self._session.begin_nested():
                self._session.add(_to_model(entry))
            return

        async with self._session_factory() as session:
            session.add(_to_model(entry))
            await session.commit()


class InMemoryAuditSink(AuditSink):
    """Keeps entries in a list (tests, CLI dry runs)."""

    def __init__(self):
        self.entries: list[AuditEntry] = []

    async def emit(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def clear(self) -> None:
        self.entries.clear()


async def log_decision(sink: AuditSink | None, entry: AuditEntry) -> bool:
    """Emit ``entry`` to ``sink`` without letting a failure propagate.

    Returns:
        True if the sink accepted the entry, False otherwise
    """
    if sink is None:
        return False
    try:
        await sink.emit(entry)
    except Exception:
        logger.warning(
            "Audit logging failed for backend %s (line %s, %s -> %s)",
            type(sink).__name__,
            entry.line_item_id,
            entry.old_status.value if entry.old_status else None,
            entry.new_status.value,
            exc_info=True,
        )
        return False
    return True


def _to_model(entry: AuditEntry) -> AuditLogModel:
    return AuditLogModel(
        action=entry.action,
        entity_type="frc_line",
        entity_id=f"{entry.assessment_id}:{entry.line_item_id}",
        assessment_id=entry.assessment_id,
        line_item_id=entry.line_item_id,
        field_name="status",
        old_value=entry.old_status.value if entry.old_status else None,
        new_value=entry.new_status.value,
        changed_by=entry.actor,
        details={
            "assessment_id": entry.assessment_id,
            "line_item_id": entry.line_item_id,
            "adjusted_value": str(entry.adjusted_value)
            if entry.adjusted_value is not None
            else None,
            "timestamp": entry.timestamp.isoformat(),
        },
        created_at=entry.timestamp,
    )


async def fetch_decision_history(
    session: AsyncSession,
    assessment_id: str,
    line_item_id: str | None = None,
    limit: int = 100,
) -> list[AuditEntry]:
    """Read back recorded decision events, newest first."""
    stmt = select(AuditLogModel).where(
        AuditLogModel.entity_type == "frc_line",
        AuditLogModel.assessment_id == assessment_id,
    )
    if line_item_id is not None:
        stmt = stmt.where(AuditLogModel.line_item_id == line_item_id)
    stmt = stmt.order_by(AuditLogModel.created_at.desc()).limit(limit)

    result = await session.execute(stmt)
    return [_from_model(row) for row in result.scalars().all()]


def _from_model(model: AuditLogModel) -> AuditEntry:
    details = model.details or {}
    adjusted = details.get("adjusted_value")
    return AuditEntry(
        assessment_id=model.assessment_id,
        line_item_id=model.line_item_id,
        action=model.action,
        old_status=DecisionStatus(model.old_value) if model.old_value else None,
        new_status=DecisionStatus(model.new_value),
        adjusted_value=Decimal(adjusted) if adjusted is not None else None,
        actor=model.changed_by or "",
        timestamp=model.created_at,
    )
