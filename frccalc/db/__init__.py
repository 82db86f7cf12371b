"""Database layer for FRCCalc with async SQLAlchemy."""

from frccalc.db.connection import close_db, get_session, init_db
from frccalc.db.models import (
    AuditLogModel,
    Base,
    DecisionModel,
    FRCRecordModel,
    InvoiceMatchModel,
)

__all__ = [
    "Base",
    "AuditLogModel",
    "DecisionModel",
    "FRCRecordModel",
    "InvoiceMatchModel",
    "close_db",
    "get_session",
    "init_db",
]
