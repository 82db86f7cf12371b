"""Decision ledger: durable human decisions on FRC lines."""

from frccalc.ledger.repository import SYSTEM_ACTOR, DecisionLedger, validate_decision

__all__ = [
    "SYSTEM_ACTOR",
    "DecisionLedger",
    "validate_decision",
]
