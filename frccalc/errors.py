"""Error taxonomy for FRC reconciliation.

Every error carries a ``user_message`` that is safe to show to an end
user. The exception text itself may contain internal detail for logs.
"""

from __future__ import annotations


class FRCError(Exception):
    """Base class for all FRC errors."""

    user_message = "The final repair costing could not be updated."

    def __init__(self, message: str, user_message: str | None = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class InvalidDecisionError(FRCError):
    """Malformed decision payload (e.g. Adjusted without a value)."""

    user_message = "The decision is incomplete or inconsistent."


class LineItemNotFoundError(FRCError):
    """Decision or invoice references a line outside the current snapshot."""

    user_message = "This line is no longer part of the costing, please refresh."

    def __init__(self, line_item_id: str):
        super().__init__(f"Line item {line_item_id!r} is not in the current snapshot")
        self.line_item_id = line_item_id


class ConcurrentModificationError(FRCError):
    """Optimistic-concurrency conflict on a decision write. Retryable."""

    user_message = "This line was already updated by someone else, please refresh."

    def __init__(self, line_item_id: str, expected_version: int):
        super().__init__(
            f"Decision for {line_item_id!r} changed since version {expected_version}"
        )
        self.line_item_id = line_item_id
        self.expected_version = expected_version


class LineItemNotEditableError(FRCError):
    """Attempt to decide on, or attach an invoice to, a locked line."""

    user_message = "This line is locked and cannot be changed."

    def __init__(self, line_item_id: str, reason: str):
        super().__init__(f"Line item {line_item_id!r} is not editable: {reason}")
        self.line_item_id = line_item_id
        self.reason = reason


class FRCSignOffError(FRCError):
    """Sign-off attempted while the costing is incomplete."""

    user_message = "All lines must be decided before the costing can be signed off."


class ReconciliationInvariantError(FRCError):
    """Data-integrity violation. Aborts the whole reconciliation run."""

    user_message = "The costing could not be calculated. The issue has been logged."
