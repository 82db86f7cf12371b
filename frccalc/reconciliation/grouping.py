"""Nest replacement lines under the original line they replace."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from frccalc.models import (
    CONTRIBUTING_DISPLAY_STATUSES,
    ZERO,
    DisplayStatus,
    FRCLineView,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FRCLineGroup:
    """A top-level FRC row and the replacement lines nested under it."""

    line: FRCLineView
    replacements: list[FRCLineView] = field(default_factory=list)
    orphan: bool = False  # Replacement whose parent is not in the snapshot

    @property
    def struck(self) -> bool:
        return self.line.display_status == DisplayStatus.REMOVED_DEDUCTION

    @property
    def net_amount(self) -> Decimal:
        """Contribution of the row and its replacements to the new total."""
        total = ZERO
        for view in [self.line, *self.replacements]:
            if view.display_status in CONTRIBUTING_DISPLAY_STATUSES:
                total += view.effective_amount
        return total


def group_lines(lines: list[FRCLineView]) -> list[FRCLineGroup]:
    """Group line views into display rows, keeping input order.

    A replacement of a replacement is nested under the top-level row of its
    chain. Replacements whose parent is missing, or whose parent chain
    loops, become their own rows.
    """
    by_id = {view.line_item_id: view for view in lines}
    groups: dict[str, FRCLineGroup] = {}
    ordered: list[FRCLineGroup] = []

    for view in lines:
        root_id = _root_of(view, by_id)
        if root_id is None:
            parent_id = view.parent_line_item_id
            group = FRCLineGroup(line=view, orphan=parent_id is not None and parent_id not in by_id)
            if group.orphan:
                logger.warning(
                    "Line %s replaces %s, which is not in the snapshot",
                    view.line_item_id,
                    parent_id,
                )
            elif parent_id is not None:
                logger.warning(
                    "Line %s has a parent cycle through %s; shown as its own row",
                    view.line_item_id,
                    parent_id,
                )
            groups[view.line_item_id] = group
            ordered.append(group)

    for view in lines:
        root_id = _root_of(view, by_id)
        if root_id is not None:
            groups[root_id].replacements.append(view)

    return ordered


def _root_of(view: FRCLineView, by_id: dict[str, FRCLineView]) -> str | None:
    """Top-level ancestor id, or None if the view is itself a top-level row."""
    seen = {view.line_item_id}
    parent_id = view.parent_line_item_id
    root_id = None

    while parent_id is not None and parent_id in by_id and parent_id not in seen:
        root_id = parent_id
        seen.add(parent_id)
        parent_id = by_id[parent_id].parent_line_item_id

    if parent_id is not None and parent_id in seen:
        # Cycle: treat the view as its own row
        return None
    return root_id
