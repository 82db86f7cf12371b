"""Line-item snapshots built from finalized estimate and additionals payloads."""

from __future__ import annotations

import hashlib
import json
import logging
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict

from frccalc.lineitems.pricing import CostingRates, compute_line_total
from frccalc.models import LineCategory, LineItem, LineOrigin

logger = logging.getLogger(__name__)

_CATEGORY_ALIASES = {
    "part": LineCategory.PART,
    "parts": LineCategory.PART,
    "labour": LineCategory.LABOUR,
    "labor": LineCategory.LABOUR,
    "paint": LineCategory.PAINT,
    "other": LineCategory.OTHER,
    "outwork": LineCategory.OTHER,
    "sundry": LineCategory.OTHER,
    "sundries": LineCategory.OTHER,
}

ACTION_ADDED = "added"
ACTION_REMOVED = "removed"
STATUS_DECLINED = "declined"


class LineItemSnapshot(BaseModel):
    """Immutable set of line items for one assessment, in display order."""

    model_config = ConfigDict(frozen=True)

    assessment_id: str
    items: tuple[LineItem, ...] = ()

    @property
    def ids(self) -> list[str]:
        return [item.id for item in self.items]

    def get(self, line_item_id: str) -> LineItem | None:
        for item in self.items:
            if item.id == line_item_id:
                return item
        return None

    def __contains__(self, line_item_id: object) -> bool:
        return any(item.id == line_item_id for item in self.items)

    def duplicate_ids(self) -> list[str]:
        counts = Counter(item.id for item in self.items)
        return sorted(line_id for line_id, count in counts.items() if count > 1)

    def fingerprint(self) -> str:
        """Deterministic hash of the snapshot contents.

        Numbers are normalised first, so 1 and 1.0 hash alike.
        """
        payload = json.dumps(
            [_canonical(item) for item in self.items],
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def build_snapshot(
    assessment_id: str,
    estimate_lines: Sequence[Mapping[str, Any]],
    additional_lines: Sequence[Mapping[str, Any]] = (),
    rates: CostingRates | None = None,
    excluded_line_ids: Iterable[str] = (),
) -> LineItemSnapshot:
    """Turn upstream estimate/additionals payloads into a snapshot.

    Estimate lines become original items. An estimate line counts as removed
    when it is excluded, or when a non-declined additionals ``removed`` entry
    points at it. Additionals ``added`` lines become additional items unless
    they were declined upstream, in which case they never enter the costing.
    ``removed`` entries are markers and produce no item of their own.

    Args:
        assessment_id: Assessment the snapshot belongs to
        estimate_lines: Finalized estimate line payloads
        additional_lines: Additionals line payloads
        rates: Costing rates (defaults to configured rates)
        excluded_line_ids: Estimate line ids excluded upstream

    Returns:
        LineItemSnapshot in estimate-then-additionals order

    Raises:
        ValueError: If a payload is malformed or ids collide
    """
    if rates is None:
        from frccalc.config import get_config

        rates = CostingRates.from_config(get_config().rates)

    removed_ids = set(excluded_line_ids)
    for raw in additional_lines:
        if _action(raw) == ACTION_REMOVED and _status(raw) != STATUS_DECLINED:
            original_id = raw.get("original_line_id")
            if not original_id:
                raise ValueError(f"Removal line {raw.get('id')!r} has no original_line_id")
            removed_ids.add(str(original_id))

    items: list[LineItem] = []
    for raw in estimate_lines:
        line_id = _require_id(raw)
        items.append(
            _to_line_item(
                raw,
                origin=LineOrigin.ORIGINAL,
                removed=line_id in removed_ids,
                parent_id=None,
                rates=rates,
            )
        )

    for raw in additional_lines:
        if _action(raw) == ACTION_REMOVED or _status(raw) == STATUS_DECLINED:
            continue
        parent_id = raw.get("original_line_id") or raw.get("parent_line_item_id")
        items.append(
            _to_line_item(
                raw,
                origin=LineOrigin.ADDITIONAL,
                removed=False,
                parent_id=str(parent_id) if parent_id else None,
                rates=rates,
            )
        )

    snapshot = LineItemSnapshot(assessment_id=assessment_id, items=tuple(items))
    duplicates = snapshot.duplicate_ids()
    if duplicates:
        raise ValueError(f"Duplicate line item ids in snapshot: {duplicates}")

    logger.debug(
        "Built snapshot for %s: %d items (%d removed)",
        assessment_id,
        len(items),
        sum(1 for item in items if item.removed_in_source),
    )
    return snapshot


def parse_category(value: Any) -> LineCategory:
    if isinstance(value, LineCategory):
        return value
    try:
        return _CATEGORY_ALIASES[str(value).strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown line category: {value!r}") from None


def _to_line_item(
    raw: Mapping[str, Any],
    origin: LineOrigin,
    removed: bool,
    parent_id: str | None,
    rates: CostingRates,
) -> LineItem:
    line_id = _require_id(raw)
    category = parse_category(raw.get("category"))
    unit_price = _decimal(raw.get("unit_price"), "0", line_id)
    quantity = _decimal(raw.get("quantity"), "1", line_id)
    hours_raw = raw.get("hours")
    hours = _decimal(hours_raw, None, line_id) if hours_raw is not None else None

    try:
        line_total = compute_line_total(category, unit_price, quantity, hours, rates)
    except ValueError as e:
        raise ValueError(f"Line {line_id!r}: {e}") from e

    return LineItem(
        id=line_id,
        origin=origin,
        category=category,
        description=str(raw.get("description") or ""),
        unit_price=unit_price,
        quantity=quantity,
        hours=hours,
        line_total=line_total,
        removed_in_source=removed,
        parent_line_item_id=parent_id,
    )


def _require_id(raw: Mapping[str, Any]) -> str:
    line_id = raw.get("id")
    if line_id is None or str(line_id).strip() == "":
        raise ValueError(f"Line payload is missing an id: {dict(raw)!r}")
    return str(line_id)


def _action(raw: Mapping[str, Any]) -> str:
    return str(raw.get("action") or ACTION_ADDED).lower()


def _status(raw: Mapping[str, Any]) -> str:
    return str(raw.get("status") or "").lower()


def _canonical(item: LineItem) -> dict[str, Any]:
    data = item.model_dump(mode="json")
    for key, value in item.model_dump().items():
        if isinstance(value, Decimal):
            data[key] = str(value.normalize())
    return data


def _decimal(value: Any, default: str | None, line_id: str) -> Decimal:
    if value is None:
        value = default
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Line {line_id!r}: {value!r} is not a number") from None
    if not number.is_finite():
        raise ValueError(f"Line {line_id!r}: {value!r} is not a finite number")
    return number


def snapshot_from_payload(assessment_id: str, payload: Mapping[str, Any]) -> LineItemSnapshot:
    """Build a snapshot from one combined upstream payload.

    Expected keys: ``estimate_lines``, ``additional_lines``,
    ``excluded_line_ids`` and an optional ``rates`` mapping of per-estimate
    rate overrides.
    """
    from frccalc.config import get_config

    rates = CostingRates.from_config(get_config().rates).with_overrides(payload.get("rates"))
    return build_snapshot(
        assessment_id,
        payload.get("estimate_lines") or [],
        payload.get("additional_lines") or [],
        rates=rates,
        excluded_line_ids=payload.get("excluded_line_ids") or [],
    )
