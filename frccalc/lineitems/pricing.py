"""Category costing rules for line totals.

Parts and outwork are price x quantity plus markup; labour and paint are
hours (or panels) x rate, falling back to price x quantity when no hours
were captured.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from frccalc.config import RatesConfig
from frccalc.models import LineCategory, quantize_money

_HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class CostingRates:
    labour_rate: Decimal
    paint_rate: Decimal
    part_markup_percentage: Decimal = Decimal("0")
    outwork_markup_percentage: Decimal = Decimal("0")

    @classmethod
    def from_config(cls, rates: RatesConfig) -> CostingRates:
        return cls(
            labour_rate=rates.labour_rate,
            paint_rate=rates.paint_rate,
            part_markup_percentage=rates.part_markup_percentage,
            outwork_markup_percentage=rates.outwork_markup_percentage,
        )

    def with_overrides(self, overrides: dict | None) -> CostingRates:
        """Apply per-estimate rates (keys match field names, None is ignored)."""
        if not overrides:
            return self
        values = {
            name: _to_decimal(overrides[name])
            for name in (
                "labour_rate",
                "paint_rate",
                "part_markup_percentage",
                "outwork_markup_percentage",
            )
            if overrides.get(name) is not None
        }
        if not values:
            return self
        return CostingRates(
            labour_rate=values.get("labour_rate", self.labour_rate),
            paint_rate=values.get("paint_rate", self.paint_rate),
            part_markup_percentage=values.get(
                "part_markup_percentage", self.part_markup_percentage
            ),
            outwork_markup_percentage=values.get(
                "outwork_markup_percentage", self.outwork_markup_percentage
            ),
        )


def compute_line_total(
    category: LineCategory,
    unit_price: Decimal,
    quantity: Decimal,
    hours: Decimal | None,
    rates: CostingRates,
) -> Decimal:
    """Compute a line's total from its inputs per category rule.

    Raises:
        ValueError: If any input amount is negative
    """
    for name, value in (("unit_price", unit_price), ("quantity", quantity), ("hours", hours)):
        if value is not None and value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")

    priced = unit_price * quantity

    if category == LineCategory.PART:
        total = _with_markup(priced, rates.part_markup_percentage)
    elif category == LineCategory.LABOUR:
        total = hours * rates.labour_rate if hours is not None else priced
    elif category == LineCategory.PAINT:
        total = hours * rates.paint_rate if hours is not None else priced
    else:
        total = _with_markup(priced, rates.outwork_markup_percentage)

    return quantize_money(total)


def _with_markup(amount: Decimal, percentage: Decimal) -> Decimal:
    return amount * (1 + percentage / _HUNDRED)


def _to_decimal(value) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Rate {value!r} is not a number") from None
    if not number.is_finite():
        raise ValueError(f"Rate {value!r} is not a finite number")
    return number
