# Overview: Pure quote pricing; line-item derivation and discount totals.

"""
Quote Pricing Engine

Turns line items and a discount percentage into subtotal, discount amount
and total. No database access and no I/O: the editor preview, the items API
and the document renderer all call the same functions.

INPUT COERCION:
Price and quantity values that are missing, non-numeric, NaN, infinite or
negative count as zero. Nothing here raises on bad numbers; the API layer
(validation.py) is where out-of-range writes are rejected.

PRECISION:
Amounts stay as full-precision Decimal internally. Rounding to two places
happens only in QuoteTotals.rounded() / to_dict(), at presentation time.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")

# Editing any of these re-derives buy_quantity and total; description does not.
PRICING_FIELDS = frozenset({"unit_price", "needed_quantity", "owned_quantity"})

# Accepted spellings for each field (API payloads are snake_case, the web
# client historically sent camelCase).
_FIELD_ALIASES = {
    "description": ("description",),
    "unit_price": ("unit_price", "unitPrice"),
    "needed_quantity": ("needed_quantity", "neededQuantity"),
    "owned_quantity": ("owned_quantity", "ownedQuantity"),
}


def coerce_decimal(value: Any) -> Decimal:
    """Best-effort Decimal; anything unusable or negative becomes 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return ZERO
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not result.is_finite() or result < ZERO:
        return ZERO
    return result


def coerce_quantity(value: Any) -> int:
    """Whole, non-negative quantity. Fractions are truncated."""
    return int(coerce_decimal(value))


def clamp_discount(percent: Any) -> Decimal:
    """Discount percentage coerced and clamped to [0, 100]."""
    value = coerce_decimal(percent)
    if value > HUNDRED:
        return HUNDRED
    return value


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _pick(data: Mapping[str, Any], field: str, default: Any = None) -> Any:
    for key in _FIELD_ALIASES[field]:
        if key in data:
            return data[key]
    return default


@dataclass(frozen=True)
class LineItem:
    """One priced row. buy_quantity and line_total are always derived."""
    description: str = ""
    unit_price: Decimal = ZERO
    needed_quantity: int = 0
    owned_quantity: int = 0

    @classmethod
    def from_values(
        cls,
        description: Any = "",
        unit_price: Any = None,
        needed_quantity: Any = None,
        owned_quantity: Any = None,
    ) -> "LineItem":
        return cls(
            description="" if description is None else str(description),
            unit_price=coerce_decimal(unit_price),
            needed_quantity=coerce_quantity(needed_quantity),
            owned_quantity=coerce_quantity(owned_quantity),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls.from_values(
            description=_pick(data, "description", ""),
            unit_price=_pick(data, "unit_price"),
            needed_quantity=_pick(data, "needed_quantity"),
            owned_quantity=_pick(data, "owned_quantity"),
        )

    @classmethod
    def from_any(cls, item: Any) -> "LineItem":
        """Accepts a LineItem, a mapping, or any object with the item attributes (ORM rows)."""
        if isinstance(item, LineItem):
            return item
        if isinstance(item, Mapping):
            return cls.from_mapping(item)
        return cls.from_values(
            description=getattr(item, "description", ""),
            unit_price=getattr(item, "unit_price", None),
            needed_quantity=getattr(item, "needed_quantity", None),
            owned_quantity=getattr(item, "owned_quantity", None),
        )

    @property
    def buy_quantity(self) -> int:
        return max(0, self.needed_quantity - self.owned_quantity)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.buy_quantity

    @property
    def savings(self) -> Decimal:
        """Value of the quantity the client already owns."""
        return self.unit_price * self.owned_quantity

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "unit_price": f"{round_money(self.unit_price):.2f}",
            "needed_quantity": self.needed_quantity,
            "owned_quantity": self.owned_quantity,
            "buy_quantity": self.buy_quantity,
            "total": f"{round_money(self.line_total):.2f}",
        }


@dataclass(frozen=True)
class QuoteTotals:
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    total: Decimal

    def rounded(self) -> "QuoteTotals":
        return QuoteTotals(
            subtotal=round_money(self.subtotal),
            discount_percent=self.discount_percent,
            discount_amount=round_money(self.discount_amount),
            total=round_money(self.total),
        )

    def to_dict(self) -> dict:
        r = self.rounded()
        return {
            "subtotal": f"{r.subtotal:.2f}",
            "discount_percent": f"{self.discount_percent.normalize():f}",
            "discount_amount": f"{r.discount_amount:.2f}",
            "total": f"{r.total:.2f}",
        }


def recalculate_item(item: Any) -> tuple[int, Decimal]:
    """(buy_quantity, line_total) for a row about to be persisted."""
    line = LineItem.from_any(item)
    return line.buy_quantity, line.line_total


def compute_totals(items: Iterable[Any], discount_percent: Any = 0) -> QuoteTotals:
    """
    subtotal = sum of line totals
    discount_amount = subtotal * clamp(discount, 0, 100) / 100
    total = subtotal - discount_amount
    """
    subtotal = ZERO
    for item in items or ():
        subtotal += LineItem.from_any(item).line_total

    percent = clamp_discount(discount_percent)
    discount_amount = subtotal * percent / HUNDRED
    return QuoteTotals(
        subtotal=subtotal,
        discount_percent=percent,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )
