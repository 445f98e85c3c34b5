"""
Pricing engine.

Pure functions over Decimal amounts: no database access, no side effects.
Totals are computed from the unit prices captured when the items went into
the cart, never from the live catalog.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Optional

from ..errors import ValidationError
from ..models import CouponKind

MONEY = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def D(value: Any) -> Decimal:
    """Coerce to Decimal without float artifacts (D(0.1) == Decimal('0.1'))."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(amount: Decimal) -> Decimal:
    """Round to 2 decimal places for currency, half up."""
    return D(amount).quantize(MONEY, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineItem:
    """One cart line with its price snapshot."""

    product_id: int
    quantity: int
    unit_price: Decimal
    name: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return round_money(D(self.unit_price) * self.quantity)


@dataclass(frozen=True)
class Totals:
    total: Decimal
    discount: Decimal
    final_total: Decimal


def _check_line(item: LineItem) -> None:
    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
        raise ValidationError(f"Quantity for product {item.product_id} must be a positive integer")
    if D(item.unit_price) < 0:
        raise ValidationError(f"Price for product {item.product_id} cannot be negative")


def compute_discount(total: Decimal, coupon_rule) -> Decimal:
    """
    FIXED: min(value, total). PERCENTAGE: total * value / 100, rounded half
    up and capped at total. No coupon: 0.
    """
    if coupon_rule is None:
        return ZERO

    value = D(coupon_rule.value)
    if coupon_rule.kind == CouponKind.FIXED:
        discount = min(round_money(value), total)
    elif coupon_rule.kind == CouponKind.PERCENTAGE:
        discount = min(round_money(total * value / HUNDRED), total)
    else:
        raise ValidationError(f"Unsupported coupon kind {coupon_rule.kind}")

    return max(discount, ZERO)


def compute_totals(line_items: Iterable[LineItem], coupon_rule=None) -> Totals:
    """
    Compute total, discount and final total for a cart.

    Args:
        line_items: Lines with captured unit prices
        coupon_rule: Optional CouponRule (anything with ``kind`` and ``value``)

    Returns:
        Totals with final_total == total - discount and final_total >= 0

    Raises:
        ValidationError: non-positive quantity or negative price
    """
    items: List[LineItem] = list(line_items)
    for item in items:
        _check_line(item)

    total = round_money(sum((item.line_total for item in items), ZERO))
    discount = compute_discount(total, coupon_rule)
    return Totals(total=total, discount=discount, final_total=total - discount)
