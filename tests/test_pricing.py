"""Tests for the pricing engine (pure Decimal arithmetic)."""

from decimal import Decimal

import pytest

from pickup_checkout.errors import ValidationError
from pickup_checkout.models import CouponKind
from pickup_checkout.services.coupons import CouponRule
from pickup_checkout.services.pricing import (
    D,
    LineItem,
    compute_discount,
    compute_totals,
    round_money,
)


def _rule(kind, value):
    return CouponRule(coupon_id=1, code="X", kind=kind, value=Decimal(value))


class TestRounding:
    """Money is rounded half up to cents."""

    def test_half_up(self):
        assert round_money(Decimal("0.005")) == Decimal("0.01")
        assert round_money(Decimal("2.675")) == Decimal("2.68")

    def test_d_avoids_float_artifacts(self):
        assert D(0.1) == Decimal("0.1")
        assert D("19.99") == Decimal("19.99")


class TestComputeTotals:
    """Totals for carts without and with coupons."""

    def test_no_coupon(self):
        items = [
            LineItem(product_id=1, quantity=2, unit_price=Decimal("50.00")),
            LineItem(product_id=2, quantity=1, unit_price=Decimal("3.35")),
        ]
        totals = compute_totals(items)
        assert totals.total == Decimal("103.35")
        assert totals.discount == Decimal("0.00")
        assert totals.final_total == Decimal("103.35")

    def test_percentage_coupon(self):
        items = [LineItem(product_id=1, quantity=2, unit_price=Decimal("50.00"))]
        totals = compute_totals(items, _rule(CouponKind.PERCENTAGE, "20"))
        assert totals.total == Decimal("100.00")
        assert totals.discount == Decimal("20.00")
        assert totals.final_total == Decimal("80.00")

    def test_percentage_discount_rounds_half_up(self):
        items = [LineItem(product_id=1, quantity=1, unit_price=Decimal("0.05"))]
        totals = compute_totals(items, _rule(CouponKind.PERCENTAGE, "10"))
        # 0.005 -> 0.01
        assert totals.discount == Decimal("0.01")
        assert totals.final_total == Decimal("0.04")

    def test_fixed_coupon_larger_than_total_is_capped(self):
        items = [LineItem(product_id=1, quantity=1, unit_price=Decimal("30.00"))]
        totals = compute_totals(items, _rule(CouponKind.FIXED, "50"))
        assert totals.discount == Decimal("30.00")
        assert totals.final_total == Decimal("0.00")

    def test_hundred_percent_coupon_makes_order_free(self):
        items = [LineItem(product_id=1, quantity=3, unit_price=Decimal("9.99"))]
        totals = compute_totals(items, _rule(CouponKind.PERCENTAGE, "100"))
        assert totals.total == Decimal("29.97")
        assert totals.final_total == Decimal("0.00")

    def test_final_total_identity(self):
        items = [
            LineItem(product_id=1, quantity=7, unit_price=Decimal("1.37")),
            LineItem(product_id=2, quantity=3, unit_price=Decimal("12.49")),
        ]
        for rule in (None, _rule(CouponKind.FIXED, "5.5"), _rule(CouponKind.PERCENTAGE, "33")):
            totals = compute_totals(items, rule)
            assert totals.final_total == totals.total - totals.discount
            assert totals.final_total >= 0

    def test_empty_cart_is_zero(self):
        totals = compute_totals([])
        assert totals.total == Decimal("0.00")
        assert totals.final_total == Decimal("0.00")

    @pytest.mark.parametrize("quantity", [0, -1, True])
    def test_rejects_bad_quantity(self, quantity):
        with pytest.raises(ValidationError):
            compute_totals([LineItem(product_id=1, quantity=quantity, unit_price=Decimal("1.00"))])

    def test_rejects_negative_price(self):
        with pytest.raises(ValidationError):
            compute_totals([LineItem(product_id=1, quantity=1, unit_price=Decimal("-1.00"))])


class TestComputeDiscount:
    def test_no_rule(self):
        assert compute_discount(Decimal("10.00"), None) == Decimal("0.00")

    def test_fixed_below_total(self):
        assert compute_discount(Decimal("10.00"), _rule(CouponKind.FIXED, "2.50")) == Decimal("2.50")
