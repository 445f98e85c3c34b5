"""
Tests for order cancellation: status rules, restock, window release and the
coupon cancellation policy.
"""

from decimal import Decimal

import pytest

from pickup_checkout.errors import ConflictError, NotFoundError, UnderflowError
from pickup_checkout.models import Coupon, Order, OrderStatus, PickupWindow, Product, ReservationHold
from pickup_checkout.services import capacity_ledger, orders
from pickup_checkout.services.checkout import (
    BuyerInfo,
    Cart,
    CartItem,
    DeliveryChoice,
    PaymentChoice,
    finalize_order,
)


def _reserved(db_session, window_id):
    db_session.expire_all()
    return db_session.get(PickupWindow, window_id).reserved


def _set_status(db_session, order_id, status):
    db_session.query(Order).filter(Order.id == order_id).update({"status": status.value})
    db_session.commit()


@pytest.fixture
def placed_order(db_session, window, pickup_cart, pickup_choice, cash_later):
    return finalize_order(db_session, pickup_cart(), pickup_choice, cash_later).order


class TestCancelOrder:
    """Cancellation gives the reserved slot back exactly once."""

    def test_cancel_releases_window(self, db_session, window, placed_order):
        assert _reserved(db_session, window.id) == 1

        cancelled = orders.cancel_order(db_session, placed_order.id)

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert _reserved(db_session, window.id) == 0
        hold = db_session.query(ReservationHold).one()
        assert hold.released_at is not None

    def test_operator_release_cannot_take_order_slot(self, db_session, window, placed_order):
        with pytest.raises(UnderflowError):
            capacity_ledger.release(db_session, window.id, untracked_only=True)

        orders.cancel_order(db_session, placed_order.id)
        assert _reserved(db_session, window.id) == 0

    def test_cancel_when_slot_already_gone(self, db_session, window, placed_order):
        db_session.query(PickupWindow).filter(PickupWindow.id == window.id).update({"reserved": 0})
        db_session.commit()

        cancelled = orders.cancel_order(db_session, placed_order.id)

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert _reserved(db_session, window.id) == 0
        assert db_session.query(ReservationHold).one().released_at is not None

    def test_cancel_twice_conflicts(self, db_session, window, placed_order):
        orders.cancel_order(db_session, placed_order.id)
        with pytest.raises(ConflictError):
            orders.cancel_order(db_session, placed_order.id)
        assert _reserved(db_session, window.id) == 0

    def test_cancel_from_processing(self, db_session, window, placed_order):
        _set_status(db_session, placed_order.id, OrderStatus.PROCESSING)
        orders.cancel_order(db_session, placed_order.id)
        assert _reserved(db_session, window.id) == 0

    @pytest.mark.parametrize("status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_cannot_cancel_after_shipping(self, db_session, window, placed_order, status):
        _set_status(db_session, placed_order.id, status)
        with pytest.raises(ConflictError):
            orders.cancel_order(db_session, placed_order.id)
        assert _reserved(db_session, window.id) == 1

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            orders.cancel_order(db_session, 404)

    def test_cancel_then_reap_does_not_double_release(self, db_session, window, placed_order, pickup_cart, pickup_choice, cash_later):
        finalize_order(db_session, pickup_cart(), pickup_choice, cash_later)
        orders.cancel_order(db_session, placed_order.id)

        assert capacity_ledger.reap_stale_holds(db_session, max_age_seconds=0) == 0
        assert _reserved(db_session, window.id) == 1

    def test_cancel_restocks_tracked_products(self, db_session, window, products, pickup_choice, cash_later):
        croissant = products["croissant"]
        cart = Cart(
            items=[CartItem(product_id=croissant.id, quantity=4)],
            buyer=BuyerInfo(name="Ann", email="ann@mailbox.org", phone="+12127365000"),
        )
        order = finalize_order(db_session, cart, pickup_choice, cash_later).order
        db_session.expire_all()
        assert db_session.get(Product, croissant.id).available_qty == 6

        orders.cancel_order(db_session, order.id)

        db_session.expire_all()
        assert db_session.get(Product, croissant.id).available_qty == 10

    def test_cancel_delivery_order(self, db_session, window, pickup_cart):
        order = finalize_order(
            db_session, pickup_cart(),
            DeliveryChoice(method="DELIVERY", address="5 Elm St"),
            PaymentChoice(method="CASH"),
        ).order
        cancelled = orders.cancel_order(db_session, order.id)
        assert cancelled.status == OrderStatus.CANCELLED.value
        assert _reserved(db_session, window.id) == 0


class TestCouponOnCancel:
    """Coupon usage stays spent unless the release policy is enabled."""

    def _order_with_coupon(self, db_session, make_coupon, pickup_cart, pickup_choice, cash_later):
        coupon = make_coupon(usage_limit=10)
        order = finalize_order(
            db_session, pickup_cart(), pickup_choice, cash_later, coupon_code="SAVE20"
        ).order
        return coupon.id, order

    def test_default_keeps_usage(self, db_session, window, make_coupon, pickup_cart, pickup_choice, cash_later):
        coupon_id, order = self._order_with_coupon(db_session, make_coupon, pickup_cart, pickup_choice, cash_later)

        orders.cancel_order(db_session, order.id, release_coupon=False)

        db_session.expire_all()
        assert db_session.get(Coupon, coupon_id).usage_count == 1

    def test_release_policy_returns_usage_once(self, db_session, window, make_coupon, pickup_cart, pickup_choice, cash_later):
        coupon_id, order = self._order_with_coupon(db_session, make_coupon, pickup_cart, pickup_choice, cash_later)

        cancelled = orders.cancel_order(db_session, order.id, release_coupon=True)

        db_session.expire_all()
        assert db_session.get(Coupon, coupon_id).usage_count == 0
        assert cancelled.coupon_usage_recorded is False
        assert cancelled.final_total == Decimal("80.00")


class TestOrderReads:
    def test_get_order(self, db_session, placed_order):
        assert orders.get_order(db_session, placed_order.id).id == placed_order.id

    def test_find_by_idempotency_key_without_key(self, db_session, placed_order):
        assert orders.find_order_by_idempotency_key(db_session, None) is None
