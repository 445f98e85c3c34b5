"""
Concurrency tests against a file-backed SQLite database.

Each worker thread uses its own session, like concurrent requests do. A
barrier releases all workers at once so the conditional updates actually
race.
"""

import threading
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pickup_checkout.errors import CheckoutError, WindowFullError
from pickup_checkout.models import Base, Coupon, CouponKind, Order, PickupPoint, PickupWindow, Product
from pickup_checkout.services import capacity_ledger
from pickup_checkout.services.checkout import (
    BuyerInfo,
    Cart,
    CartItem,
    DeliveryChoice,
    PaymentChoice,
    finalize_order,
)

SLOT_START = datetime(2030, 3, 2, 10, 0)
BUYER = BuyerInfo(name="Ann Buyer", email="ann@mailbox.org", phone="+12127365000")


@pytest.fixture
def file_db(tmp_path):
    """Session factory on a SQLite file shared by all worker threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    s = factory()
    point = PickupPoint(name="Central Store", address="1 Main St", is_active=True)
    s.add(point)
    s.add(Product(name="Latte", price=Decimal("50.00"), is_active=True))
    s.flush()
    s.add(PickupWindow(
        point_id=point.id,
        start_time=SLOT_START,
        end_time=SLOT_START + timedelta(hours=1),
        capacity=5,
        reserved=0,
    ))
    s.add(Coupon(
        code="FIRST3",
        kind=CouponKind.FIXED.value,
        value=Decimal("10.00"),
        valid_from=datetime(2020, 1, 1),
        valid_to=datetime(2099, 1, 1),
        usage_limit=3,
        usage_count=0,
        is_active=True,
    ))
    s.commit()
    s.close()

    yield factory
    engine.dispose()


def _ids(factory):
    s = factory()
    try:
        point_id = s.query(PickupPoint.id).scalar()
        window_id = s.query(PickupWindow.id).scalar()
        product_id = s.query(Product.id).scalar()
        return point_id, window_id, product_id
    finally:
        s.close()


def _run_workers(count, work):
    """Run ``work(i)`` in ``count`` threads started together; collect results."""
    barrier = threading.Barrier(count)
    results = [None] * count

    def runner(i):
        barrier.wait()
        try:
            results[i] = work(i)
        except Exception as e:
            results[i] = e

    threads = [threading.Thread(target=runner, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


class TestConcurrentReservations:
    """reserved never exceeds capacity however many requests race."""

    def test_raw_reservations_stop_at_capacity(self, file_db):
        _, window_id, _ = _ids(file_db)

        def reserve(_):
            s = file_db()
            try:
                return capacity_ledger.try_reserve(s, window_id) is not None
            finally:
                s.close()

        results = _run_workers(12, reserve)

        assert results.count(True) == 5
        assert sum(isinstance(r, WindowFullError) for r in results) == 7

        s = file_db()
        assert s.get(PickupWindow, window_id).reserved == 5
        s.close()

    def test_checkouts_stop_at_capacity(self, file_db):
        point_id, window_id, product_id = _ids(file_db)

        def checkout(_):
            s = file_db()
            try:
                return finalize_order(
                    s,
                    Cart(items=[CartItem(product_id=product_id, quantity=1)], buyer=BUYER),
                    DeliveryChoice(method="PICKUP", point_id=point_id, pickup_time=SLOT_START),
                    PaymentChoice(method="CASH", pay_later=True),
                ).order.id
            finally:
                s.close()

        results = _run_workers(10, checkout)

        successes = [r for r in results if isinstance(r, int)]
        assert len(successes) == 5
        assert all(isinstance(r, WindowFullError) for r in results if not isinstance(r, int))

        s = file_db()
        assert s.get(PickupWindow, window_id).reserved == 5
        assert s.query(Order).count() == 5
        s.close()


class TestConcurrentCoupons:
    def test_usage_never_exceeds_limit(self, file_db):
        _, _, product_id = _ids(file_db)

        def checkout(_):
            s = file_db()
            try:
                return finalize_order(
                    s,
                    Cart(items=[CartItem(product_id=product_id, quantity=1)], buyer=BUYER),
                    DeliveryChoice(method="DELIVERY", address="5 Elm St"),
                    PaymentChoice(method="CASH"),
                    coupon_code="FIRST3",
                ).order.coupon_usage_recorded
            finally:
                s.close()

        results = _run_workers(8, checkout)

        assert not any(isinstance(r, Exception) and not isinstance(r, CheckoutError) for r in results)
        assert results.count(True) == 3

        s = file_db()
        assert s.query(Coupon).one().usage_count == 3
        s.close()


class TestConcurrentIdempotency:
    def test_same_key_creates_one_order(self, file_db):
        point_id, window_id, product_id = _ids(file_db)

        def checkout(_):
            s = file_db()
            try:
                return finalize_order(
                    s,
                    Cart(items=[CartItem(product_id=product_id, quantity=1)], buyer=BUYER),
                    DeliveryChoice(method="PICKUP", point_id=point_id, pickup_time=SLOT_START),
                    PaymentChoice(method="CASH", pay_later=True),
                    idempotency_key="same-request",
                ).order.id
            finally:
                s.close()

        results = _run_workers(4, checkout)

        assert all(isinstance(r, int) for r in results), results
        assert len(set(results)) == 1

        s = file_db()
        assert s.query(Order).count() == 1
        assert s.get(PickupWindow, window_id).reserved == 1
        s.close()
