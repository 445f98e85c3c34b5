"""
Order Persistence Service
=========================

Writes finalized orders and handles the cancellation side effects.

Key Functions:
--------------
- persist_order: Insert Order + OrderItems, decrement tracked stock and
  claim the window reservation hold, all in one transaction
- get_order / find_order_by_idempotency_key: Reads
- cancel_order: PENDING/PROCESSING -> CANCELLED with restock, window
  release and the configurable coupon policy

Order Lifecycle:
----------------
1. Checkout builds the cart and reserves capacity (not persisted as an order)
2. persist_order -> status PENDING
3. Fulfilment moves it to PROCESSING / SHIPPED / DELIVERED (external)
4. cancel_order -> CANCELLED, only from PENDING or PROCESSING

Cancellation releases the window reservation through the order's hold, so
calling it twice (or racing the reaper) never frees the same slot twice.
Coupon usage is given back only when COUPON_RELEASE_ON_CANCEL is enabled;
by default a coupon stays spent.
"""

import logging
from collections import OrderedDict
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache import CacheLayer, get_cache
from ..clock import utcnow
from ..config import COUPON_RELEASE_ON_CANCEL
from ..errors import ConflictError, NotFoundError
from ..models import Coupon, Order, OrderItem, OrderStatus
from . import capacity_ledger, catalog, coupons
from .pricing import LineItem, Totals


logger = logging.getLogger(__name__)


CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PROCESSING.value)


def persist_order(
    db: Session,
    line_items: List[LineItem],
    totals: Totals,
    buyer_name: str,
    email: str,
    phone: str,
    delivery_method: str,
    payment_method: str,
    pay_later: bool = False,
    point_id: Optional[int] = None,
    window_id: Optional[int] = None,
    address: Optional[str] = None,
    coupon_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
    hold_id: Optional[int] = None,
) -> Order:
    """
    Persist an order in PENDING status as a single durable unit.

    Raises:
        OutOfStockError: a tracked product ran out
        ReservationExpiredError: the window hold was reaped before commit
        sqlalchemy.exc.SQLAlchemyError: storage failure (rolled back)
    """
    try:
        order = Order(
            status=OrderStatus.PENDING.value,
            buyer_name=buyer_name,
            email=email,
            phone=phone,
            delivery_method=delivery_method,
            payment_method=payment_method,
            pay_later=pay_later,
            point_id=point_id,
            window_id=window_id,
            address=address,
            total=totals.total,
            discount=totals.discount,
            final_total=totals.final_total,
            coupon_id=coupon_id,
            coupon_usage_recorded=False,
            idempotency_key=idempotency_key,
        )
        db.add(order)
        db.flush()

        quantities = OrderedDict()
        for position, item in enumerate(line_items):
            db.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                position=position,
                product_name=item.name or f"Product {item.product_id}",
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            ))
            name, qty = quantities.get(item.product_id, (item.name, 0))
            quantities[item.product_id] = (name, qty + item.quantity)

        for product_id, (name, qty) in quantities.items():
            catalog.decrement_stock(db, product_id, qty, name)

        if hold_id is not None:
            capacity_ledger.claim_hold(db, hold_id, order.id)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "Order #%d committed: %s, total %s, discount %s, final %s",
        order.id, order.delivery_method, order.total, order.discount, order.final_total,
    )
    return order


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def find_order_by_idempotency_key(db: Session, key: Optional[str]) -> Optional[Order]:
    if not key:
        return None
    return db.query(Order).filter(Order.idempotency_key == key).one_or_none()


def cancel_order(
    db: Session,
    order_id: int,
    release_coupon: Optional[bool] = None,
    cache: Optional[CacheLayer] = None,
) -> Order:
    """
    Cancel an order and undo its side effects in one transaction.

    Args:
        release_coupon: Override COUPON_RELEASE_ON_CANCEL for this call

    Raises:
        NotFoundError: no such order
        ConflictError: the order is past PROCESSING or already cancelled
    """
    cache = cache or get_cache()
    if release_coupon is None:
        release_coupon = COUPON_RELEASE_ON_CANCEL

    coupon_code = None
    try:
        moved = db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_(CANCELLABLE_STATUSES))
            .values(status=OrderStatus.CANCELLED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if moved != 1:
            db.rollback()
            order = get_order(db, order_id)
            raise ConflictError(f"Order {order_id} cannot be cancelled from status {order.status}")

        order = db.get(Order, order_id, populate_existing=True)

        for item in order.items:
            catalog.restock(db, item.product_id, item.quantity)

        if order.window_id is not None:
            hold_id = capacity_ledger.find_open_hold_for_order(db, order_id)
            if hold_id is not None:
                capacity_ledger.release_hold(db, hold_id, commit=False, cache=cache)
            elif not capacity_ledger.order_has_hold(db, order_id):
                # Order predates reservation holds
                capacity_ledger.release(
                    db, order.window_id, commit=False, cache=cache, untracked_only=True
                )

        if release_coupon and order.coupon_id is not None:
            if coupons.release_usage(db, order.coupon_id, order_id=order_id, commit=False, cache=cache):
                coupon_code = db.get(Coupon, order.coupon_id).code

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order #%d cancelled", order_id)

    if order.window_id is not None:
        cache.invalidate_window(order.window_id, order.point_id)
    if coupon_code is not None:
        cache.invalidate_coupon(order.coupon_id, coupon_code)
    return order
