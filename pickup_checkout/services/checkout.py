"""
Checkout Orchestrator
=====================

Turns a cart plus delivery and payment choices into a finalized order.

State Machine:
--------------
Each run owns one CheckoutRun instance and moves through

    BUILDING -> VALIDATING -> RESERVING -> PRICING -> COMMITTING -> FINALIZED

DELIVERY orders skip RESERVING. FAILED is reachable from every non-terminal
state. An idempotent replay goes straight from BUILDING (or COMMITTING, when
a concurrent duplicate wins the insert) to FINALIZED.

Steps:
------
1. VALIDATING: cart, buyer contact, delivery-specific fields, pay_later only
   with CASH, products exist and are active, pickup point exists and is
   active, pickup time resolves to a covering window. No side effects.
   Unit prices are captured from the catalog here, once; the request never
   carries a price and later steps never re-read the catalog.
2. RESERVING (PICKUP only): one unit of window capacity through the capacity
   ledger. Pushes a "release hold" compensation.
3. PRICING: coupon validation, then the pure pricing engine.
4. COMMITTING: Order + OrderItems + stock decrement + hold claim in one
   transaction. Storage errors are retried up to COMMIT_MAX_ATTEMPTS; nothing
   financial has happened yet, so a retry cannot double anything.
5. After the commit: coupon usage is recorded, then FINALIZED.

Compensation:
-------------
Every side effect pushes its undo onto a stack. On failure the stack is
unwound last-in first-out before the error reaches the caller. A
compensation that itself fails is logged at ERROR; the hold it could not
release stays unclaimed and the reaper frees it later.

Coupon usage is recorded only once the order is durable. If recording fails
after the commit, the order stays finalized with coupon_usage_recorded=False
and an ERROR is logged for an operator to reconcile. The run never retries
that step on its own.

Coupon Limits:
--------------
The usage limit is checked during PRICING but only enforced by the
conditional increment in ``coupons.record_usage`` after the commit.
Concurrent checkouts can all pass the check, so more orders than
``usage_limit`` may carry the discount. Each one over the limit is left with
coupon_usage_recorded=False and the "usage NOT recorded" ERROR: that alert
means a discount was granted beyond the coupon limit, and the order total
already reflects it.

Idempotency:
------------
With an idempotency key, a finalize that finds an existing order for the key
returns it with ``replayed=True`` and makes no changes. Two concurrent
submissions with the same key both reserve, but only one order insert
survives the unique constraint; the loser releases its hold and replays the
winner.

Usage:
------
    from pickup_checkout.services.checkout import (
        BuyerInfo, Cart, CartItem, DeliveryChoice, PaymentChoice, finalize_order,
    )

    result = finalize_order(
        db,
        Cart(items=[CartItem(product_id=1, quantity=2)], buyer=BuyerInfo(...)),
        DeliveryChoice(method="PICKUP", point_id=3, pickup_time=when),
        PaymentChoice(method="CASH", pay_later=True),
        coupon_code="SAVE20",
        idempotency_key=request_key,
    )
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache import CacheLayer, get_cache
from ..clock import as_utc_naive, utcnow
from ..config import COMMIT_MAX_ATTEMPTS
from ..errors import CheckoutError, NotFoundError, PersistenceError, ValidationError
from ..models import DeliveryMethod, Order, PaymentMethod, PickupPoint, PickupWindow
from . import capacity_ledger, catalog, contact, coupons, orders, window_catalog
from .coupons import CouponRule
from .pricing import LineItem, Totals, compute_totals


logger = logging.getLogger(__name__)


# =============================================================================
# States
# =============================================================================

class CheckoutState(str, Enum):
    BUILDING = "BUILDING"
    VALIDATING = "VALIDATING"
    RESERVING = "RESERVING"
    PRICING = "PRICING"
    COMMITTING = "COMMITTING"
    FINALIZED = "FINALIZED"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS = {
    CheckoutState.BUILDING: {CheckoutState.VALIDATING, CheckoutState.FINALIZED, CheckoutState.FAILED},
    CheckoutState.VALIDATING: {CheckoutState.RESERVING, CheckoutState.PRICING, CheckoutState.FAILED},
    CheckoutState.RESERVING: {CheckoutState.PRICING, CheckoutState.FAILED},
    CheckoutState.PRICING: {CheckoutState.COMMITTING, CheckoutState.FAILED},
    CheckoutState.COMMITTING: {CheckoutState.FINALIZED, CheckoutState.FAILED},
    CheckoutState.FINALIZED: set(),
    CheckoutState.FAILED: set(),
}


# =============================================================================
# Inputs and Result
# =============================================================================

@dataclass
class CartItem:
    product_id: int
    quantity: int


@dataclass
class BuyerInfo:
    name: str
    email: str
    phone: str


@dataclass
class Cart:
    items: List[CartItem]
    buyer: BuyerInfo


@dataclass
class DeliveryChoice:
    method: str
    point_id: Optional[int] = None
    pickup_time: Optional[datetime] = None
    address: Optional[str] = None


@dataclass
class PaymentChoice:
    method: str
    pay_later: bool = False


@dataclass
class CheckoutResult:
    order: Order
    state: CheckoutState
    replayed: bool = False
    history: List[CheckoutState] = field(default_factory=list)


# =============================================================================
# Orchestrator
# =============================================================================

class CheckoutRun:
    """One finalize attempt. Create a new instance per checkout."""

    def __init__(
        self,
        db: Session,
        cart: Cart,
        delivery: DeliveryChoice,
        payment: PaymentChoice,
        coupon_code: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        *,
        cache: Optional[CacheLayer] = None,
        now: Optional[datetime] = None,
        max_commit_attempts: Optional[int] = None,
    ):
        self.db = db
        self.cart = cart
        self.delivery = delivery
        self.payment = payment
        self.coupon_code = coupon_code.strip() if coupon_code and coupon_code.strip() else None
        self.idempotency_key = idempotency_key or None
        self.cache = cache or get_cache()
        self.now = as_utc_naive(now) or utcnow()
        self.max_commit_attempts = max(1, max_commit_attempts or COMMIT_MAX_ATTEMPTS)

        self.state = CheckoutState.BUILDING
        self.history: List[CheckoutState] = [self.state]
        self.failure: Optional[CheckoutError] = None

        self.delivery_method: Optional[DeliveryMethod] = None
        self.payment_method: Optional[PaymentMethod] = None
        self.buyer_email: Optional[str] = None
        self.buyer_phone: Optional[str] = None
        self.line_items: List[LineItem] = []
        self.window: Optional[PickupWindow] = None
        self.hold_id: Optional[int] = None
        self.coupon_rule: Optional[CouponRule] = None
        self.totals: Optional[Totals] = None

        self._compensations: List[Tuple[str, Callable[[], None]]] = []

    # --- public -------------------------------------------------------

    def execute(self) -> CheckoutResult:
        if self.state != CheckoutState.BUILDING:
            raise RuntimeError("A CheckoutRun can only be executed once")

        existing = orders.find_order_by_idempotency_key(self.db, self.idempotency_key)
        if existing is not None:
            logger.info(
                "Replaying order #%d for idempotency key %s", existing.id, self.idempotency_key
            )
            return self._replay(existing)

        try:
            self._transition(CheckoutState.VALIDATING)
            self._validate()

            if self.delivery_method == DeliveryMethod.PICKUP:
                self._transition(CheckoutState.RESERVING)
                self._reserve()

            self._transition(CheckoutState.PRICING)
            self._price()

            self._transition(CheckoutState.COMMITTING)
            order, replayed = self._commit()
        except CheckoutError as exc:
            self._fail(exc)
            raise
        except SQLAlchemyError as exc:
            error = PersistenceError(f"Storage error during {self.state.value}: {exc}")
            self._fail(error)
            raise error from exc

        if replayed:
            return self._replay(order)

        self._record_coupon_usage(order)
        self._transition(CheckoutState.FINALIZED)
        logger.info("Checkout finalized order #%d (final total %s)", order.id, order.final_total)
        return CheckoutResult(order=order, state=self.state, history=list(self.history))

    # --- steps --------------------------------------------------------

    def _validate(self) -> None:
        cart, delivery, payment = self.cart, self.delivery, self.payment

        if not cart.items:
            raise ValidationError("Cart is empty")
        for item in cart.items:
            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
                raise ValidationError(f"Quantity for product {item.product_id} must be a positive integer")

        buyer = cart.buyer
        if buyer is None or not (buyer.name or "").strip():
            raise ValidationError("Buyer name is required")
        self.buyer_email = contact.normalize_email(buyer.email)
        self.buyer_phone = contact.normalize_phone(buyer.phone)

        try:
            self.delivery_method = DeliveryMethod(delivery.method)
        except ValueError:
            raise ValidationError(f"Unknown delivery method {delivery.method!r}")
        try:
            self.payment_method = PaymentMethod(payment.method)
        except ValueError:
            raise ValidationError(f"Unknown payment method {payment.method!r}")

        if payment.pay_later and self.payment_method != PaymentMethod.CASH:
            raise ValidationError("Pay later is only available for cash payment")

        if self.delivery_method == DeliveryMethod.PICKUP:
            if delivery.point_id is None or delivery.pickup_time is None:
                raise ValidationError("Pickup orders need a pickup point and a pickup time")
        elif not (delivery.address or "").strip():
            raise ValidationError("Delivery orders need an address")

        products = catalog.lookup_products(self.db, [i.product_id for i in cart.items])
        for item in cart.items:
            product = products.get(item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            if not product.is_active:
                raise ValidationError(f"Product {product.name} is not available")
            self.line_items.append(LineItem(
                product_id=product.id,
                quantity=item.quantity,
                unit_price=Decimal(str(product.price)),
                name=product.name,
            ))

        if self.delivery_method == DeliveryMethod.PICKUP:
            point = self.db.get(PickupPoint, delivery.point_id)
            if point is None:
                raise NotFoundError(f"Pickup point {delivery.point_id} not found")
            if not point.is_active:
                raise ValidationError(f"Pickup point {point.name} is not active")
            self.window = window_catalog.find_covering_window(
                self.db, delivery.point_id, delivery.pickup_time
            )

    def _reserve(self) -> None:
        hold = capacity_ledger.try_reserve(
            self.db, self.window.id, token=self.idempotency_key, cache=self.cache
        )
        hold_id = self.hold_id = hold.id
        self._push_compensation(
            f"release hold {hold_id} on window {self.window.id}",
            lambda: capacity_ledger.release_hold(self.db, hold_id, cache=self.cache),
        )

    def _price(self) -> None:
        if self.coupon_code:
            self.coupon_rule = coupons.validate_coupon(self.db, self.coupon_code, now=self.now)
        self.totals = compute_totals(self.line_items, self.coupon_rule)
        logger.debug(
            "Priced cart: total %s, discount %s, final %s",
            self.totals.total, self.totals.discount, self.totals.final_total,
        )

    def _commit(self) -> Tuple[Order, bool]:
        is_pickup = self.delivery_method == DeliveryMethod.PICKUP
        last_error: Optional[SQLAlchemyError] = None

        for attempt in range(1, self.max_commit_attempts + 1):
            try:
                order = orders.persist_order(
                    self.db,
                    self.line_items,
                    self.totals,
                    buyer_name=self.cart.buyer.name.strip(),
                    email=self.buyer_email,
                    phone=self.buyer_phone,
                    delivery_method=self.delivery_method.value,
                    payment_method=self.payment_method.value,
                    pay_later=self.payment.pay_later,
                    point_id=self.delivery.point_id if is_pickup else None,
                    window_id=self.window.id if is_pickup else None,
                    address=None if is_pickup else self.delivery.address.strip(),
                    coupon_id=self.coupon_rule.coupon_id if self.coupon_rule else None,
                    idempotency_key=self.idempotency_key,
                    hold_id=self.hold_id,
                )
                return order, False
            except IntegrityError as exc:
                winner = orders.find_order_by_idempotency_key(self.db, self.idempotency_key)
                if winner is not None:
                    logger.info(
                        "Concurrent submission already created order #%d for key %s",
                        winner.id, self.idempotency_key,
                    )
                    self._unwind()
                    return winner, True
                last_error = exc
            except SQLAlchemyError as exc:
                last_error = exc

            logger.warning(
                "Order commit attempt %d/%d failed: %s",
                attempt, self.max_commit_attempts, last_error,
            )

        raise PersistenceError(
            f"Order could not be committed after {self.max_commit_attempts} attempts: {last_error}"
        )

    def _record_coupon_usage(self, order: Order) -> None:
        if self.coupon_rule is None:
            return
        try:
            coupons.record_usage(
                self.db, self.coupon_rule.coupon_id, order_id=order.id, cache=self.cache
            )
        except (CheckoutError, SQLAlchemyError):
            logger.error(
                "Coupon %s usage NOT recorded for finalized order #%d; manual reconciliation needed",
                self.coupon_rule.code, order.id, exc_info=True,
            )
        self.db.refresh(order)

    # --- bookkeeping --------------------------------------------------

    def _transition(self, new_state: CheckoutState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal checkout transition {self.state.value} -> {new_state.value}")
        logger.debug("Checkout %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def _push_compensation(self, description: str, action: Callable[[], None]) -> None:
        self._compensations.append((description, action))

    def _unwind(self) -> None:
        while self._compensations:
            description, action = self._compensations.pop()
            try:
                action()
                logger.info("Compensated: %s", description)
            except Exception:
                logger.error("Compensation failed: %s", description, exc_info=True)

    def _fail(self, error: CheckoutError) -> None:
        self.failure = error
        failed_in = self.state
        try:
            self.db.rollback()
        except SQLAlchemyError:
            logger.error("Rollback failed while failing checkout", exc_info=True)
        self._unwind()
        self._transition(CheckoutState.FAILED)
        logger.warning("Checkout failed in %s: %s (%s)", failed_in.value, error.code, error.detail)

    def _replay(self, order: Order) -> CheckoutResult:
        self._transition(CheckoutState.FINALIZED)
        return CheckoutResult(order=order, state=self.state, replayed=True, history=list(self.history))


def finalize_order(
    db: Session,
    cart: Cart,
    delivery: DeliveryChoice,
    payment: PaymentChoice,
    coupon_code: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    **kwargs,
) -> CheckoutResult:
    """Run one checkout to completion. See CheckoutRun for keyword options."""
    return CheckoutRun(
        db, cart, delivery, payment,
        coupon_code=coupon_code,
        idempotency_key=idempotency_key,
        **kwargs,
    ).execute()
