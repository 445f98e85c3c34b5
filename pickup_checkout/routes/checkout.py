"""
Checkout Routes
===============

Endpoints:
----------
- POST /checkout/orders: Finalize a cart into an order
- GET /orders/{id}: Order details
- POST /orders/{id}/cancel: Cancel a PENDING or PROCESSING order

Idempotency:
------------
Clients should send an ``Idempotency-Key`` header with a value unique per
checkout attempt and reuse it when retrying after a timeout. A repeated key
returns the original order (200, ``replayed: true``) instead of reserving a
second slot. A new order answers 201.

Error Handling:
---------------
Domain errors raised by the checkout service propagate to the
CheckoutError handler in main.py, which answers with the error's status
code and client-facing message (e.g. 409 "This time slot is full, please
choose another.").

Rate Limiting:
--------------
POST /checkout/orders is limited per client IP (RATE_LIMIT_CHECKOUT).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..config import RATE_LIMIT_ENABLED, get_rate_limit_checkout
from ..db import get_db
from ..schemas.checkout import CheckoutRequest, CheckoutResponse, OrderDetailOut
from ..services import orders
from ..services.checkout import (
    BuyerInfo,
    Cart,
    CartItem,
    DeliveryChoice,
    PaymentChoice,
    finalize_order,
)


logger = logging.getLogger(__name__)

checkout_router = APIRouter(prefix="/checkout", tags=["Checkout"])
orders_router = APIRouter(prefix="/orders", tags=["Orders"])


# =============================================================================
# Rate Limiting Setup
# =============================================================================

limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)


# =============================================================================
# Checkout Endpoints
# =============================================================================

@checkout_router.post("/orders", response_model=CheckoutResponse, status_code=201)
@limiter.limit(get_rate_limit_checkout)
def create_order(
    request: Request,
    response: Response,
    payload: CheckoutRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
) -> CheckoutResponse:
    cart = Cart(
        items=[
            CartItem(product_id=i.product_id, quantity=i.quantity)
            for i in payload.items
        ],
        buyer=BuyerInfo(
            name=payload.buyer.name,
            email=payload.buyer.email,
            phone=payload.buyer.phone,
        ),
    )
    delivery = DeliveryChoice(
        method=payload.delivery.method.value,
        point_id=payload.delivery.point_id,
        pickup_time=payload.delivery.pickup_time,
        address=payload.delivery.address,
    )
    payment = PaymentChoice(
        method=payload.payment.method.value,
        pay_later=payload.payment.pay_later,
    )

    result = finalize_order(
        db, cart, delivery, payment,
        coupon_code=payload.coupon_code,
        idempotency_key=idempotency_key,
    )
    if result.replayed:
        response.status_code = 200

    return CheckoutResponse(
        order=OrderDetailOut.model_validate(result.order),
        state=result.state.value,
        replayed=result.replayed,
    )


# =============================================================================
# Order Endpoints
# =============================================================================

@orders_router.get("/{order_id}", response_model=OrderDetailOut)
def get_order(order_id: int, db: Session = Depends(get_db)) -> OrderDetailOut:
    return OrderDetailOut.model_validate(orders.get_order(db, order_id))


@orders_router.post("/{order_id}/cancel", response_model=OrderDetailOut)
def cancel_order(order_id: int, db: Session = Depends(get_db)) -> OrderDetailOut:
    order = orders.cancel_order(db, order_id)
    return OrderDetailOut.model_validate(order)
