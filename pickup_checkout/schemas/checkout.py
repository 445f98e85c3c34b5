"""
Checkout and Order Schemas
==========================

Request and response models for finalizing, reading and cancelling orders.

Endpoint Coverage:
------------------
- POST /checkout/orders: CheckoutRequest -> CheckoutResponse
  (optional ``Idempotency-Key`` header; a repeated key returns the original
  order with ``replayed: true``)
- GET /orders/{id}: OrderDetailOut
- POST /orders/{id}/cancel: OrderDetailOut

Delivery Fields:
----------------
- PICKUP: point_id and pickup_time are required
- DELIVERY: address is required

The schema keeps them optional; the checkout service enforces the rule so
the caller gets the same error payload whatever the entry point.

Price Snapshot:
---------------
Cart items carry only product_id and quantity. Unit prices come from the
catalog when the order is validated and are stored on the order items; a
``unit_price`` sent by the client is ignored. Totals are never recomputed
from the live catalog afterwards.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import DeliveryMethod, PaymentMethod


class CartItemIn(BaseModel):
    product_id: int
    quantity: int


class BuyerIn(BaseModel):
    name: str
    email: str
    phone: str


class DeliveryIn(BaseModel):
    method: DeliveryMethod
    point_id: Optional[int] = None
    pickup_time: Optional[datetime] = None
    address: Optional[str] = None


class PaymentIn(BaseModel):
    method: PaymentMethod
    pay_later: bool = False


class CheckoutRequest(BaseModel):
    """
    Example:
        {
            "items": [{"product_id": 1, "quantity": 2}],
            "buyer": {"name": "Ann", "email": "ann@mailbox.org", "phone": "+12127365000"},
            "delivery": {"method": "PICKUP", "point_id": 1,
                         "pickup_time": "2026-03-01T10:30:00Z"},
            "payment": {"method": "CASH", "pay_later": true},
            "coupon_code": "SAVE20"
        }
    """
    items: List[CartItemIn] = Field(default_factory=list)
    buyer: BuyerIn
    delivery: DeliveryIn
    payment: PaymentIn
    coupon_code: Optional[str] = None


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    line_total: float


class OrderDetailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    buyer_name: str
    email: str
    phone: str
    delivery_method: str
    payment_method: str
    pay_later: bool
    point_id: Optional[int] = None
    window_id: Optional[int] = None
    address: Optional[str] = None
    total: float
    discount: float
    final_total: float
    coupon_id: Optional[int] = None
    coupon_usage_recorded: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut] = []


class CheckoutResponse(BaseModel):
    order: OrderDetailOut
    state: str
    replayed: bool = False
