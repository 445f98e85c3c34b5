"""
Schemas Package for Pickup Checkout
===================================

Pydantic models used for API request validation and response serialization.

Schema Organization:
--------------------
- **points.py**: Pickup point schemas
- **windows.py**: Pickup window and availability schemas
- **coupons.py**: Coupon creation and validation schemas
- **checkout.py**: Checkout request and order schemas

Naming Conventions:
-------------------
- *Out: Response models (e.g., PickupWindowOut)
- *Create: Request models for POST
- *Update: Request models for PATCH
- *Request / *Response: Complex request and response bodies

Response models use ``model_config = ConfigDict(from_attributes=True)`` so
they can be built from SQLAlchemy objects or the dicts the services cache:

    window = window_catalog.get_window(db, window_id)
    return PickupWindowOut.model_validate(window)
"""

from .points import (
    PickupPointOut,
    PickupPointCreate,
    PickupPointUpdate,
)

from .windows import (
    PickupWindowOut,
    PickupWindowCreate,
    PickupWindowUpdate,
    PickupWindowListResponse,
    ReapRequest,
    ReapResponse,
)

from .coupons import (
    CouponOut,
    CouponCreate,
    CouponValidateRequest,
    CouponValidateResponse,
)

from .checkout import (
    CartItemIn,
    BuyerIn,
    DeliveryIn,
    PaymentIn,
    CheckoutRequest,
    OrderItemOut,
    OrderDetailOut,
    CheckoutResponse,
)

__all__ = [
    "PickupPointOut",
    "PickupPointCreate",
    "PickupPointUpdate",
    "PickupWindowOut",
    "PickupWindowCreate",
    "PickupWindowUpdate",
    "PickupWindowListResponse",
    "ReapRequest",
    "ReapResponse",
    "CouponOut",
    "CouponCreate",
    "CouponValidateRequest",
    "CouponValidateResponse",
    "CartItemIn",
    "BuyerIn",
    "DeliveryIn",
    "PaymentIn",
    "CheckoutRequest",
    "OrderItemOut",
    "OrderDetailOut",
    "CheckoutResponse",
]
