"""
Routes Package for Pickup Checkout
==================================

This package contains all API route definitions organized by domain. Each
module defines FastAPI APIRouters with related endpoints grouped together.

Architecture Overview:
----------------------
**Customer-Facing Routes:**
- checkout.py: Finalize, read and cancel orders
- public.py: Active pickup points, window availability, coupon checks

**Operator Routes:**
- admin_points.py: Pickup point management
- admin_windows.py: Pickup window management and manual capacity adjustment
- admin_coupons.py: Coupon creation

Router Registration:
--------------------
All routers are registered in main.py under /api/v1:

    checkout_router = APIRouter(prefix="/checkout", tags=["Checkout"])

Error Handling:
---------------
Routes do not catch domain errors. Services raise CheckoutError subclasses
and the handler in main.py maps them to responses:
- 400: Validation and coupon errors
- 404: Unknown point, window, product, coupon or order
- 409: Window full, overlapping window, out of stock, nothing to release
- 429: Too many requests (rate limited)
- 503: Order could not be persisted
"""

from .checkout import checkout_router, orders_router, limiter
from .public import public_points_router, public_coupons_router
from .admin_points import admin_points_router
from .admin_windows import admin_windows_router
from .admin_coupons import admin_coupons_router

__all__ = [
    "checkout_router",
    "orders_router",
    "limiter",
    "public_points_router",
    "public_coupons_router",
    "admin_points_router",
    "admin_windows_router",
    "admin_coupons_router",
]
