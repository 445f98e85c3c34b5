"""
Services Package for Pickup Checkout
====================================

This package contains the business logic of the checkout core. Routes are
thin wrappers around these modules; every invariant is enforced here.

Available Services:
-------------------
- **capacity_ledger**: The only writer of ``PickupWindow.reserved``
  (conditional increment/decrement, reservation holds, reaping)
- **window_catalog**: Window definitions, overlap rule, availability queries
- **pickup_points**: Pickup point management
- **coupons**: Coupon validation and usage accounting
- **pricing**: Pure totals/discount computation
- **contact**: Buyer email and phone normalization
- **catalog**: Product lookup and conditional stock decrement
- **orders**: Order persistence and cancellation
- **checkout**: The checkout state machine (saga with compensations)
- **reaper**: Background task releasing abandoned reservations

Design Philosophy:
------------------
1. **Conditional Updates**: Shared counters (window reservations, coupon
   usage, stock) only change through a single guarded UPDATE.

2. **Dependency Injection**: Services receive the database session and,
   where relevant, the cache layer rather than creating them.

3. **Commit, then Invalidate**: Cache entries are dropped only after the
   database change is durable. The cache is never a source of truth.

Usage:
------
    from pickup_checkout.services.checkout import finalize_order
    from pickup_checkout.services import capacity_ledger, window_catalog
"""

from . import capacity_ledger
from . import window_catalog
from . import pickup_points
from . import coupons
from . import pricing
from . import contact
from . import catalog
from . import orders
from . import checkout
from . import reaper

__all__ = [
    "capacity_ledger",
    "window_catalog",
    "pickup_points",
    "coupons",
    "pricing",
    "contact",
    "catalog",
    "orders",
    "checkout",
    "reaper",
]
