"""
Coupon Validator Service
========================

Resolves coupon codes to discount rules and keeps the per-coupon usage
counter consistent under concurrent checkouts.

Key Functions:
--------------
- normalize_code: Codes are stored and compared upper-case, stripped
- create_coupon: Operator-side creation with rule checks
- validate_coupon: Code -> CouponRule, or a specific CouponError
- record_usage: Count one use, at most once per order, after the order commits
- release_usage: Give one use back (cancellation policy only)
- list_active_coupons: Cached list of currently usable coupons

Validation Order:
-----------------
    not found -> inactive -> not yet valid -> expired -> usage limit reached

``now`` must fall in [valid_from, valid_to] (both inclusive). A usage limit
of 0 means unlimited.

Usage Counting:
---------------
``usage_count`` is only changed with conditional UPDATEs:

    UPDATE coupons SET usage_count = usage_count + 1
     WHERE id = :id AND (usage_limit = 0 OR usage_count < usage_limit)

When an order id is passed, the order's ``coupon_usage_recorded`` flag is
flipped from false to true in the same transaction, so a retried call for the
same order never counts twice.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache import CacheLayer, active_coupons_key, get_cache
from ..clock import as_utc_naive, utcnow
from ..config import COUPON_CACHE_TTL_SECONDS
from ..errors import (
    ConflictError,
    CouponExpiredError,
    CouponInactiveError,
    CouponNotFoundError,
    CouponNotYetValidError,
    CouponUsageExceededError,
    ValidationError,
)
from ..models import Coupon, CouponKind, Order


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponRule:
    """The part of a coupon the pricing engine needs."""
    coupon_id: int
    code: str
    kind: CouponKind
    value: Decimal


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def coupon_to_dict(coupon: Coupon) -> Dict[str, Any]:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "kind": coupon.kind,
        "value": str(coupon.value),
        "valid_from": coupon.valid_from,
        "valid_to": coupon.valid_to,
        "usage_limit": coupon.usage_limit,
        "usage_count": coupon.usage_count,
        "is_active": coupon.is_active,
    }


# =============================================================================
# Creation and Lookup
# =============================================================================

def create_coupon(
    db: Session,
    code: str,
    kind: CouponKind,
    value: Decimal,
    valid_from: datetime,
    valid_to: datetime,
    usage_limit: int = 0,
    is_active: bool = True,
    cache: Optional[CacheLayer] = None,
) -> Coupon:
    """
    Create a coupon.

    Raises:
        ValidationError: empty code, negative value, percentage over 100,
            valid_to not after valid_from, negative usage limit
        ConflictError: the normalized code already exists
    """
    cache = cache or get_cache()
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationError("Coupon code is required")

    kind = CouponKind(kind)
    value = Decimal(str(value))
    valid_from = as_utc_naive(valid_from)
    valid_to = as_utc_naive(valid_to)

    if value < 0:
        raise ValidationError("Coupon value cannot be negative")
    if kind == CouponKind.PERCENTAGE and value > 100:
        raise ValidationError("Percentage value cannot exceed 100")
    if valid_to <= valid_from:
        raise ValidationError("valid_to must be after valid_from")
    if usage_limit < 0:
        raise ValidationError("usage_limit cannot be negative")

    if db.query(Coupon.id).filter(Coupon.code == normalized).first() is not None:
        raise ConflictError(f"Coupon with code {normalized} already exists")

    coupon = Coupon(
        code=normalized,
        kind=kind.value,
        value=value,
        valid_from=valid_from,
        valid_to=valid_to,
        usage_limit=usage_limit,
        usage_count=0,
        is_active=is_active,
    )
    db.add(coupon)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Coupon with code {normalized} already exists")
    db.refresh(coupon)

    logger.info("Created coupon %s (%s %s)", coupon.code, coupon.kind, coupon.value)
    cache.invalidate_coupon(coupon.id, coupon.code)
    return coupon


def get_coupon_by_code(db: Session, code: str) -> Coupon:
    normalized = normalize_code(code)
    coupon = db.query(Coupon).filter(Coupon.code == normalized).one_or_none()
    if coupon is None:
        raise CouponNotFoundError(f"Coupon {normalized or '<empty>'} not found")
    return coupon


def validate_coupon(db: Session, code: str, now: Optional[datetime] = None) -> CouponRule:
    """
    Resolve a code to its discount rule if the coupon can be applied at ``now``.

    Raises:
        CouponNotFoundError, CouponInactiveError, CouponNotYetValidError,
        CouponExpiredError, CouponUsageExceededError
    """
    now = as_utc_naive(now) or utcnow()
    coupon = get_coupon_by_code(db, code)

    if not coupon.is_active:
        raise CouponInactiveError(f"Coupon {coupon.code} is inactive")
    if now < coupon.valid_from:
        raise CouponNotYetValidError(
            f"Coupon {coupon.code} is valid from {coupon.valid_from.isoformat()}"
        )
    if now > coupon.valid_to:
        raise CouponExpiredError(f"Coupon {coupon.code} expired at {coupon.valid_to.isoformat()}")
    if coupon.usage_limit > 0 and coupon.usage_count >= coupon.usage_limit:
        raise CouponUsageExceededError(
            f"Coupon {coupon.code} used {coupon.usage_count}/{coupon.usage_limit} times"
        )

    logger.debug("Coupon %s is valid", coupon.code)
    return CouponRule(
        coupon_id=coupon.id,
        code=coupon.code,
        kind=CouponKind(coupon.kind),
        value=Decimal(coupon.value),
    )


def list_active_coupons(
    db: Session,
    now: Optional[datetime] = None,
    cache: Optional[CacheLayer] = None,
) -> List[Dict[str, Any]]:
    """Active, currently valid coupons with uses left, soonest-expiring first."""
    cache = cache or get_cache()
    key = active_coupons_key()
    cached = cache.get(key)
    if cached is not None:
        return cached

    now = as_utc_naive(now) or utcnow()
    rows = (
        db.query(Coupon)
        .filter(
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_to >= now,
            or_(Coupon.usage_limit == 0, Coupon.usage_count < Coupon.usage_limit),
        )
        .order_by(Coupon.valid_to.asc())
        .all()
    )
    data = [coupon_to_dict(c) for c in rows]
    cache.set(key, data, COUPON_CACHE_TTL_SECONDS)
    return data


# =============================================================================
# Usage Accounting
# =============================================================================

def record_usage(
    db: Session,
    coupon_id: int,
    order_id: Optional[int] = None,
    cache: Optional[CacheLayer] = None,
) -> bool:
    """
    Count one use of a coupon. Call only after the order has committed.

    Returns:
        True if counted, False if this order's usage was already recorded.

    Raises:
        CouponNotFoundError: no such coupon
        CouponUsageExceededError: the limit was reached by concurrent orders
    """
    cache = cache or get_cache()
    try:
        if order_id is not None:
            flipped = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.coupon_usage_recorded.is_(False))
                .values(coupon_usage_recorded=True)
                .execution_options(synchronize_session=False)
            ).rowcount
            if flipped != 1:
                db.rollback()
                logger.debug("Coupon usage for order %d already recorded", order_id)
                return False

        counted = db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit == 0, Coupon.usage_count < Coupon.usage_limit),
            )
            .values(usage_count=Coupon.usage_count + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if counted != 1:
            db.rollback()
            if db.get(Coupon, coupon_id) is None:
                raise CouponNotFoundError(f"Coupon {coupon_id} not found")
            raise CouponUsageExceededError(f"Coupon {coupon_id} reached its usage limit")

        code = db.execute(select(Coupon.code).where(Coupon.id == coupon_id)).scalar_one()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Recorded usage of coupon %s (order %s)", code, order_id)
    cache.invalidate_coupon(coupon_id, code)
    return True


def release_usage(
    db: Session,
    coupon_id: int,
    order_id: Optional[int] = None,
    commit: bool = True,
    cache: Optional[CacheLayer] = None,
) -> bool:
    """
    Give one use back. Only reached through the cancellation policy.

    Returns:
        True if a use was released, False if there was nothing to release.
    """
    cache = cache or get_cache()
    try:
        if order_id is not None:
            flipped = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.coupon_usage_recorded.is_(True))
                .values(coupon_usage_recorded=False)
                .execution_options(synchronize_session=False)
            ).rowcount
            if flipped != 1:
                if commit:
                    db.rollback()
                return False

        released = db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.usage_count > 0)
            .values(usage_count=Coupon.usage_count - 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if released != 1:
            logger.error("Coupon %d has no usage to release (order %s)", coupon_id, order_id)
            if commit:
                db.rollback()
            return False

        code = db.execute(select(Coupon.code).where(Coupon.id == coupon_id)).scalar_one()
        if commit:
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Released usage of coupon %s (order %s)", code, order_id)
    if commit:
        cache.invalidate_coupon(coupon_id, code)
    return True
