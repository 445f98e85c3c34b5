"""
Public Routes
=============

Read-only endpoints the storefront calls without operator credentials.

Endpoints:
----------
- GET /pickup-points: Active pickup points
- GET /pickup-points/{id}/windows/available: Windows with free capacity info
- GET /coupons/active: Coupons usable right now
- POST /coupons/validate: Check a code before checkout
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.coupons import CouponOut, CouponValidateRequest, CouponValidateResponse
from ..schemas.points import PickupPointOut
from ..schemas.windows import PickupWindowOut
from ..services import coupons, pickup_points, window_catalog


public_points_router = APIRouter(prefix="/pickup-points", tags=["Public - Pickup Points"])
public_coupons_router = APIRouter(prefix="/coupons", tags=["Public - Coupons"])


@public_points_router.get("", response_model=List[PickupPointOut])
def list_active_points(db: Session = Depends(get_db)) -> List[PickupPointOut]:
    return [PickupPointOut.model_validate(p) for p in pickup_points.list_points(db, active_only=True)]


@public_points_router.get("/{point_id}/windows/available", response_model=List[PickupWindowOut])
def list_available_windows(
    point_id: int,
    start: Optional[datetime] = Query(None, description="Earliest start_time (inclusive)"),
    end: Optional[datetime] = Query(None, description="Latest start_time (inclusive)"),
    db: Session = Depends(get_db),
) -> List[PickupWindowOut]:
    rows = window_catalog.list_available(db, point_id, start=start, end=end)
    return [PickupWindowOut.model_validate(r) for r in rows]


@public_coupons_router.get("/active", response_model=List[CouponOut])
def list_active_coupons(db: Session = Depends(get_db)) -> List[CouponOut]:
    return [CouponOut.model_validate(c) for c in coupons.list_active_coupons(db)]


@public_coupons_router.post("/validate", response_model=CouponValidateResponse)
def validate_coupon(
    payload: CouponValidateRequest,
    db: Session = Depends(get_db),
) -> CouponValidateResponse:
    rule = coupons.validate_coupon(db, payload.code)
    return CouponValidateResponse(
        coupon_id=rule.coupon_id,
        code=rule.code,
        kind=rule.kind,
        value=float(rule.value),
    )
