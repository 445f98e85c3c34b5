"""
Admin Coupon Routes
===================

- POST /admin/coupons: Create a coupon (code normalized to upper case)
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.coupons import CouponCreate, CouponOut
from ..services import coupons


logger = logging.getLogger(__name__)

admin_coupons_router = APIRouter(prefix="/admin/coupons", tags=["Admin - Coupons"])


@admin_coupons_router.post("", response_model=CouponOut, status_code=201)
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)) -> CouponOut:
    coupon = coupons.create_coupon(db, **payload.model_dump())
    return CouponOut.model_validate(coupon)
