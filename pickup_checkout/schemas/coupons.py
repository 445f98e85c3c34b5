"""
Coupon Schemas
==============

- POST /admin/coupons: CouponCreate -> CouponOut
- GET /coupons/active: List[CouponOut]
- POST /coupons/validate: CouponValidateRequest -> CouponValidateResponse

Codes are case-insensitive: " save20 " and "SAVE20" are the same coupon.
``usage_limit`` 0 means unlimited.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ..models import CouponKind


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    kind: CouponKind
    value: float
    valid_from: datetime
    valid_to: datetime
    usage_limit: int
    usage_count: int
    is_active: bool


class CouponCreate(BaseModel):
    """
    Example:
        {
            "code": "SAVE20",
            "kind": "PERCENTAGE",
            "value": 20,
            "valid_from": "2026-01-01T00:00:00Z",
            "valid_to": "2026-12-31T23:59:59Z",
            "usage_limit": 100
        }
    """
    code: str = Field(min_length=1)
    kind: CouponKind
    value: Decimal = Field(ge=0)
    valid_from: datetime
    valid_to: datetime
    usage_limit: int = Field(default=0, ge=0)
    is_active: bool = True


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1)


class CouponValidateResponse(BaseModel):
    valid: bool = True
    coupon_id: int
    code: str
    kind: CouponKind
    value: float
