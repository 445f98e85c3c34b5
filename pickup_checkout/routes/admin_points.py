"""
Admin Pickup Point Routes
=========================

Endpoints:
----------
- GET /admin/pickup-points: List all points
- POST /admin/pickup-points: Create a point
- GET /admin/pickup-points/{id}: Point details
- PATCH /admin/pickup-points/{id}: Partial update (including deactivation)

Points are never deleted. Deactivating one stops new pickup checkouts
against it; existing orders keep their reference.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.points import PickupPointCreate, PickupPointOut, PickupPointUpdate
from ..services import pickup_points


logger = logging.getLogger(__name__)

admin_points_router = APIRouter(prefix="/admin/pickup-points", tags=["Admin - Pickup Points"])


@admin_points_router.get("", response_model=List[PickupPointOut])
def list_points(
    active_only: bool = False,
    db: Session = Depends(get_db),
) -> List[PickupPointOut]:
    points = pickup_points.list_points(db, active_only=active_only)
    return [PickupPointOut.model_validate(p) for p in points]


@admin_points_router.post("", response_model=PickupPointOut, status_code=201)
def create_point(
    payload: PickupPointCreate,
    db: Session = Depends(get_db),
) -> PickupPointOut:
    point = pickup_points.create_point(db, **payload.model_dump())
    return PickupPointOut.model_validate(point)


@admin_points_router.get("/{point_id}", response_model=PickupPointOut)
def get_point(point_id: int, db: Session = Depends(get_db)) -> PickupPointOut:
    return PickupPointOut.model_validate(pickup_points.get_point(db, point_id))


@admin_points_router.patch("/{point_id}", response_model=PickupPointOut)
def update_point(
    point_id: int,
    payload: PickupPointUpdate,
    db: Session = Depends(get_db),
) -> PickupPointOut:
    point = pickup_points.update_point(db, point_id, payload.model_dump(exclude_unset=True))
    return PickupPointOut.model_validate(point)
