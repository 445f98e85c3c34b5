"""
Admin Pickup Window Routes
==========================

This module contains operator endpoints for pickup windows.

Endpoints:
----------
- GET /admin/pickup-windows: Paginated listing (filter by point and start range)
- POST /admin/pickup-windows: Create a window (overlap-checked)
- GET /admin/pickup-windows/{id}: Window details with availability
- PATCH /admin/pickup-windows/{id}: Change times or capacity
- DELETE /admin/pickup-windows/{id}: Delete a window no order references
- POST /admin/pickup-windows/{id}/increment-reserved: Take one slot by hand
- POST /admin/pickup-windows/{id}/decrement-reserved: Give one manual slot back
- POST /admin/pickup-windows/reap: Release abandoned reservations now

Reservation Counter:
--------------------
``reserved`` cannot be set through PATCH. The increment/decrement endpoints
go through the capacity ledger like checkout does, so they respect the same
bounds (409 when the window is full or nothing is reserved). Decrement only
gives back slots taken by hand; slots held by checkouts are freed by order
cancellation or the reaper.

Usage:
------
    POST /admin/pickup-windows
    {
        "point_id": 1,
        "start_time": "2026-03-01T10:00:00Z",
        "end_time": "2026-03-01T11:00:00Z",
        "capacity": 24
    }
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.windows import (
    PickupWindowCreate,
    PickupWindowListResponse,
    PickupWindowOut,
    PickupWindowUpdate,
    ReapRequest,
    ReapResponse,
)
from ..services import capacity_ledger, window_catalog


logger = logging.getLogger(__name__)

admin_windows_router = APIRouter(prefix="/admin/pickup-windows", tags=["Admin - Pickup Windows"])


# =============================================================================
# Window Definitions
# =============================================================================

@admin_windows_router.get("", response_model=PickupWindowListResponse)
def list_windows(
    point_id: Optional[int] = Query(None),
    start: Optional[datetime] = Query(None, description="Earliest start_time (inclusive)"),
    end: Optional[datetime] = Query(None, description="Latest start_time (inclusive)"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=window_catalog.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
) -> PickupWindowListResponse:
    data = window_catalog.list_windows(
        db, point_id=point_id, start=start, end=end, page=page, limit=limit
    )
    return PickupWindowListResponse.model_validate(data)


@admin_windows_router.post("", response_model=PickupWindowOut, status_code=201)
def create_window(
    payload: PickupWindowCreate,
    db: Session = Depends(get_db),
) -> PickupWindowOut:
    window = window_catalog.create_window(
        db,
        point_id=payload.point_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        capacity=payload.capacity,
    )
    return PickupWindowOut.model_validate(window_catalog.window_to_dict(window))


@admin_windows_router.post("/reap", response_model=ReapResponse)
def reap_holds(
    payload: Optional[ReapRequest] = None,
    db: Session = Depends(get_db),
) -> ReapResponse:
    max_age = payload.max_age_seconds if payload else None
    released = capacity_ledger.reap_stale_holds(db, max_age_seconds=max_age)
    return ReapResponse(released=released)


@admin_windows_router.get("/{window_id}", response_model=PickupWindowOut)
def get_window(window_id: int, db: Session = Depends(get_db)) -> PickupWindowOut:
    return PickupWindowOut.model_validate(window_catalog.get_window(db, window_id))


@admin_windows_router.patch("/{window_id}", response_model=PickupWindowOut)
def update_window(
    window_id: int,
    payload: PickupWindowUpdate,
    db: Session = Depends(get_db),
) -> PickupWindowOut:
    window = window_catalog.update_window(
        db,
        window_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        capacity=payload.capacity,
    )
    return PickupWindowOut.model_validate(window_catalog.window_to_dict(window))


@admin_windows_router.delete("/{window_id}", status_code=204)
def delete_window(window_id: int, db: Session = Depends(get_db)) -> Response:
    window_catalog.delete_window(db, window_id)
    return Response(status_code=204)


# =============================================================================
# Manual Capacity Adjustments
# =============================================================================

@admin_windows_router.post("/{window_id}/increment-reserved", response_model=PickupWindowOut)
def increment_reserved(window_id: int, db: Session = Depends(get_db)) -> PickupWindowOut:
    capacity_ledger.try_reserve(db, window_id, track_hold=False)
    logger.info("Operator reserved one slot on window %d", window_id)
    return PickupWindowOut.model_validate(window_catalog.get_window(db, window_id))


@admin_windows_router.post("/{window_id}/decrement-reserved", response_model=PickupWindowOut)
def decrement_reserved(window_id: int, db: Session = Depends(get_db)) -> PickupWindowOut:
    capacity_ledger.release(db, window_id, untracked_only=True)
    logger.info("Operator released one slot on window %d", window_id)
    return PickupWindowOut.model_validate(window_catalog.get_window(db, window_id))
