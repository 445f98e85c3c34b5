"""
Pickup Window Schemas
=====================

Request and response models for pickup windows and their availability.

Endpoint Coverage:
------------------
- POST /admin/pickup-windows: Create a window
- GET /admin/pickup-windows: Paginated listing
- GET /admin/pickup-windows/{id}: Window details
- PATCH /admin/pickup-windows/{id}: Change times or capacity
- DELETE /admin/pickup-windows/{id}: Delete an unreferenced window
- POST /admin/pickup-windows/{id}/increment-reserved: Operator reservation
- POST /admin/pickup-windows/{id}/decrement-reserved: Operator release
- POST /admin/pickup-windows/reap: Release abandoned reservations now
- GET /pickup-points/{id}/windows/available: Public availability

Derived Fields:
---------------
- available = capacity - reserved
- is_full = reserved >= capacity

``reserved`` is read-only here. It changes only through checkout,
cancellation and the increment/decrement endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PickupWindowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    point_id: int
    start_time: datetime
    end_time: datetime
    capacity: int
    reserved: int
    available: int
    is_full: bool


class PickupWindowCreate(BaseModel):
    """
    Example:
        {
            "point_id": 1,
            "start_time": "2026-03-01T10:00:00Z",
            "end_time": "2026-03-01T11:00:00Z",
            "capacity": 24
        }
    """
    point_id: int
    start_time: datetime
    end_time: datetime
    capacity: Optional[int] = None


class PickupWindowUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    capacity: Optional[int] = None


class PickupWindowListResponse(BaseModel):
    items: List[PickupWindowOut]
    total: int
    page: int
    limit: int
    pages: int


class ReapRequest(BaseModel):
    max_age_seconds: Optional[int] = Field(default=None, ge=0)


class ReapResponse(BaseModel):
    released: int
