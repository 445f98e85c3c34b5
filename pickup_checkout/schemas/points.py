"""
Pickup Point Schemas
====================

Request and response models for pickup point management.

Endpoint Coverage:
------------------
- POST /admin/pickup-points: Create a point
- GET /admin/pickup-points: List points
- GET /admin/pickup-points/{id}: Point details
- PATCH /admin/pickup-points/{id}: Partial update

Working Schedule:
-----------------
A weekly schedule keyed by lower-case weekday abbreviation. Each day is
either ``{"from": "HH:MM", "to": "HH:MM"}`` or null when the point is closed:

    {"mon": {"from": "09:00", "to": "18:00"}, "sun": null}
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class PickupPointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    working_schedule: Optional[Dict[str, Any]] = None
    url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PickupPointCreate(BaseModel):
    """
    Example:
        {
            "name": "Central Store",
            "address": "1 Main St",
            "latitude": 55.75,
            "longitude": 37.61,
            "working_schedule": {"mon": {"from": "09:00", "to": "18:00"}}
        }
    """
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    working_schedule: Optional[Dict[str, Any]] = None
    url: Optional[str] = None
    is_active: bool = True


class PickupPointUpdate(BaseModel):
    """All fields optional; only provided fields are changed."""
    name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    working_schedule: Optional[Dict[str, Any]] = None
    url: Optional[str] = None
    is_active: Optional[bool] = None
