"""
Pickup point management.

Points are created and edited by operators and never deleted; deactivating a
point (``is_active = False``) stops new pickup checkouts against it while its
existing orders keep their reference.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..cache import CacheLayer, get_cache
from ..errors import NotFoundError, ValidationError
from ..models import PickupPoint


logger = logging.getLogger(__name__)


WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

EDITABLE_FIELDS = ("name", "address", "latitude", "longitude", "working_schedule", "url", "is_active")


def validate_schedule(schedule: Optional[Dict[str, Any]]) -> None:
    """
    Check a weekly schedule of the form
    {"mon": {"from": "09:00", "to": "18:00"}, "sun": None, ...}.
    """
    if schedule is None:
        return
    if not isinstance(schedule, dict):
        raise ValidationError("working_schedule must be an object keyed by weekday")

    for day, hours in schedule.items():
        if day not in WEEKDAYS:
            raise ValidationError(f"Unknown weekday '{day}' in working_schedule")
        if hours is None:
            continue  # closed
        if not isinstance(hours, dict):
            raise ValidationError(f"working_schedule.{day} must be an object or null")
        opens, closes = hours.get("from"), hours.get("to")
        if not (isinstance(opens, str) and _HHMM.match(opens)):
            raise ValidationError(f"working_schedule.{day}.from must be HH:MM")
        if not (isinstance(closes, str) and _HHMM.match(closes)):
            raise ValidationError(f"working_schedule.{day}.to must be HH:MM")
        if opens >= closes:
            raise ValidationError(f"working_schedule.{day} closes before it opens")


def _validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> None:
    if latitude is not None and not -90 <= latitude <= 90:
        raise ValidationError("latitude must be between -90 and 90")
    if longitude is not None and not -180 <= longitude <= 180:
        raise ValidationError("longitude must be between -180 and 180")


def create_point(
    db: Session,
    name: str,
    address: str,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    working_schedule: Optional[Dict[str, Any]] = None,
    url: Optional[str] = None,
    is_active: bool = True,
) -> PickupPoint:
    if not name or not name.strip():
        raise ValidationError("name is required")
    if not address or not address.strip():
        raise ValidationError("address is required")
    _validate_coordinates(latitude, longitude)
    validate_schedule(working_schedule)

    point = PickupPoint(
        name=name.strip(),
        address=address.strip(),
        latitude=latitude,
        longitude=longitude,
        working_schedule=working_schedule,
        url=url,
        is_active=is_active,
    )
    db.add(point)
    db.commit()
    db.refresh(point)
    logger.info("Created pickup point %d (%s)", point.id, point.name)
    return point


def get_point(db: Session, point_id: int) -> PickupPoint:
    point = db.get(PickupPoint, point_id)
    if point is None:
        raise NotFoundError(f"Pickup point {point_id} not found")
    return point


def list_points(db: Session, active_only: bool = False) -> List[PickupPoint]:
    query = db.query(PickupPoint)
    if active_only:
        query = query.filter(PickupPoint.is_active.is_(True))
    return query.order_by(PickupPoint.id.asc()).all()


def update_point(
    db: Session,
    point_id: int,
    changes: Dict[str, Any],
    cache: Optional[CacheLayer] = None,
) -> PickupPoint:
    """Apply a partial update. Unknown keys are rejected."""
    cache = cache or get_cache()
    point = get_point(db, point_id)

    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    for field in ("name", "address"):
        if field in changes and (changes[field] is None or not str(changes[field]).strip()):
            raise ValidationError(f"{field} cannot be empty")
    _validate_coordinates(
        changes.get("latitude", point.latitude),
        changes.get("longitude", point.longitude),
    )
    if "working_schedule" in changes:
        validate_schedule(changes["working_schedule"])

    for field, value in changes.items():
        if field in ("name", "address"):
            value = value.strip()
        setattr(point, field, value)

    db.commit()
    db.refresh(point)
    logger.info("Updated pickup point %d (%s)", point_id, ", ".join(sorted(changes)) or "no changes")
    cache.invalidate_point(point_id)
    return point
