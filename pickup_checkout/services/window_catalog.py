"""
Window Catalog Service
======================

Manages pickup window definitions for each pickup point and answers the
availability queries the storefront shows before checkout.

Key Functions:
--------------
- create_window: Add a window, rejecting overlaps with the point's others
- update_window: Move a window or change its capacity
- delete_window: Remove a window nobody ordered against
- get_window / list_windows: Single and paginated reads (cache-first)
- list_available: Availability per window for one point (cache-first)
- find_covering_window: Resolve a pickup time to its window

Overlap Rule:
-------------
Two windows of the same point overlap iff

    new_start < existing_end AND existing_start < new_end

so back-to-back windows (10:00-11:00, 11:00-12:00) are allowed.

Capacity Guard:
---------------
``reserved`` belongs to the capacity ledger and is never patched here. A
capacity change is applied with a conditional UPDATE
(``WHERE reserved <= :new_capacity``) so a concurrent reservation cannot
push ``reserved`` past the new capacity between a check and the write.

Known Limitation:
-----------------
The overlap check and the delete guard (orders referencing the window) are
check-then-act. Two operators creating overlapping windows at the same
instant can both succeed. These are admin-only paths with low contention.

Caching:
--------
Reads go through the cache layer with WINDOW_CACHE_TTL_SECONDS. Every write
here commits first, then invalidates the window key and the point's lists.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..cache import (
    CacheLayer,
    available_windows_key,
    get_cache,
    window_key,
    window_list_key,
)
from ..clock import as_utc_naive, utcnow
from ..config import DEFAULT_WINDOW_CAPACITY, WINDOW_CACHE_TTL_SECONDS
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Order, PickupPoint, PickupWindow, ReservationHold


logger = logging.getLogger(__name__)


MAX_PAGE_SIZE = 100


def window_to_dict(window: PickupWindow) -> Dict[str, Any]:
    """Serialize a window with its derived availability fields."""
    return {
        "id": window.id,
        "point_id": window.point_id,
        "start_time": window.start_time,
        "end_time": window.end_time,
        "capacity": window.capacity,
        "reserved": window.reserved,
        "available": window.capacity - window.reserved,
        "is_full": window.reserved >= window.capacity,
    }


def _load_window(db: Session, window_id: int) -> PickupWindow:
    window = db.get(PickupWindow, window_id)
    if window is None:
        raise NotFoundError(f"Pickup window {window_id} not found")
    return window


def _validate_range(start_time: datetime, end_time: datetime) -> None:
    if start_time >= end_time:
        raise ValidationError("start_time must be before end_time")


def _validate_capacity(capacity: Any) -> None:
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
        raise ValidationError("capacity must be a positive integer")


def _find_overlap(
    db: Session,
    point_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_id: Optional[int] = None,
) -> Optional[PickupWindow]:
    query = db.query(PickupWindow).filter(
        PickupWindow.point_id == point_id,
        PickupWindow.start_time < end_time,
        start_time < PickupWindow.end_time,
    )
    if exclude_id is not None:
        query = query.filter(PickupWindow.id != exclude_id)
    return query.first()


# =============================================================================
# Writes
# =============================================================================

def create_window(
    db: Session,
    point_id: int,
    start_time: datetime,
    end_time: datetime,
    capacity: Optional[int] = None,
    cache: Optional[CacheLayer] = None,
) -> PickupWindow:
    """
    Create a window for a pickup point.

    Raises:
        ValidationError: start_time >= end_time or capacity < 1
        NotFoundError: point does not exist
        ConflictError: overlaps another window of the point
    """
    cache = cache or get_cache()
    start_time = as_utc_naive(start_time)
    end_time = as_utc_naive(end_time)
    if capacity is None:
        capacity = DEFAULT_WINDOW_CAPACITY

    _validate_range(start_time, end_time)
    _validate_capacity(capacity)

    if db.get(PickupPoint, point_id) is None:
        raise NotFoundError(f"Pickup point {point_id} not found")

    clash = _find_overlap(db, point_id, start_time, end_time)
    if clash is not None:
        raise ConflictError(
            f"Window overlaps existing window {clash.id} "
            f"({clash.start_time.isoformat()} - {clash.end_time.isoformat()})"
        )

    window = PickupWindow(
        point_id=point_id,
        start_time=start_time,
        end_time=end_time,
        capacity=capacity,
        reserved=0,
    )
    db.add(window)
    db.commit()
    db.refresh(window)

    logger.info(
        "Created pickup window %d for point %d (%s - %s, capacity %d)",
        window.id, point_id, start_time, end_time, capacity,
    )
    cache.invalidate_point(point_id)
    return window


def update_window(
    db: Session,
    window_id: int,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    capacity: Optional[int] = None,
    cache: Optional[CacheLayer] = None,
) -> PickupWindow:
    """
    Change a window's times and/or capacity.

    Raises:
        NotFoundError: no such window
        ValidationError: effective start >= end, capacity < 1, or the new
            capacity is below the current reservations
        ConflictError: the new times overlap another window of the point
    """
    cache = cache or get_cache()
    window = _load_window(db, window_id)
    point_id = window.point_id

    new_start = as_utc_naive(start_time) if start_time is not None else window.start_time
    new_end = as_utc_naive(end_time) if end_time is not None else window.end_time
    _validate_range(new_start, new_end)

    values: Dict[str, Any] = {"updated_at": utcnow()}

    if new_start != window.start_time or new_end != window.end_time:
        clash = _find_overlap(db, point_id, new_start, new_end, exclude_id=window_id)
        if clash is not None:
            raise ConflictError(f"Window overlaps existing window {clash.id}")
        values["start_time"] = new_start
        values["end_time"] = new_end

    stmt = update(PickupWindow).where(PickupWindow.id == window_id)
    if capacity is not None:
        _validate_capacity(capacity)
        stmt = stmt.where(PickupWindow.reserved <= capacity)
        values["capacity"] = capacity

    result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if result.rowcount != 1:
        db.rollback()
        raise ValidationError(
            f"capacity {capacity} is below the number of reservations on window {window_id}"
        )
    db.commit()
    db.refresh(window)

    logger.info("Updated pickup window %d", window_id)
    cache.invalidate_window(window_id, point_id)
    return window


def delete_window(db: Session, window_id: int, cache: Optional[CacheLayer] = None) -> None:
    """
    Delete a window no order references.

    Raises:
        NotFoundError: no such window
        ConflictError: orders or live reservations reference the window
    """
    cache = cache or get_cache()
    window = _load_window(db, window_id)
    point_id = window.point_id

    order_count = db.execute(
        select(func.count(Order.id)).where(Order.window_id == window_id)
    ).scalar_one()
    if order_count:
        raise ConflictError(f"Pickup window {window_id} is referenced by {order_count} order(s)")

    open_holds = db.execute(
        select(func.count(ReservationHold.id)).where(
            ReservationHold.window_id == window_id,
            ReservationHold.released_at.is_(None),
        )
    ).scalar_one()
    if open_holds:
        raise ConflictError(f"Pickup window {window_id} has {open_holds} active reservation(s)")

    db.query(ReservationHold).filter(ReservationHold.window_id == window_id).delete(
        synchronize_session=False
    )
    db.delete(window)
    db.commit()

    logger.info("Deleted pickup window %d", window_id)
    cache.invalidate_window(window_id, point_id)


# =============================================================================
# Reads
# =============================================================================

def get_window(db: Session, window_id: int, cache: Optional[CacheLayer] = None) -> Dict[str, Any]:
    cache = cache or get_cache()
    key = window_key(window_id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    data = window_to_dict(_load_window(db, window_id))
    cache.set(key, data, WINDOW_CACHE_TTL_SECONDS)
    return data


def list_windows(
    db: Session,
    point_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
    cache: Optional[CacheLayer] = None,
) -> Dict[str, Any]:
    """
    Paginated window listing for operators.

    Returns:
        {"items": [...], "total": n, "page": p, "limit": l, "pages": k}
    """
    cache = cache or get_cache()
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    start = as_utc_naive(start)
    end = as_utc_naive(end)
    key = window_list_key(page, limit, point_id, start, end)
    cached = cache.get(key)
    if cached is not None:
        return cached

    query = db.query(PickupWindow)
    if point_id is not None:
        query = query.filter(PickupWindow.point_id == point_id)
    if start is not None:
        query = query.filter(PickupWindow.start_time >= start)
    if end is not None:
        query = query.filter(PickupWindow.start_time <= end)

    total = query.count()
    rows = (
        query.order_by(PickupWindow.start_time.asc(), PickupWindow.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    data = {
        "items": [window_to_dict(w) for w in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }
    cache.set(key, data, WINDOW_CACHE_TTL_SECONDS)
    return data


def list_available(
    db: Session,
    point_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    cache: Optional[CacheLayer] = None,
) -> List[Dict[str, Any]]:
    """
    Windows of a point whose start lies in [start, end], ordered by start,
    each with ``available`` and ``is_full``.
    """
    cache = cache or get_cache()
    start = as_utc_naive(start)
    end = as_utc_naive(end)
    key = available_windows_key(point_id, start, end)
    cached = cache.get(key)
    if cached is not None:
        return cached

    query = db.query(PickupWindow).filter(PickupWindow.point_id == point_id)
    if start is not None:
        query = query.filter(PickupWindow.start_time >= start)
    if end is not None:
        query = query.filter(PickupWindow.start_time <= end)

    data = [window_to_dict(w) for w in query.order_by(PickupWindow.start_time.asc()).all()]
    cache.set(key, data, WINDOW_CACHE_TTL_SECONDS)
    return data


def find_covering_window(db: Session, point_id: int, at: datetime) -> PickupWindow:
    """
    Return the window of ``point_id`` with start_time <= at < end_time.

    Raises:
        NotFoundError: no window covers the requested time
    """
    at = as_utc_naive(at)
    window = (
        db.query(PickupWindow)
        .filter(
            PickupWindow.point_id == point_id,
            PickupWindow.start_time <= at,
            PickupWindow.end_time > at,
        )
        .first()
    )
    if window is None:
        raise NotFoundError(f"No pickup window at point {point_id} covers {at.isoformat()}")
    return window
