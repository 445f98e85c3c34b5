"""
Capacity Ledger for Pickup Windows
==================================

The only module allowed to change ``PickupWindow.reserved``. Every mutation
is a single conditional UPDATE so the guard is evaluated by the database at
write time:

    UPDATE pickup_windows SET reserved = reserved + 1
     WHERE id = :id AND reserved < capacity

A zero rowcount means the guard failed (window full, nothing to release) or
the row does not exist; the two cases are told apart with a follow-up read
only after the write has already been rejected. There is no read-then-write
path anywhere in this module, which is what keeps ``reserved`` within
``[0, capacity]`` under any number of concurrent checkouts.

Reservation Holds:
------------------
Each successful ``try_reserve`` from a checkout also inserts a
``ReservationHold`` row in the same transaction. A hold is released at most
once (``released_at`` is flipped by another conditional UPDATE), which makes
every release path idempotent:

- saga compensation when a checkout fails after reserving
- order cancellation
- the reaper, for holds never claimed by an order

Operator decrements use ``release(untracked_only=True)``, whose guard counts
the open holds of the window so units behind them are never handed back:

    UPDATE pickup_windows SET reserved = reserved - 1
     WHERE id = :id AND reserved > (SELECT count(*) FROM reservation_holds
                                     WHERE window_id = :id AND released_at IS NULL)

``claim_hold`` attaches a hold to the order that consumed it and runs inside
the order-commit transaction. If the reaper released the hold first, the
claim fails and the order is not written.

Cache:
------
After each committed mutation the window entry and every availability list
of its point are invalidated through the cache layer.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache import CacheLayer, get_cache
from ..clock import utcnow
from ..config import RESERVATION_HOLD_TTL_SECONDS
from ..errors import NotFoundError, ReservationExpiredError, UnderflowError, WindowFullError
from ..models import Order, OrderStatus, PickupWindow, ReservationHold


logger = logging.getLogger(__name__)


def _window_point_id(db: Session, window_id: int) -> Optional[int]:
    return db.execute(
        select(PickupWindow.point_id).where(PickupWindow.id == window_id)
    ).scalar_one_or_none()


def _increment(db: Session, window_id: int) -> int:
    result = db.execute(
        update(PickupWindow)
        .where(PickupWindow.id == window_id, PickupWindow.reserved < PickupWindow.capacity)
        .values(reserved=PickupWindow.reserved + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _open_hold_count(window_id: int):
    return (
        select(func.count(ReservationHold.id))
        .where(ReservationHold.window_id == window_id, ReservationHold.released_at.is_(None))
        .scalar_subquery()
    )


def _decrement(db: Session, window_id: int, untracked_only: bool = False) -> int:
    # untracked_only keeps every unit that an open hold still accounts for
    floor = _open_hold_count(window_id) if untracked_only else 0
    result = db.execute(
        update(PickupWindow)
        .where(PickupWindow.id == window_id, PickupWindow.reserved > floor)
        .values(reserved=PickupWindow.reserved - 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


# =============================================================================
# Reserve / Release
# =============================================================================

def try_reserve(
    db: Session,
    window_id: int,
    token: Optional[str] = None,
    track_hold: bool = True,
    cache: Optional[CacheLayer] = None,
) -> Optional[ReservationHold]:
    """
    Take one unit of capacity from a window.

    Args:
        db: Database session (committed on success, rolled back on failure)
        window_id: Window to reserve
        token: Client idempotency key recorded on the hold
        track_hold: False for operator adjustments, which never expire

    Returns:
        The new ReservationHold, or None when track_hold is False

    Raises:
        WindowFullError: reserved == capacity at write time
        NotFoundError: no such window
    """
    cache = cache or get_cache()
    try:
        if _increment(db, window_id) != 1:
            db.rollback()
            if _window_point_id(db, window_id) is None:
                raise NotFoundError(f"Pickup window {window_id} not found")
            logger.info("Window %d is full, reservation rejected", window_id)
            raise WindowFullError(window_id)

        point_id = _window_point_id(db, window_id)
        hold = None
        if track_hold:
            hold = ReservationHold(window_id=window_id, token=token)
            db.add(hold)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        "Reserved 1 slot on window %d (hold=%s)",
        window_id, hold.id if hold is not None else "untracked",
    )
    cache.invalidate_window(window_id, point_id)
    return hold


def release(
    db: Session,
    window_id: int,
    commit: bool = True,
    cache: Optional[CacheLayer] = None,
    untracked_only: bool = False,
) -> None:
    """
    Give one unit of capacity back to a window without touching any hold.

    Args:
        commit: False when the caller owns the transaction
        untracked_only: Only give back a unit no open hold accounts for.
            Operator decrements and cancellations of orders without a hold
            use it, so units behind holds are freed only through release_hold.

    Raises:
        UnderflowError: reserved is already 0 (with untracked_only: every
            reserved unit belongs to an open hold)
        NotFoundError: no such window
    """
    cache = cache or get_cache()
    try:
        if _decrement(db, window_id, untracked_only=untracked_only) != 1:
            db.rollback()
            if _window_point_id(db, window_id) is None:
                raise NotFoundError(f"Pickup window {window_id} not found")
            if untracked_only:
                logger.warning("Release on window %d with no untracked reservations", window_id)
                raise UnderflowError(f"Pickup window {window_id} has no releasable reservations")
            logger.error("Release on window %d with nothing reserved", window_id)
            raise UnderflowError(f"Pickup window {window_id} has no reservations")
        point_id = _window_point_id(db, window_id)
        if commit:
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Released 1 slot on window %d", window_id)
    if commit:
        cache.invalidate_window(window_id, point_id)


def release_hold(
    db: Session,
    hold_id: int,
    only_unclaimed: bool = False,
    commit: bool = True,
    cache: Optional[CacheLayer] = None,
) -> bool:
    """
    Release the capacity behind a hold, at most once.

    Args:
        only_unclaimed: Skip holds already attached to an order (reaper mode)
        commit: False when the caller owns the transaction (cancellation);
            the caller then commits and invalidates the cache itself

    A hold whose unit is already gone from the window (reserved is 0) is
    still marked released and logged at ERROR, so the reaper and order
    cancellation never stall on it.

    Returns:
        True if this call released the hold, False if it was already
        released (or claimed, with only_unclaimed).
    """
    cache = cache or get_cache()

    stmt = update(ReservationHold).where(
        ReservationHold.id == hold_id,
        ReservationHold.released_at.is_(None),
    )
    if only_unclaimed:
        stmt = stmt.where(ReservationHold.order_id.is_(None))

    try:
        flipped = db.execute(
            stmt.values(released_at=utcnow()).execution_options(synchronize_session=False)
        ).rowcount
        if flipped != 1:
            if commit:
                db.rollback()
            return False

        window_id = db.execute(
            select(ReservationHold.window_id).where(ReservationHold.id == hold_id)
        ).scalar_one()
        if _decrement(db, window_id) != 1:
            logger.error(
                "Hold %d points at window %d with nothing reserved; marking it released",
                hold_id, window_id,
            )

        point_id = _window_point_id(db, window_id)
        if commit:
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Released hold %d on window %d", hold_id, window_id)
    if commit:
        cache.invalidate_window(window_id, point_id)
    return True


def claim_hold(db: Session, hold_id: int, order_id: int) -> None:
    """
    Attach a hold to the order that consumed it. Does not commit.

    Raises:
        ReservationExpiredError: the hold was released (reaped) before the
            order could claim it
    """
    claimed = db.execute(
        update(ReservationHold)
        .where(
            ReservationHold.id == hold_id,
            ReservationHold.released_at.is_(None),
            ReservationHold.order_id.is_(None),
        )
        .values(order_id=order_id)
        .execution_options(synchronize_session=False)
    ).rowcount
    if claimed != 1:
        raise ReservationExpiredError(f"Reservation hold {hold_id} is no longer active")


def find_open_hold_for_order(db: Session, order_id: int) -> Optional[int]:
    return db.execute(
        select(ReservationHold.id).where(
            ReservationHold.order_id == order_id,
            ReservationHold.released_at.is_(None),
        )
    ).scalars().first()


def order_has_hold(db: Session, order_id: int) -> bool:
    return db.execute(
        select(ReservationHold.id).where(ReservationHold.order_id == order_id)
    ).first() is not None


# =============================================================================
# Reaping
# =============================================================================

def reap_stale_holds(
    db: Session,
    max_age_seconds: Optional[int] = None,
    now=None,
    cache: Optional[CacheLayer] = None,
) -> int:
    """
    Release holds that will never be consumed.

    Two kinds qualify:
    1. Unclaimed holds older than max_age_seconds (client went away between
       reserving and committing).
    2. Holds still open on an order that has been cancelled.

    Returns:
        Number of holds released by this pass.
    """
    if max_age_seconds is None:
        max_age_seconds = RESERVATION_HOLD_TTL_SECONDS
    now = now or utcnow()
    cutoff = now - timedelta(seconds=max_age_seconds)

    stale_ids: List[int] = list(db.execute(
        select(ReservationHold.id).where(
            ReservationHold.released_at.is_(None),
            ReservationHold.order_id.is_(None),
            ReservationHold.created_at < cutoff,
        )
    ).scalars())

    cancelled_ids: List[int] = list(db.execute(
        select(ReservationHold.id)
        .join(Order, Order.id == ReservationHold.order_id)
        .where(
            ReservationHold.released_at.is_(None),
            Order.status == OrderStatus.CANCELLED.value,
        )
    ).scalars())
    db.rollback()  # end the read snapshot before writing

    released = 0
    for hold_id in stale_ids:
        # A checkout may claim the hold between the select and this update
        if release_hold(db, hold_id, only_unclaimed=True, cache=cache):
            released += 1
    for hold_id in cancelled_ids:
        if release_hold(db, hold_id, cache=cache):
            released += 1

    if released:
        logger.info("Reaper released %d reservation holds", released)
    return released
