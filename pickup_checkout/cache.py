"""
Cache Invalidation Layer for Pickup Checkout
============================================

This module fronts window availability and coupon reads with an in-process
TTL cache and owns the key scheme used to invalidate them.

Architecture Overview:
----------------------
Two pieces:

1. **TTLCache**: the storage backend. A dict guarded by a threading.Lock,
   with a per-entry expiry and LRU eviction once CACHE_MAX_ENTRIES is hit.

2. **CacheLayer**: the facade every service talks to. It is best-effort:
   any exception raised by the backend is logged and swallowed, so a broken
   cache never blocks a reservation or a checkout. A failed ``get`` is a
   miss; a failed ``set`` or invalidation is a no-op.

The cache is an optimization only. Services always write the database
first, commit, and then invalidate the affected keys.

Key Scheme:
-----------
- ``pickup-window:{id}``                                    single window
- ``pickup-window:available:point:{pid}:start:{s}:end:{e}`` availability list
- ``pickup-window:all:page:{p}:limit:{l}:point:{pid}:start:{s}:end:{e}``
                                                            admin listing
- ``coupon:{id}``, ``coupon:code:{CODE}``, ``coupon:active``

Missing range bounds are rendered as ``none`` and an unfiltered point as
``all``. Pattern invalidation uses shell-style globs (``fnmatch``).

Thread Safety:
--------------
All backend operations hold the lock. Values are deep-copied on the way in
and out so callers can never mutate a cached entry in place.

Usage:
------
    from pickup_checkout.cache import get_cache, available_windows_key

    cache = get_cache()
    key = available_windows_key(point_id, start, end)
    rows = cache.get(key)
    if rows is None:
        rows = load_from_db()
        cache.set(key, rows, WINDOW_CACHE_TTL_SECONDS)
"""

import copy
import fnmatch
import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional

from .config import CACHE_MAX_ENTRIES


logger = logging.getLogger(__name__)


WINDOW_PREFIX = "pickup-window"
COUPON_PREFIX = "coupon"


# =============================================================================
# Storage Backend
# =============================================================================

class TTLCache:
    """
    Thread-safe in-memory key/value store with per-entry TTL.

    Structure: {key: {"value": ..., "expires_at": ts, "last_access": ts}}
    """

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES):
        self.max_entries = max_entries
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        now = time.time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry["expires_at"] <= now:
                del self._entries[key]
                return None
            entry["last_access"] = now
            return copy.deepcopy(entry["value"])

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = time.time()
        with self._lock:
            self._entries[key] = {
                "value": copy.deepcopy(value),
                "expires_at": now + ttl_seconds,
                "last_access": now,
            }
            if len(self._entries) > self.max_entries:
                self._evict_locked(now)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._entries[key]
        return len(matched)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_locked(self, now: float) -> None:
        # Expired entries first, then the least recently used 10%
        expired = [k for k, e in self._entries.items() if e["expires_at"] <= now]
        for key in expired:
            del self._entries[key]

        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return

        count = max(overflow, self.max_entries // 10)
        oldest = sorted(self._entries.items(), key=lambda x: x[1]["last_access"])
        for key, _ in oldest[:count]:
            del self._entries[key]

        logger.debug("Evicted %d cache entries (%d expired)", count, len(expired))


# =============================================================================
# Best-effort Facade
# =============================================================================

class CacheLayer:
    """Facade that never lets a backend failure escape to the caller."""

    def __init__(self, backend: Optional[Any] = None):
        self.backend = backend if backend is not None else TTLCache()

    def get(self, key: str) -> Optional[Any]:
        try:
            return self.backend.get(key)
        except Exception:
            logger.warning("Cache get failed for %s", key, exc_info=True)
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self.backend.set(key, value, ttl_seconds)
        except Exception:
            logger.warning("Cache set failed for %s", key, exc_info=True)

    def delete(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception:
            logger.warning("Cache delete failed for %s", key, exc_info=True)

    def invalidate_by_pattern(self, pattern: str) -> int:
        try:
            removed = self.backend.delete_pattern(pattern)
        except Exception:
            logger.warning("Cache invalidation failed for pattern %s", pattern, exc_info=True)
            return 0
        logger.debug("Invalidated %d cache keys matching %s", removed, pattern)
        return removed

    def clear(self) -> None:
        try:
            self.backend.clear()
        except Exception:
            logger.warning("Cache clear failed", exc_info=True)

    # --- Invalidation fan-out -------------------------------------------

    def invalidate_point(self, point_id: int) -> None:
        """Drop every availability and listing entry for one pickup point."""
        self.invalidate_by_pattern(f"{WINDOW_PREFIX}:available:point:{point_id}:*")
        self.invalidate_by_pattern(f"{WINDOW_PREFIX}:all:*:point:{point_id}:*")
        # Unfiltered admin listings include every point
        self.invalidate_by_pattern(f"{WINDOW_PREFIX}:all:*:point:all:*")

    def invalidate_window(self, window_id: int, point_id: Optional[int] = None) -> None:
        self.delete(window_key(window_id))
        if point_id is not None:
            self.invalidate_point(point_id)

    def invalidate_coupon(self, coupon_id: int, code: Optional[str] = None) -> None:
        self.delete(coupon_key(coupon_id))
        if code:
            self.delete(coupon_code_key(code))
        self.delete(active_coupons_key())


# =============================================================================
# Key Builders
# =============================================================================

def _fmt(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else "none"


def window_key(window_id: int) -> str:
    return f"{WINDOW_PREFIX}:{window_id}"


def available_windows_key(
    point_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> str:
    return f"{WINDOW_PREFIX}:available:point:{point_id}:start:{_fmt(start)}:end:{_fmt(end)}"


def window_list_key(
    page: int,
    limit: int,
    point_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> str:
    point = point_id if point_id is not None else "all"
    return (
        f"{WINDOW_PREFIX}:all:page:{page}:limit:{limit}:point:{point}"
        f":start:{_fmt(start)}:end:{_fmt(end)}"
    )


def coupon_key(coupon_id: int) -> str:
    return f"{COUPON_PREFIX}:{coupon_id}"


def coupon_code_key(code: str) -> str:
    return f"{COUPON_PREFIX}:code:{code}"


def active_coupons_key() -> str:
    return f"{COUPON_PREFIX}:active"


# =============================================================================
# Module Singleton
# =============================================================================

_cache: Optional[CacheLayer] = None
_cache_init_lock = threading.Lock()


def get_cache() -> CacheLayer:
    """Return the process-wide cache layer, creating it on first use."""
    global _cache
    if _cache is None:
        with _cache_init_lock:
            if _cache is None:
                _cache = CacheLayer()
    return _cache
