"""
Configuration Module for Pickup Checkout
========================================

This module centralizes configuration settings, environment variables, and
constants used by the checkout core. Values are parsed once at import time so
misconfiguration surfaces at startup rather than in the middle of a checkout.

Configuration Categories:
-------------------------
- **Database**: Connection URL for the relational store.

- **Caching**: TTLs and size bounds for the in-process cache that fronts
  window availability and coupon reads.

- **Pickup Windows**: Default capacity for new windows and the lifetime of an
  unclaimed reservation hold before the reaper releases it.

- **Checkout**: Commit retry budget and the coupon cancellation policy.

- **Rate Limiting / CORS**: HTTP surface protection.

- **Logging**: Levels for the chatty library loggers (SQL echo, access log).

Environment Variables:
----------------------
- DATABASE_URL: SQLAlchemy URL (default: local SQLite file)
- WINDOW_CACHE_TTL_SECONDS: Availability cache TTL (default: 3600)
- COUPON_CACHE_TTL_SECONDS: Coupon cache TTL (default: 3600)
- CACHE_MAX_ENTRIES: Max cached keys before LRU eviction (default: 5000)
- DEFAULT_WINDOW_CAPACITY: Capacity used when none is given (default: 24)
- COMMIT_MAX_ATTEMPTS: Order commit attempts on storage errors (default: 3)
- RESERVATION_HOLD_TTL_SECONDS: Age after which unclaimed holds are reaped (default: 900)
- RESERVATION_REAPER_INTERVAL_SECONDS: Reaper period, 0 disables it (default: 60)
- COUPON_RELEASE_ON_CANCEL: Give coupon usage back on cancellation (default: "false")
- DEFAULT_PHONE_REGION: Region for phone numbers without country code (default: "US")
- RATE_LIMIT_CHECKOUT: Checkout endpoint rate limit (default: "20 per minute")
- RATE_LIMIT_ENABLED: Enable/disable rate limiting (default: "true")
- CORS_ORIGINS: Comma-separated allowed origins (default: "*")
- LIBRARY_LOG_LEVELS: Comma-separated logger=LEVEL overrides for library
  loggers (default: "sqlalchemy.engine=WARNING,uvicorn.access=WARNING,httpx=WARNING")

Usage:
------
    from pickup_checkout.config import (
        WINDOW_CACHE_TTL_SECONDS,
        COMMIT_MAX_ATTEMPTS,
    )
"""

import os
from typing import Dict, List


# =============================================================================
# Database Configuration
# =============================================================================

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./pickup_checkout.db")


# =============================================================================
# Cache Configuration
# =============================================================================
# The cache is an optimization only. Every read path falls back to the
# database and every write path invalidates after the database commit.

WINDOW_CACHE_TTL_SECONDS: int = int(os.getenv("WINDOW_CACHE_TTL_SECONDS", "3600"))  # 1 hour
COUPON_CACHE_TTL_SECONDS: int = int(os.getenv("COUPON_CACHE_TTL_SECONDS", "3600"))
CACHE_MAX_ENTRIES: int = int(os.getenv("CACHE_MAX_ENTRIES", "5000"))


# =============================================================================
# Pickup Window Configuration
# =============================================================================

DEFAULT_WINDOW_CAPACITY: int = int(os.getenv("DEFAULT_WINDOW_CAPACITY", "24"))

# Holds that were never attached to an order are released after this many
# seconds (client disconnected between reservation and commit).
RESERVATION_HOLD_TTL_SECONDS: int = int(os.getenv("RESERVATION_HOLD_TTL_SECONDS", "900"))
RESERVATION_REAPER_INTERVAL_SECONDS: int = int(
    os.getenv("RESERVATION_REAPER_INTERVAL_SECONDS", "60")
)


# =============================================================================
# Checkout Configuration
# =============================================================================

# Commit attempts for the order row. Only the commit is retried, and only
# before any coupon usage has been recorded.
COMMIT_MAX_ATTEMPTS: int = int(os.getenv("COMMIT_MAX_ATTEMPTS", "3"))

# Coupons are spent once an order finalizes. Set to "true" to hand the usage
# back when the order is cancelled.
COUPON_RELEASE_ON_CANCEL: bool = os.getenv("COUPON_RELEASE_ON_CANCEL", "false").lower() == "true"

# Region assumed for buyer phone numbers written without a country code
DEFAULT_PHONE_REGION: str = os.getenv("DEFAULT_PHONE_REGION", "US")


# =============================================================================
# Rate Limiting Configuration
# =============================================================================

RATE_LIMIT_CHECKOUT: str = os.getenv("RATE_LIMIT_CHECKOUT", "20 per minute")
RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def get_rate_limit_checkout() -> str:
    """
    Return the current checkout rate limit.

    Lets tests override the limit without touching the module constant.
    """
    return RATE_LIMIT_CHECKOUT


# =============================================================================
# CORS Configuration
# =============================================================================

_cors_origins_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in _cors_origins_env.split(",")
    if origin.strip()
] or ["*"]


# =============================================================================
# Logging Configuration
# =============================================================================

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_LIBRARY_LOG_LEVELS = "sqlalchemy.engine=WARNING,uvicorn.access=WARNING,httpx=WARNING"


def get_library_log_levels() -> Dict[str, str]:
    """
    Parse LIBRARY_LOG_LEVELS into {logger_name: LEVEL}.

    Read at call time so setup_logging picks up the current environment.
    Entries without "=" or with an unknown level are skipped.
    """
    raw = os.getenv("LIBRARY_LOG_LEVELS", DEFAULT_LIBRARY_LOG_LEVELS)
    levels: Dict[str, str] = {}
    for entry in raw.split(","):
        name, sep, level = entry.partition("=")
        level = level.strip().upper()
        if not sep or not name.strip() or level not in VALID_LOG_LEVELS:
            continue
        levels[name.strip()] = level
    return levels

