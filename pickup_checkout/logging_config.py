"""
Logging configuration for the pickup checkout service.

Usage:
    from pickup_checkout.logging_config import setup_logging
    setup_logging()  # Call once at application startup

Environment variables:
    LOG_LEVEL: Set to DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    LIBRARY_LOG_LEVELS: Overrides for library loggers, e.g.
        "sqlalchemy.engine=INFO,uvicorn.access=INFO" to see SQL and requests

At DEBUG the library loggers follow the service level unless
LIBRARY_LOG_LEVELS is set. The capacity ledger and the
checkout orchestrator log reconciliation problems (orphaned holds, coupon
usage not recorded) at ERROR; those loggers are never set above ERROR so the
alerts survive a quiet LOG_LEVEL.
"""
import logging
import os
import sys

from .config import VALID_LOG_LEVELS, get_library_log_levels


ALERT_LOGGERS = (
    "pickup_checkout.services.capacity_ledger",
    "pickup_checkout.services.checkout",
)


def setup_logging(level: str = None) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               If not provided, reads from LOG_LEVEL env var, defaults to INFO.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()
    if level not in VALID_LOG_LEVELS:
        level = "INFO"

    numeric_level = getattr(logging, level)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

    logging.getLogger("pickup_checkout").setLevel(numeric_level)

    alert_level = min(numeric_level, logging.ERROR)
    for name in ALERT_LOGGERS:
        logging.getLogger(name).setLevel(alert_level)

    overrides = get_library_log_levels()
    if level == "DEBUG" and "LIBRARY_LOG_LEVELS" not in os.environ:
        overrides = {name: "DEBUG" for name in overrides}
    for name, lib_level in overrides.items():
        logging.getLogger(name).setLevel(getattr(logging, lib_level))

    logger = logging.getLogger(__name__)
    logger.debug("Logging configured at %s level (libraries: %s)", level, overrides)
