"""
FastAPI application for the pickup checkout service.

Run with:
    uvicorn pickup_checkout.main:app --reload
"""

# Load environment variables FIRST, before any module imports that need them
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import db as db_module
from .config import CORS_ORIGINS, RESERVATION_HOLD_TTL_SECONDS, RESERVATION_REAPER_INTERVAL_SECONDS
from .errors import CheckoutError
from .logging_config import setup_logging
from .routes import (
    admin_coupons_router,
    admin_points_router,
    admin_windows_router,
    checkout_router,
    limiter,
    orders_router,
    public_coupons_router,
    public_points_router,
)
from .services.reaper import ReservationReaper

# Configure logging at module load time
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_module.init_db()
    reaper = ReservationReaper(
        lambda: db_module.SessionLocal(),
        interval_seconds=RESERVATION_REAPER_INTERVAL_SECONDS,
        max_age_seconds=RESERVATION_HOLD_TTL_SECONDS,
    )
    app.state.reaper = reaper
    await reaper.start()
    try:
        yield
    finally:
        await reaper.stop()


app = FastAPI(
    title="Pickup Checkout API",
    description="Pickup window reservation and order finalization",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers with API version prefix
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(checkout_router)
api_v1_router.include_router(orders_router)
api_v1_router.include_router(public_points_router)
api_v1_router.include_router(public_coupons_router)
api_v1_router.include_router(admin_points_router)
api_v1_router.include_router(admin_windows_router)
api_v1_router.include_router(admin_coupons_router)
app.include_router(api_v1_router)


@app.get("/health")
def health_check():
    return {"status": "healthy"}
