# lawnly/main.py
"""
FastAPI application for the Lawnly booking and payout core.

The HTTP layer is thin: routers translate requests into explicit
principal-scoped service calls and return the operation outcome. Side
effects are delivered by the Celery outbox worker, never inline.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .core.config import is_running_tests, settings
from .errors import register_error_handlers
from .routes.v1 import admin as admin_v1, bookings as bookings_v1, disputes as disputes_v1
from .routes.v1 import health as health_v1, prometheus as prometheus_v1

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_TITLE = "Lawnly Booking Core"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("Lawnly API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")
    if not settings.stripe_secret_key and not settings.is_testing:
        logger.warning("STRIPE_SECRET_KEY is not set; charges and payouts will fail")
    yield
    logger.info("Lawnly API shutting down...")


app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
register_error_handlers(app)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(disputes_v1.router, prefix="/disputes")
api_v1.include_router(admin_v1.router, prefix="/admin")

app.include_router(api_v1)
app.include_router(health_v1.router)
app.include_router(prometheus_v1.router)
