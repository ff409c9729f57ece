# backend/teachtape/main.py
"""
TeachTape booking and payments API.

Routers are mounted under /api/v1; health and metrics endpoints stay at the
root so load balancers and Prometheus can reach them without a prefix.
"""

import logging

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .core.constants import API_VERSION, BRAND_NAME
from .errors import register_error_handlers
from .routes.v1 import (
    bookings as bookings_v1,
    checkout as checkout_v1,
    film_reviews as film_reviews_v1,
    health as health_v1,
    payments as payments_v1,
    pricing as pricing_v1,
    prometheus as prometheus_v1,
    reviews as reviews_v1,
    webhooks_stripe as webhooks_stripe_v1,
    webhooks_zoom as webhooks_zoom_v1,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{BRAND_NAME} API",
        description="Coach marketplace booking lifecycle and payment orchestration",
        version=API_VERSION,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url=None,
    )
    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(checkout_v1.router, prefix="/checkout")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(film_reviews_v1.router, prefix="/film-reviews")
    api_v1.include_router(reviews_v1.router, prefix="/reviews")
    api_v1.include_router(payments_v1.router, prefix="/payments")
    api_v1.include_router(pricing_v1.router, prefix="/pricing")
    api_v1.include_router(webhooks_stripe_v1.router, prefix="/webhooks/stripe")
    api_v1.include_router(webhooks_zoom_v1.router, prefix="/webhooks/zoom")
    api_v1.include_router(health_v1.router)
    app.include_router(api_v1)

    app.include_router(health_v1.router)
    app.include_router(prometheus_v1.router)

    logger.info("%s API initialised (environment=%s)", BRAND_NAME, settings.environment)
    return app


app = create_app()
