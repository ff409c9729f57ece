# backend/teachtape/routes/v1/health.py
"""
Health check endpoints for monitoring and load balancer health checks.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from fastapi import APIRouter, Response

from ...core.config import settings
from ...core.constants import BRAND_NAME
from ...database import get_db_pool_status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(response: Response) -> Dict[str, Any]:
    response.headers["Cache-Control"] = "no-store"
    return {
        "status": "healthy",
        "service": f"{BRAND_NAME.lower()}-api",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "processor": "stripe" if settings.stripe_configured else "fake",
        "database_pool": get_db_pool_status(),
    }
