# backend/teachtape/routes/v1/webhooks_zoom.py
"""
Zoom webhook endpoint (v1).

Mounted under /api/v1/webhooks/zoom. Answers the endpoint URL validation
handshake and verifies ``x-zm-signature`` on every other event.
"""

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from ...api.dependencies.services import get_webhook_ingestion_service
from ...services.webhook_ingestion_service import WebhookIngestionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("")
async def handle_zoom_webhook(
    request: Request,
    service: WebhookIngestionService = Depends(get_webhook_ingestion_service),
) -> Dict[str, Any]:
    raw_body = await request.body()
    return await asyncio.to_thread(service.ingest_zoom, raw_body, dict(request.headers))
