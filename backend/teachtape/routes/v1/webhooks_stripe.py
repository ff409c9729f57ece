# backend/teachtape/routes/v1/webhooks_stripe.py
"""
Stripe webhook endpoint (v1).

Mounted under /api/v1/webhooks/stripe. No caller authentication: the
request is authenticated by its Stripe-Signature header.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request

from ...api.dependencies.services import get_webhook_ingestion_service
from ...schemas.webhooks import WebhookAckResponse
from ...services.webhook_ingestion_service import WebhookIngestionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("", response_model=WebhookAckResponse)
async def handle_stripe_webhook(
    request: Request,
    service: WebhookIngestionService = Depends(get_webhook_ingestion_service),
) -> WebhookAckResponse:
    payload = await request.body()
    # Ingestion does blocking DB and processor I/O
    ack = await asyncio.to_thread(
        service.ingest_stripe, payload, request.headers.get("stripe-signature")
    )
    return WebhookAckResponse(received=ack.received, duplicate=ack.duplicate, status=ack.status)
