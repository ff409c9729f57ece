# backend/teachtape/schemas/webhooks.py
from typing import Optional

from .base import StandardizedModel


class WebhookAckResponse(StandardizedModel):
    received: bool = True
    duplicate: bool = False
    status: Optional[str] = None
