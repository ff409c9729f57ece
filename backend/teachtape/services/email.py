# backend/teachtape/services/email.py
"""
Email Service for TeachTape

Sends transactional email through the Resend API. Only the outbox
dispatcher calls into this service, so a send failure is retried there and
never reaches the request that caused it.
"""

import logging
import re
from typing import Any, Dict, Optional

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from .base import BaseService
from .template_service import TemplateService

logger = logging.getLogger(__name__)


class EmailService(BaseService):
    """Service for sending emails using Resend API."""

    def __init__(self, db: Session, template_service: Optional[TemplateService] = None):
        super().__init__(db)
        self.template_service = template_service or TemplateService()

        api_key = settings.resend_api_key
        self.enabled = bool(api_key)
        if self.enabled:
            resend.api_key = api_key
        elif settings.environment == "production":
            raise ServiceException("Resend API key not configured")
        else:
            self.logger.warning("Resend API key not configured - emails will be logged only")
        self.from_email = settings.from_email

    @staticmethod
    def _html_to_text(html_content: str) -> str:
        """Convert HTML content to plain text for better deliverability"""
        text = re.sub(r"<[^>]+>", "", html_content)
        text = re.sub(r"\s+", " ", text)
        return text.strip()

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a single email.

        Raises:
            ServiceException: If the provider rejects the send
        """
        if not text_content:
            text_content = self._html_to_text(html_content)

        if not self.enabled:
            self.logger.info("Email (not sent, provider disabled) to=%s subject=%s", to_email, subject)
            return {"id": None, "skipped": True}

        email_data: Dict[str, Any] = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content,
        }
        if idempotency_key:
            email_data["headers"] = {"X-Entity-Ref-ID": idempotency_key}

        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            error_msg = str(e) or "Unknown error"
            self.logger.error(f"Failed to send email to {to_email}: {error_msg}")
            raise ServiceException(f"Email sending failed: {error_msg}") from e

        self.logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return dict(response) if response else {}

    def send_template(
        self,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        html_content = self.template_service.render_template(template_name, context)
        return self.send_email(
            to_email=to_email,
            subject=subject,
            html_content=html_content,
            idempotency_key=idempotency_key,
        )
