# backend/teachtape/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each factory builds a request-scoped service on the request's session. The
processor client is its own dependency so tests can override it once for
every service.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...integrations.payment_processor import PaymentProcessor, get_payment_processor
from ...services.booking_service import BookingService
from ...services.checkout_service import CheckoutService
from ...services.conversation_service import ConversationService
from ...services.film_review_service import FilmReviewService
from ...services.payment_identity_service import PaymentIdentityService
from ...services.pricing_service import PricingService
from ...services.review_service import ReviewService
from ...services.webhook_ingestion_service import WebhookIngestionService
from .database import get_db

logger = logging.getLogger(__name__)


def get_payment_processor_dep() -> PaymentProcessor:
    return get_payment_processor()


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    return PricingService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_conversation_service(db: Session = Depends(get_db)) -> ConversationService:
    return ConversationService(db)


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService(db)


def get_checkout_service(
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor_dep),
    pricing_service: PricingService = Depends(get_pricing_service),
) -> CheckoutService:
    return CheckoutService(db, processor, pricing_service)


def get_payment_identity_service(
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor_dep),
) -> PaymentIdentityService:
    return PaymentIdentityService(db, processor)


def get_film_review_service(
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor_dep),
) -> FilmReviewService:
    return FilmReviewService(db, processor)


def get_webhook_ingestion_service(
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor_dep),
) -> WebhookIngestionService:
    return WebhookIngestionService(db, processor)
