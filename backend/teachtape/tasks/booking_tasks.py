# backend/teachtape/tasks/booking_tasks.py
"""Periodic booking sweeps."""

from typing import Dict

from celery.utils.log import get_task_logger

from teachtape.integrations.payment_processor import get_payment_processor
from teachtape.services.booking_service import BookingService
from teachtape.services.film_review_service import FilmReviewService
from teachtape.tasks.celery_app import celery_app
from teachtape.tasks.notification_tasks import _session_scope

logger = get_task_logger(__name__)


@celery_app.task(name="bookings.expire_overdue_film_reviews", max_retries=0)
def expire_overdue_film_reviews() -> Dict[str, int]:
    """Expire accepted film reviews whose deadline has passed."""
    with _session_scope() as session:
        result = FilmReviewService(session, get_payment_processor()).expire_overdue()
    if result.expired:
        logger.info("Film review sweep: expired=%s refunded=%s", result.expired, result.refunded)
    return {"expired": result.expired, "refunded": result.refunded}


@celery_app.task(name="bookings.cancel_abandoned_checkouts", max_retries=0)
def cancel_abandoned_checkouts() -> int:
    with _session_scope() as session:
        return BookingService(session, get_payment_processor()).cancel_abandoned()
