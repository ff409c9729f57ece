# backend/teachtape/services/side_effects.py
"""
Detached side effects for booking transitions.

Services record side effects as outbox rows *after* the authoritative
transition has committed (``publish_side_effect``). Celery workers later hand
each row to ``SideEffectDispatcher``, which performs the actual email send
or processor cleanup with retries.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import RepositoryException, ServiceException, SideEffectFailure
from ..integrations.payment_processor import PaymentProcessor, get_payment_processor
from ..models.booking import Booking
from ..repositories.factory import RepositoryFactory
from .email import EmailService
from .template_service import format_datetime

logger = logging.getLogger(__name__)

FILM_REVIEW_ACCEPTED = "film_review.accepted"
FILM_REVIEW_DECLINED = "film_review.declined"
FILM_REVIEW_COMPLETED = "film_review.completed"
FILM_REVIEW_EXPIRED = "film_review.expired"
ACCOUNT_DISCARD = "payments.account_discard"

_SUBJECTS = {
    FILM_REVIEW_ACCEPTED: "Your film review was accepted",
    FILM_REVIEW_DECLINED: "Update on your film review request",
    FILM_REVIEW_COMPLETED: "Your film review is ready",
    FILM_REVIEW_EXPIRED: "Your film review deadline passed",
}


def publish_side_effect(
    db: Session,
    event_type: str,
    aggregate_id: str,
    payload: Optional[Dict[str, Any]] = None,
    idempotency_key: Optional[str] = None,
) -> bool:
    """
    Enqueue a side effect in its own short transaction.

    Called after the triggering transition committed. A failure here is logged
    as a SideEffectFailure and reported as False; it never propagates.
    """
    try:
        RepositoryFactory.create_event_outbox_repository(db).enqueue(
            event_type=event_type,
            aggregate_id=aggregate_id,
            payload=payload or {},
            idempotency_key=idempotency_key or f"{event_type}:{aggregate_id}",
        )
        db.commit()
        return True
    except (SQLAlchemyError, RepositoryException) as exc:
        db.rollback()
        failure = SideEffectFailure(event_type, aggregate_id, exc)
        logger.error("Side effect not enqueued: %s", failure)
        return False


class SideEffectDispatcher:
    """Delivers one outbox row. Raising means the delivery should be retried."""

    def __init__(
        self,
        db: Session,
        *,
        email_service: Optional[EmailService] = None,
        processor: Optional[PaymentProcessor] = None,
    ):
        self.db = db
        self._email_service = email_service
        self._processor = processor
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.coach_repository = RepositoryFactory.create_coach_repository(db)
        self.profile_repository = RepositoryFactory.create_profile_repository(db)
        self._handlers: Dict[str, Callable[[Dict[str, Any], str], None]] = {
            FILM_REVIEW_ACCEPTED: self._send_film_review_email,
            FILM_REVIEW_DECLINED: self._send_film_review_email,
            FILM_REVIEW_COMPLETED: self._send_film_review_email,
            FILM_REVIEW_EXPIRED: self._send_film_review_email,
            ACCOUNT_DISCARD: self._discard_account,
        }
        # Event type of the row being delivered; set by dispatch()
        self._event_type: Optional[str] = None

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = EmailService(self.db)
        return self._email_service

    @property
    def processor(self) -> PaymentProcessor:
        if self._processor is None:
            self._processor = get_payment_processor()
        return self._processor

    def dispatch(self, event_type: str, payload: Dict[str, Any], idempotency_key: str) -> None:
        handler = self._handlers.get(event_type)
        if handler is None:
            raise ServiceException(f"No side-effect handler for {event_type}")
        self._event_type = event_type
        handler(payload, idempotency_key)

    def _email_context(self, booking: Booking) -> Dict[str, Any]:
        coach = self.coach_repository.get_by_id(booking.coach_id)
        coach_profile = self.profile_repository.get_by_id(coach.profile_id) if coach else None
        listing = booking.listing
        return {
            "buyer_name": booking.buyer_name,
            "coach_name": (coach_profile.full_name if coach_profile else None) or "Your coach",
            "listing_title": listing.title if listing else "your session",
            "deadline": format_datetime(booking.deadline_at),
            "review_url": booking.submitted_review_url,
            "rate_url": f"{settings.frontend_url}/bookings/{booking.id}/review",
        }

    def _send_film_review_email(self, payload: Dict[str, Any], idempotency_key: str) -> None:
        event_type = self._event_type or ""
        booking_id = payload["booking_id"]
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            logger.warning("Booking %s vanished before %s email; dropping", booking_id, event_type)
            return
        context = self._email_context(booking)
        context.update(
            {
                "refund_issued": bool(payload.get("refund_issued")),
                "reason": payload.get("reason"),
            }
        )
        template = "email/" + event_type.replace(".", "_") + ".html"
        self.email_service.send_template(
            to_email=booking.buyer_email,
            subject=_SUBJECTS[event_type],
            template_name=template,
            context=context,
            idempotency_key=idempotency_key,
        )

    def _discard_account(self, payload: Dict[str, Any], idempotency_key: str) -> None:
        account_id = payload["account_id"]
        logger.info("Discarding orphaned payment account %s", account_id)
        self.processor.delete_account(account_id)
