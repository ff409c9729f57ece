# backend/teachtape/services/film_review_service.py
"""
Film review workflow: accept, decline, deliver, expire.

Each transition commits on its own before any side effect runs. Emails go
through the outbox; refunds run inline but can never fail the transition
that triggered them.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Callable, List, Optional, TypeVar
from urllib.parse import urlparse

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import REVIEW_DOCUMENT_HOSTS
from ..core.exceptions import (
    ConflictException,
    NotFoundException,
    SideEffectFailure,
    ValidationException,
)
from ..domain.booking_state import ensure_review_transition
from ..integrations.payment_processor import PaymentProcessor
from ..models.booking import Booking, PaymentStatus, ReviewStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_service import load_booking_for_coach
from .conversation_service import ConversationService
from .refund_service import RefundService
from .side_effects import (
    FILM_REVIEW_ACCEPTED,
    FILM_REVIEW_COMPLETED,
    FILM_REVIEW_DECLINED,
    FILM_REVIEW_EXPIRED,
    publish_side_effect,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_allowed_review_url(url: str) -> bool:
    """Reviews must be https links to a known document/video host, or a PDF."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    if parsed.scheme != "https" or not parsed.hostname:
        return False
    host = parsed.hostname.lower()
    if any(host == allowed or host.endswith("." + allowed) for allowed in REVIEW_DOCUMENT_HOSTS):
        return True
    return parsed.path.lower().endswith(".pdf")


@dataclass(frozen=True)
class DeclineResult:
    booking_id: str
    refund_issued: bool


@dataclass(frozen=True)
class ExpirySweepResult:
    expired: int
    refunded: int


class FilmReviewService(BaseService):
    def __init__(
        self,
        db: Session,
        processor: PaymentProcessor,
        refund_service: Optional[RefundService] = None,
        conversation_service: Optional[ConversationService] = None,
    ):
        super().__init__(db)
        self.processor = processor
        self.refund_service = refund_service or RefundService(db, processor)
        self.conversation_service = conversation_service or ConversationService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.coach_repository = RepositoryFactory.create_coach_repository(db)

    # ------------------------------------------------------------ guards
    def _load_guarded(self, booking_id: str, coach_profile_id: str) -> Booking:
        booking = load_booking_for_coach(
            self.booking_repository, self.coach_repository, booking_id, coach_profile_id
        )
        if not booking.is_film_review:
            raise ValidationException("Booking is not a film review", code="NOT_A_FILM_REVIEW")
        if booking.payment_status != PaymentStatus.PAID.value:
            raise ConflictException(
                "Film review has not been paid for",
                code="BOOKING_NOT_PAID",
                details={"payment_status": booking.payment_status},
            )
        return booking

    def _transition(
        self,
        booking: Booking,
        expected: ReviewStatus,
        target: ReviewStatus,
        **fields,
    ) -> None:
        ensure_review_transition(booking.review_status, target, booking_id=booking.id)
        with self.transaction():
            rows = self.booking_repository.transition_review_status(
                booking.id,
                expected,
                target,
                require_payment_status=PaymentStatus.PAID,
                **fields,
            )
        prometheus_metrics.record_booking_transition("review", target.value, bool(rows))
        if not rows:
            raise ConflictException(
                "Film review was updated by another request",
                code="INVALID_REVIEW_TRANSITION",
                details={"booking_id": booking.id, "target": target.value},
            )

    def _after_commit(self, effect: str, booking_id: str, action: Callable[[], T]) -> Optional[T]:
        """Run a side effect of an already-committed transition; failures are logged only."""
        try:
            return action()
        except (ValidationException, NotFoundException, ConflictException) as exc:
            # e.g. a guest buyer with no account yet
            self.logger.info("Side effect skipped: %s", SideEffectFailure(effect, booking_id, exc))
        except Exception as exc:
            self.db.rollback()
            failure = SideEffectFailure(effect, booking_id, exc)
            self.logger.error("Side effect failed after commit: %s", failure, exc_info=True)
        return None

    def _refund_quietly(self, booking_id: str) -> bool:
        refund = self._after_commit("refund", booking_id, lambda: self.refund_service.refund(booking_id))
        return bool(refund and refund.issued)

    def _publish(self, event_type: str, booking_id: str, **payload) -> None:
        publish_side_effect(
            self.db,
            event_type,
            booking_id,
            payload={"booking_id": booking_id, **payload},
            idempotency_key=f"{event_type}:{booking_id}",
        )

    # ------------------------------------------------------------ operations
    @BaseService.measure_operation("accept_film_review")
    def accept(self, booking_id: str, coach_profile_id: str) -> Booking:
        booking = self._load_guarded(booking_id, coach_profile_id)
        accepted_at = _now()
        turnaround = booking.listing.turnaround_hours if booking.listing else settings.default_turnaround_hours
        self._transition(
            booking,
            ReviewStatus.PENDING_ACCEPTANCE,
            ReviewStatus.ACCEPTED,
            accepted_at=accepted_at,
            deadline_at=accepted_at + timedelta(hours=turnaround),
        )
        self.logger.info("Film review %s accepted, due in %sh", booking_id, turnaround)

        self._publish(FILM_REVIEW_ACCEPTED, booking_id)
        self._after_commit(
            "ensure_conversation",
            booking_id,
            lambda: self.conversation_service.ensure_conversation(booking_id, coach_profile_id),
        )

        return self.booking_repository.get_by_id(booking_id)

    @BaseService.measure_operation("decline_film_review")
    def decline(self, booking_id: str, coach_profile_id: str, reason: Optional[str] = None) -> DeclineResult:
        booking = self._load_guarded(booking_id, coach_profile_id)
        self._transition(
            booking,
            ReviewStatus.PENDING_ACCEPTANCE,
            ReviewStatus.DECLINED,
            decline_reason=(reason or None),
        )
        self.logger.info("Film review %s declined", booking_id)

        refund_issued = self._refund_quietly(booking_id)
        self._publish(FILM_REVIEW_DECLINED, booking_id, refund_issued=refund_issued, reason=reason)
        return DeclineResult(booking_id=booking_id, refund_issued=refund_issued)

    @BaseService.measure_operation("submit_film_review")
    def submit_review(self, booking_id: str, coach_profile_id: str, review_url: str) -> Booking:
        """Deliver the review document; closes both axes."""
        if not review_url or not is_allowed_review_url(review_url):
            raise ValidationException(
                "Review link must be an https link to Google Docs/Drive, Dropbox, Notion, "
                "Loom, YouTube, Vimeo or a PDF",
                code="INVALID_REVIEW_URL",
            )
        booking = self._load_guarded(booking_id, coach_profile_id)
        now = _now()
        late = booking.deadline_at is not None and now > _as_utc(booking.deadline_at)
        self._transition(
            booking,
            ReviewStatus.ACCEPTED,
            ReviewStatus.COMPLETED,
            submitted_review_url=review_url.strip(),
            review_completed_at=now,
            review_submitted_late=late,
            payment_status=PaymentStatus.COMPLETED.value,
            completed_at=now,
        )
        prometheus_metrics.record_booking_transition("payment", PaymentStatus.COMPLETED.value, True)
        if late:
            self.logger.warning("Film review %s delivered after its deadline", booking_id)

        self._publish(FILM_REVIEW_COMPLETED, booking_id)
        return self.booking_repository.get_by_id(booking_id)

    @BaseService.measure_operation("expire_overdue_film_reviews")
    def expire_overdue(self, now: Optional[datetime] = None) -> ExpirySweepResult:
        """Expire accepted reviews past their deadline; refund when configured."""
        now = now or _now()
        expired = refunded = 0
        for booking in self.booking_repository.find_overdue_accepted(now):
            with self.transaction():
                rows = self.booking_repository.transition_review_status(
                    booking.id, ReviewStatus.ACCEPTED, ReviewStatus.EXPIRED
                )
            prometheus_metrics.record_booking_transition("review", ReviewStatus.EXPIRED.value, bool(rows))
            if not rows:
                # Delivered (or otherwise moved) while the sweep was running
                continue
            expired += 1

            refund_issued = False
            if settings.film_review_refund_on_expiry:
                refund_issued = self._refund_quietly(booking.id)
                refunded += int(refund_issued)
            self._publish(FILM_REVIEW_EXPIRED, booking.id, refund_issued=refund_issued)

        if expired:
            self.logger.info("Expired %s overdue film reviews (%s refunded)", expired, refunded)
        return ExpirySweepResult(expired=expired, refunded=refunded)

    @BaseService.measure_operation("list_pending_film_reviews")
    def list_pending_for_coach(self, coach_profile_id: str) -> List[Booking]:
        coach = self.coach_repository.get_by_profile_id(coach_profile_id)
        if coach is None:
            raise NotFoundException("Coach not found", code="COACH_NOT_FOUND")
        return self.booking_repository.list_pending_film_reviews(coach.id)
