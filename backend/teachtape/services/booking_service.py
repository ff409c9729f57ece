# backend/teachtape/services/booking_service.py
"""
Booking payment-axis transitions and booking reads.

Every transition is a conditional update on the expected prior state, so a
duplicate or stale trigger (two webhook deliveries, a retry after a timeout)
is a no-op the second time instead of a double apply.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    NotFoundException,
    ProcessorException,
    ValidationException,
)
from ..domain.booking_state import ensure_payment_transition
from ..integrations.payment_processor import PaymentProcessor
from ..models.booking import Booking, PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.profile_repository import CoachRepository
from .base import BaseService

logger = logging.getLogger(__name__)

_PAYMENT_ORDER = {
    PaymentStatus.PENDING.value: 0,
    PaymentStatus.PAID.value: 1,
    PaymentStatus.COMPLETED.value: 2,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def load_booking_for_coach(
    booking_repository: BookingRepository,
    coach_repository: CoachRepository,
    booking_id: str,
    coach_profile_id: str,
) -> Booking:
    """Fetch a booking owned by the coach behind ``coach_profile_id``.

    Missing and not-yours are indistinguishable to the caller.
    """
    booking = booking_repository.get_by_id(booking_id)
    coach = coach_repository.get_by_profile_id(coach_profile_id)
    if booking is None or coach is None or booking.coach_id != coach.id:
        raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
    return booking


@dataclass(frozen=True)
class BookingStatusView:
    booking_id: str
    booking_type: str
    payment_status: str
    review_status: Optional[str]
    amount_paid_cents: int
    accepted_at: Optional[datetime]
    deadline_at: Optional[datetime]
    submitted_review_url: Optional[str]
    review_submitted_late: bool
    refund_status: Optional[str]
    conversation_id: Optional[str]
    viewer_role: str


class BookingService(BaseService):
    def __init__(self, db: Session, processor: Optional[PaymentProcessor] = None):
        super().__init__(db)
        self.processor = processor
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.coach_repository = RepositoryFactory.create_coach_repository(db)
        self.profile_repository = RepositoryFactory.create_profile_repository(db)

    def _get(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    def _already_at_or_past(self, booking: Booking, target: PaymentStatus) -> bool:
        current = _PAYMENT_ORDER.get(booking.payment_status)
        return current is not None and current >= _PAYMENT_ORDER[target.value]

    @BaseService.measure_operation("mark_paid")
    def mark_paid(
        self,
        booking_id: str,
        payment_intent_id: Optional[str] = None,
        amount_paid_cents: Optional[int] = None,
    ) -> bool:
        """
        pending -> paid.

        Returns False when the booking is already paid (or further along).
        Raises ConflictException for a cancelled booking.
        """
        booking = self._get(booking_id)
        if self._already_at_or_past(booking, PaymentStatus.PAID):
            if payment_intent_id and not booking.payment_intent_id:
                with self.transaction():
                    self.booking_repository.set_payment_intent_if_absent(booking_id, payment_intent_id)
            return False
        ensure_payment_transition(booking.payment_status, PaymentStatus.PAID, booking_id=booking_id)

        fields = {"paid_at": _now()}
        if payment_intent_id:
            fields["payment_intent_id"] = payment_intent_id
        if amount_paid_cents is not None:
            if amount_paid_cents != booking.amount_paid_cents:
                self.logger.warning(
                    "Processor amount %s differs from booking %s amount %s",
                    amount_paid_cents,
                    booking_id,
                    booking.amount_paid_cents,
                )
            fields["amount_paid_cents"] = amount_paid_cents

        with self.transaction():
            rows = self.booking_repository.transition_payment_status(
                booking_id, PaymentStatus.PENDING, PaymentStatus.PAID, **fields
            )
        prometheus_metrics.record_booking_transition("payment", PaymentStatus.PAID.value, bool(rows))
        if rows:
            self.logger.info("Booking %s marked paid", booking_id)
        return bool(rows)

    @BaseService.measure_operation("mark_completed")
    def mark_completed(self, booking_id: str) -> bool:
        """paid -> completed. Returns False when already completed."""
        booking = self._get(booking_id)
        if booking.payment_status == PaymentStatus.COMPLETED.value:
            return False
        ensure_payment_transition(booking.payment_status, PaymentStatus.COMPLETED, booking_id=booking_id)

        with self.transaction():
            rows = self.booking_repository.transition_payment_status(
                booking_id, PaymentStatus.PAID, PaymentStatus.COMPLETED, completed_at=_now()
            )
        prometheus_metrics.record_booking_transition(
            "payment", PaymentStatus.COMPLETED.value, bool(rows)
        )
        return bool(rows)

    @BaseService.measure_operation("complete_session")
    def complete_session(self, booking_id: str, coach_profile_id: str) -> Booking:
        """Coach marks a live lesson as delivered."""
        booking = load_booking_for_coach(
            self.booking_repository, self.coach_repository, booking_id, coach_profile_id
        )
        if not booking.is_live_lesson:
            raise ValidationException(
                "Film reviews are completed by submitting the review",
                code="NOT_A_LIVE_LESSON",
            )
        if not self.mark_completed(booking_id):
            raise ConflictException("Session already completed", code="BOOKING_ALREADY_COMPLETED")
        return self._get(booking_id)

    @BaseService.measure_operation("cancel_pending")
    def cancel_pending(self, booking_id: str) -> bool:
        """pending -> cancelled (checkout expired or abandoned). No-op otherwise."""
        booking = self._get(booking_id)
        if booking.payment_status != PaymentStatus.PENDING.value:
            return False
        with self.transaction():
            rows = self.booking_repository.transition_payment_status(
                booking_id, PaymentStatus.PENDING, PaymentStatus.CANCELLED, cancelled_at=_now()
            )
        prometheus_metrics.record_booking_transition(
            "payment", PaymentStatus.CANCELLED.value, bool(rows)
        )
        return bool(rows)

    def _close_checkout_session(self, booking: Booking) -> bool:
        """
        Expire the booking's processor session ahead of cancelling it.

        Returns False when the booking must stay as it is: the buyer paid after
        all (the booking is marked paid here) or the processor can't be reached.
        """
        if self.processor is None or not booking.processor_session_id:
            return True
        session_id = booking.processor_session_id
        try:
            self.processor.expire_checkout_session(session_id)
            return True
        except ProcessorException as exc:
            if exc.processor_code == "resource_missing":
                return True
            failure = exc
        try:
            session = self.processor.retrieve_checkout_session(session_id)
        except ProcessorException:
            self.logger.warning(
                "Could not close checkout session %s for booking %s (%s); retrying next sweep",
                session_id,
                booking.id,
                failure.message,
            )
            return False
        if session.payment_status == "paid":
            self.logger.warning("Abandoned booking %s was paid at the processor", booking.id)
            self.mark_paid(
                booking.id,
                payment_intent_id=session.payment_intent_id,
                amount_paid_cents=session.amount_total,
            )
            return False
        return True

    @BaseService.measure_operation("cancel_abandoned")
    def cancel_abandoned(
        self, older_than: Optional[timedelta] = None, now: Optional[datetime] = None
    ) -> int:
        """Cancel pending bookings that never received a payment confirmation."""
        horizon = older_than or timedelta(minutes=settings.checkout_abandon_after_minutes)
        cutoff = (now or _now()) - horizon
        cancelled = 0
        for booking in self.booking_repository.find_abandoned_pending(cutoff):
            if not self._close_checkout_session(booking):
                continue
            if self.cancel_pending(booking.id):
                cancelled += 1
        if cancelled:
            self.logger.info("Cancelled %s abandoned checkouts older than %s", cancelled, cutoff)
        return cancelled

    @BaseService.measure_operation("get_booking_status")
    def get_booking_status(self, booking_id: str, viewer_profile_id: str) -> BookingStatusView:
        booking = self.booking_repository.get_by_id(booking_id)
        viewer = self.profile_repository.get_by_id(viewer_profile_id)
        if booking is None or viewer is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")

        coach = self.coach_repository.get_by_id(booking.coach_id)
        if coach is not None and coach.profile_id == viewer.id:
            role = "coach"
        elif booking.is_buyer(viewer.id, viewer.email):
            role = "buyer"
        else:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")

        return BookingStatusView(
            booking_id=booking.id,
            booking_type=booking.booking_type,
            payment_status=booking.payment_status,
            review_status=booking.review_status,
            amount_paid_cents=booking.amount_paid_cents,
            accepted_at=booking.accepted_at,
            deadline_at=booking.deadline_at,
            submitted_review_url=booking.submitted_review_url,
            review_submitted_late=bool(booking.review_submitted_late),
            refund_status=booking.refund_status,
            conversation_id=booking.conversation_id,
            viewer_role=role,
        )
