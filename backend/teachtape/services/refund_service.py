# backend/teachtape/services/refund_service.py
"""
Full refunds for bookings.

A booking gets at most one refund attempt: the attempt is claimed by a
conditional ``refund_status IS NULL -> pending`` update before the processor
is called. Processor failures never propagate; they leave the booking in
``refund_status = failed`` for manual reconciliation.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ProcessorException
from ..integrations.payment_processor import ALREADY_REFUNDED_CODE, PaymentProcessor
from ..models.booking import Booking, RefundStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundResult:
    issued: bool
    refund_id: Optional[str] = None
    status: Optional[str] = None


class RefundService(BaseService):
    def __init__(self, db: Session, processor: PaymentProcessor):
        super().__init__(db)
        self.processor = processor
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def _get(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    def _resolve_payment_intent(self, booking: Booking) -> Optional[str]:
        if booking.payment_intent_id:
            return booking.payment_intent_id
        if not booking.processor_session_id:
            return None
        try:
            session = self.processor.retrieve_checkout_session(booking.processor_session_id)
        except ProcessorException as exc:
            self.logger.error(
                "Could not resolve payment for booking %s from session %s: %s",
                booking.id,
                booking.processor_session_id,
                exc.message,
            )
            return None
        if session.payment_intent_id:
            self.booking_repository.set_payment_intent_if_absent(booking.id, session.payment_intent_id)
        return session.payment_intent_id

    def _finish(self, booking_id: str, status: RefundStatus, refund_id: Optional[str] = None) -> RefundResult:
        with self.transaction():
            self.booking_repository.record_refund_outcome(
                booking_id,
                status,
                refund_id=refund_id,
                refunded_at=datetime.now(timezone.utc) if status == RefundStatus.SUCCEEDED else None,
            )
        prometheus_metrics.record_refund(status.value)
        return RefundResult(
            issued=status == RefundStatus.SUCCEEDED, refund_id=refund_id, status=status.value
        )

    @BaseService.measure_operation("refund")
    def refund(self, booking_id: str, reason: str = "requested_by_customer") -> RefundResult:
        """
        Request a full refund of the booking's charge.

        Returns RefundResult(issued=False) rather than raising when the
        processor fails or no charge can be found.
        """
        booking = self._get(booking_id)
        if booking.refund_status == RefundStatus.SUCCEEDED.value:
            return RefundResult(issued=True, refund_id=booking.refund_id, status=booking.refund_status)

        with self.transaction():
            claimed = self.booking_repository.claim_refund(booking_id)
        if not claimed:
            current = self._get(booking_id)
            self.logger.info(
                "Refund for booking %s already attempted (status=%s)", booking_id, current.refund_status
            )
            return RefundResult(
                issued=current.refund_status == RefundStatus.SUCCEEDED.value,
                refund_id=current.refund_id,
                status=current.refund_status,
            )

        payment_intent_id = self._resolve_payment_intent(booking)
        if not payment_intent_id:
            self.logger.error(
                "No charge found for booking %s; refund needs manual reconciliation", booking_id
            )
            return self._finish(booking_id, RefundStatus.FAILED)

        try:
            refund = self.processor.create_refund(
                payment_intent_id,
                reason=reason,
                idempotency_key=f"refund-{booking_id}",
            )
        except ProcessorException as exc:
            if exc.processor_code == ALREADY_REFUNDED_CODE:
                self.logger.info("Charge for booking %s was already refunded", booking_id)
                return self._finish(booking_id, RefundStatus.SUCCEEDED)
            self.logger.error(
                "Refund failed for booking %s (retryable=%s): %s; needs manual reconciliation",
                booking_id,
                exc.retryable,
                exc.message,
            )
            return self._finish(booking_id, RefundStatus.FAILED)

        if refund.status in ("failed", "canceled"):
            self.logger.error("Processor reported refund %s as %s", refund.id, refund.status)
            return self._finish(booking_id, RefundStatus.FAILED, refund_id=refund.id)

        self.logger.info("Refund %s issued for booking %s", refund.id, booking_id)
        return self._finish(booking_id, RefundStatus.SUCCEEDED, refund_id=refund.id)
