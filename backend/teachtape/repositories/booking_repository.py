# backend/teachtape/repositories/booking_repository.py
"""
Booking data access.

Status changes are single ``UPDATE ... WHERE id = :id AND <axis> = :expected``
statements that also write every accompanying field and bump ``version``.
A return value of 0 means the row was not in the expected state (another
request got there first).
"""

from datetime import datetime
import logging
from typing import Any, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.booking import Booking, PaymentStatus, RefundStatus, ReviewStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _value(status: Any) -> Any:
    return getattr(status, "value", status)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    # ------------------------------------------------------------------ reads
    def get_by_processor_session_id(self, session_id: str) -> Optional[Booking]:
        return self.find_one_by(processor_session_id=session_id)

    def get_by_meeting_id(self, meeting_id: str) -> Optional[Booking]:
        return self.find_one_by(meeting_id=meeting_id)

    def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Booking]:
        return self.find_one_by(payment_intent_id=payment_intent_id)

    def find_overdue_accepted(self, now: datetime, limit: int = 200) -> List[Booking]:
        query = (
            self._build_query()
            .filter(
                Booking.review_status == ReviewStatus.ACCEPTED.value,
                Booking.deadline_at.isnot(None),
                Booking.deadline_at < now,
            )
            .order_by(Booking.deadline_at.asc())
            .limit(limit)
        )
        return self._execute_query(query)

    def find_abandoned_pending(self, created_before: datetime, limit: int = 500) -> List[Booking]:
        query = (
            self._build_query()
            .filter(
                Booking.payment_status == PaymentStatus.PENDING.value,
                Booking.created_at < created_before,
            )
            .order_by(Booking.created_at.asc())
            .limit(limit)
        )
        return self._execute_query(query)

    def list_pending_film_reviews(self, coach_id: str) -> List[Booking]:
        """Paid film reviews waiting on the coach (pending acceptance or accepted)."""
        query = (
            self._build_query()
            .filter(
                Booking.coach_id == coach_id,
                Booking.payment_status == PaymentStatus.PAID.value,
                Booking.review_status.in_(
                    [ReviewStatus.PENDING_ACCEPTANCE.value, ReviewStatus.ACCEPTED.value]
                ),
            )
            .order_by(Booking.created_at.asc())
        )
        return self._execute_query(query)

    # ------------------------------------------------------------ transitions
    def transition_payment_status(
        self,
        booking_id: str,
        expected: PaymentStatus | str,
        target: PaymentStatus | str,
        **fields: Any,
    ) -> int:
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.payment_status == _value(expected))
            .values(payment_status=_value(target), version=Booking.version + 1, **fields)
        )
        rows = self._execute_update(stmt)
        self._expire_cached(booking_id)
        return rows

    def transition_review_status(
        self,
        booking_id: str,
        expected: ReviewStatus | str,
        target: ReviewStatus | str,
        *,
        require_payment_status: PaymentStatus | str | None = None,
        **fields: Any,
    ) -> int:
        conditions = [Booking.id == booking_id, Booking.review_status == _value(expected)]
        if require_payment_status is not None:
            conditions.append(Booking.payment_status == _value(require_payment_status))
        stmt = (
            update(Booking)
            .where(*conditions)
            .values(review_status=_value(target), version=Booking.version + 1, **fields)
        )
        rows = self._execute_update(stmt)
        self._expire_cached(booking_id)
        return rows

    def set_payment_intent_if_absent(self, booking_id: str, payment_intent_id: str) -> int:
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.payment_intent_id.is_(None))
            .values(payment_intent_id=payment_intent_id)
        )
        rows = self._execute_update(stmt)
        self._expire_cached(booking_id)
        return rows

    def link_conversation(self, booking_id: str, conversation_id: str) -> int:
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.conversation_id.is_(None))
            .values(conversation_id=conversation_id)
        )
        rows = self._execute_update(stmt)
        self._expire_cached(booking_id)
        return rows

    # ---------------------------------------------------------------- refunds
    def claim_refund(self, booking_id: str) -> int:
        """Move refund_status NULL -> pending. At most one caller wins."""
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.refund_status.is_(None))
            .values(refund_status=RefundStatus.PENDING.value)
        )
        rows = self._execute_update(stmt)
        self._expire_cached(booking_id)
        return rows

    def record_refund_outcome(
        self,
        booking_id: str,
        status: RefundStatus,
        *,
        refund_id: Optional[str] = None,
        refunded_at: Optional[datetime] = None,
        expected: Optional[RefundStatus] = RefundStatus.PENDING,
    ) -> int:
        conditions = [Booking.id == booking_id]
        if expected is not None:
            conditions.append(Booking.refund_status == expected.value)
        values: dict[str, Any] = {"refund_status": status.value}
        if refund_id is not None:
            values["refund_id"] = refund_id
        if refunded_at is not None:
            values["refunded_at"] = refunded_at
        stmt = update(Booking).where(*conditions).values(**values)
        rows = self._execute_update(stmt)
        self._expire_cached(booking_id)
        return rows

    def mark_refund_succeeded_from_processor(
        self, payment_intent_id: str, refund_id: Optional[str], refunded_at: datetime
    ) -> int:
        """Webhook path: any non-succeeded refund state becomes succeeded."""
        stmt = (
            update(Booking)
            .where(
                Booking.payment_intent_id == payment_intent_id,
                (Booking.refund_status.is_(None))
                | (Booking.refund_status != RefundStatus.SUCCEEDED.value),
            )
            .values(
                refund_status=RefundStatus.SUCCEEDED.value,
                refund_id=refund_id,
                refunded_at=refunded_at,
            )
        )
        rows = self._execute_update(stmt)
        booking = self.get_by_payment_intent_id(payment_intent_id)
        if booking is not None:
            self.db.expire(booking)
        return rows
