# backend/teachtape/models/booking.py
"""
Booking model for TeachTape.

A booking tracks two independent axes:

* payment_status for every booking (pending -> paid -> completed, or
  pending -> cancelled)
* review_status for film reviews only (pending_acceptance -> accepted ->
  completed/expired, or pending_acceptance -> declined)

Transitions are written through BookingRepository conditional updates, never
by assigning attributes on a loaded row. ``version`` is bumped by every
transition.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .listing import ListingType

BookingType = ListingType


class PaymentStatus(str, Enum):
    """Money axis."""

    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReviewStatus(str, Enum):
    """Film-review workflow axis."""

    PENDING_ACCEPTANCE = "pending_acceptance"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"
    EXPIRED = "expired"


class RefundStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    """A purchase of a coach listing by an athlete (or guest buyer)."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    listing_id = Column(String(26), ForeignKey("listings.id"), nullable=False, index=True)
    coach_id = Column(String(26), ForeignKey("coaches.id"), nullable=False, index=True)
    buyer_profile_id = Column(String(26), ForeignKey("profiles.id"), nullable=True, index=True)
    buyer_email = Column(String(255), nullable=False, index=True)
    buyer_name = Column(String(200), nullable=True)
    booking_type = Column(String(20), nullable=False)

    # Money (integer cents)
    amount_paid_cents = Column(Integer, nullable=False)
    platform_fee_cents = Column(Integer, nullable=False, default=0)
    buyer_fee_cents = Column(Integer, nullable=False, default=0)

    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    review_status = Column(String(30), nullable=True, index=True)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    deadline_at = Column(DateTime(timezone=True), nullable=True, index=True)
    submitted_review_url = Column(Text, nullable=True)
    review_completed_at = Column(DateTime(timezone=True), nullable=True)
    review_submitted_late = Column(Boolean, nullable=False, default=False)
    decline_reason = Column(Text, nullable=True)

    # External references
    processor_session_id = Column(String(255), nullable=True, unique=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    meeting_id = Column(String(100), nullable=True, index=True)
    conversation_id = Column(String(26), ForeignKey("conversations.id"), nullable=True)

    refund_status = Column(String(20), nullable=True)
    refund_id = Column(String(255), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc)

    listing = relationship("Listing", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "(booking_type = 'live_lesson' AND review_status IS NULL) OR "
            "(booking_type = 'film_review' AND review_status IS NOT NULL)",
            name="ck_bookings_review_status_matches_type",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'completed', 'cancelled')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("amount_paid_cents >= 0", name="ck_bookings_amount_non_negative"),
        Index("idx_bookings_review_deadline", "review_status", "deadline_at"),
        Index("idx_bookings_payment_created", "payment_status", "created_at"),
    )

    @property
    def is_film_review(self) -> bool:
        return self.booking_type == BookingType.FILM_REVIEW.value

    @property
    def is_live_lesson(self) -> bool:
        return self.booking_type == BookingType.LIVE_LESSON.value

    def is_buyer(self, profile_id: Optional[str], email: Optional[str] = None) -> bool:
        """Match by buyer profile id, falling back to the checkout email."""
        if profile_id and self.buyer_profile_id and self.buyer_profile_id == profile_id:
            return True
        if email and self.buyer_email:
            return self.buyer_email.strip().lower() == email.strip().lower()
        return False

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} {self.booking_type} "
            f"payment={self.payment_status} review={self.review_status}>"
        )
