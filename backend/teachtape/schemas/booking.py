# backend/teachtape/schemas/booking.py
from datetime import datetime
from typing import Literal, Optional

from .base import StandardizedModel


class BookingStatusResponse(StandardizedModel):
    booking_id: str
    booking_type: str
    payment_status: str
    review_status: Optional[str] = None
    amount_paid_cents: int
    accepted_at: Optional[datetime] = None
    deadline_at: Optional[datetime] = None
    submitted_review_url: Optional[str] = None
    review_submitted_late: bool = False
    refund_status: Optional[str] = None
    conversation_id: Optional[str] = None
    viewer_role: Literal["coach", "buyer"]


class BookingSummary(StandardizedModel):
    id: str
    booking_type: str
    payment_status: str
    review_status: Optional[str] = None
    buyer_email: str
    buyer_name: Optional[str] = None
    amount_paid_cents: int
    accepted_at: Optional[datetime] = None
    deadline_at: Optional[datetime] = None
    submitted_review_url: Optional[str] = None
    review_submitted_late: bool = False
    created_at: datetime


class ConversationResponse(StandardizedModel):
    conversation_id: str
    created: bool
