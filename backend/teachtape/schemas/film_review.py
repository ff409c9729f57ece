# backend/teachtape/schemas/film_review.py
from typing import List, Optional

from pydantic import Field

from .base import StandardizedModel, StrictRequestModel
from .booking import BookingSummary


class DeclineFilmReviewRequest(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SubmitFilmReviewRequest(StrictRequestModel):
    review_url: str = Field(..., min_length=8, max_length=2048)


class DeclineFilmReviewResponse(StandardizedModel):
    booking_id: str
    refund_issued: bool


class PendingFilmReviewsResponse(StandardizedModel):
    bookings: List[BookingSummary]
