# backend/teachtape/schemas/review.py
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import StandardizedModel, StrictRequestModel


class ReviewCreateRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1, max_length=26)
    # Range/length rules live in ReviewService so API and service agree on codes
    rating: int
    comment: Optional[str] = None


class ReviewItem(StandardizedModel):
    id: str
    booking_id: str
    coach_id: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class ReviewListResponse(StandardizedModel):
    reviews: List[ReviewItem]
