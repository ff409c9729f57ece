# backend/teachtape/routes/v1/film_reviews.py
"""
Film review routes - API v1 (coach only)

Endpoints:
    GET  /pending                → Paid reviews awaiting the coach
    POST /{booking_id}/accept    → Accept and start the turnaround clock
    POST /{booking_id}/decline   → Decline; the buyer is refunded
    POST /{booking_id}/submit    → Deliver the review link
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies.auth import get_current_coach
from ...api.dependencies.services import get_booking_service, get_film_review_service
from ...models.profile import Profile
from ...schemas.booking import BookingStatusResponse, BookingSummary
from ...schemas.film_review import (
    DeclineFilmReviewRequest,
    DeclineFilmReviewResponse,
    PendingFilmReviewsResponse,
    SubmitFilmReviewRequest,
)
from ...services.booking_service import BookingService
from ...services.film_review_service import FilmReviewService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["film-reviews-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.get("/pending", response_model=PendingFilmReviewsResponse)
def list_pending(
    coach: Profile = Depends(get_current_coach),
    service: FilmReviewService = Depends(get_film_review_service),
) -> PendingFilmReviewsResponse:
    bookings = service.list_pending_for_coach(coach.id)
    return PendingFilmReviewsResponse(
        bookings=[BookingSummary.model_validate(booking) for booking in bookings]
    )


@router.post("/{booking_id}/accept", response_model=BookingStatusResponse)
def accept_film_review(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    coach: Profile = Depends(get_current_coach),
    service: FilmReviewService = Depends(get_film_review_service),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingStatusResponse:
    service.accept(booking_id, coach.id)
    return BookingStatusResponse.model_validate(booking_service.get_booking_status(booking_id, coach.id))


@router.post("/{booking_id}/decline", response_model=DeclineFilmReviewResponse)
def decline_film_review(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: Optional[DeclineFilmReviewRequest] = Body(default=None),
    coach: Profile = Depends(get_current_coach),
    service: FilmReviewService = Depends(get_film_review_service),
) -> DeclineFilmReviewResponse:
    result = service.decline(booking_id, coach.id, reason=payload.reason if payload else None)
    return DeclineFilmReviewResponse(booking_id=result.booking_id, refund_issued=result.refund_issued)


@router.post("/{booking_id}/submit", response_model=BookingStatusResponse)
def submit_film_review(
    payload: SubmitFilmReviewRequest,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    coach: Profile = Depends(get_current_coach),
    service: FilmReviewService = Depends(get_film_review_service),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingStatusResponse:
    service.submit_review(booking_id, coach.id, payload.review_url)
    return BookingStatusResponse.model_validate(booking_service.get_booking_status(booking_id, coach.id))
