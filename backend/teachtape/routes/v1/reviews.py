# backend/teachtape/routes/v1/reviews.py
"""
Reviews routes - API v1

Endpoints:
    POST /                  → Rate a completed live lesson (buyer)
    GET  /coach/{coach_id}  → Visible reviews for a coach (public)
"""

import logging

from fastapi import APIRouter, Depends, Path, Query, status

from ...api.dependencies.auth import get_current_profile
from ...api.dependencies.services import get_review_service
from ...models.profile import Profile
from ...schemas.review import ReviewCreateRequest, ReviewItem, ReviewListResponse
from ...services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reviews-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.post("", response_model=ReviewItem, status_code=status.HTTP_201_CREATED)
def create_review(
    payload: ReviewCreateRequest,
    profile: Profile = Depends(get_current_profile),
    service: ReviewService = Depends(get_review_service),
) -> ReviewItem:
    review = service.create_review(payload.booking_id, profile.id, payload.rating, payload.comment)
    return ReviewItem.model_validate(review)


@router.get("/coach/{coach_id}", response_model=ReviewListResponse)
def list_coach_reviews(
    coach_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: ReviewService = Depends(get_review_service),
) -> ReviewListResponse:
    reviews = service.list_for_coach(coach_id, limit=limit, offset=offset)
    return ReviewListResponse(reviews=[ReviewItem.model_validate(r) for r in reviews])
