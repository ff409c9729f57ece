# backend/teachtape/routes/v1/bookings.py
"""
Booking routes - API v1

Endpoints:
    GET  /{booking_id}              → Booking status (coach or buyer)
    POST /{booking_id}/complete     → Coach marks a live lesson delivered
    POST /{booking_id}/conversation → Open (or fetch) the booking conversation
"""

import logging

from fastapi import APIRouter, Depends, Path

from ...api.dependencies.auth import get_current_coach, get_current_profile
from ...api.dependencies.services import get_booking_service, get_conversation_service
from ...models.profile import Profile
from ...schemas.booking import BookingStatusResponse, ConversationResponse
from ...services.booking_service import BookingService
from ...services.conversation_service import ConversationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.get("/{booking_id}", response_model=BookingStatusResponse)
def get_booking_status(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    profile: Profile = Depends(get_current_profile),
    service: BookingService = Depends(get_booking_service),
) -> BookingStatusResponse:
    view = service.get_booking_status(booking_id, profile.id)
    return BookingStatusResponse.model_validate(view)


@router.post("/{booking_id}/complete", response_model=BookingStatusResponse)
def complete_session(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    coach: Profile = Depends(get_current_coach),
    service: BookingService = Depends(get_booking_service),
) -> BookingStatusResponse:
    service.complete_session(booking_id, coach.id)
    return BookingStatusResponse.model_validate(service.get_booking_status(booking_id, coach.id))


@router.post("/{booking_id}/conversation", response_model=ConversationResponse)
def ensure_conversation(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    profile: Profile = Depends(get_current_profile),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    result = service.ensure_conversation(booking_id, profile.id)
    return ConversationResponse(conversation_id=result.conversation_id, created=result.created)
