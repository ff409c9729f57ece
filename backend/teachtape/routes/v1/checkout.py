# backend/teachtape/routes/v1/checkout.py
"""
Checkout routes - API v1

Endpoints:
    POST /checkout → Create a pending booking and return the processor checkout URL
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

from ...api.dependencies.auth import get_current_profile_optional
from ...api.dependencies.services import get_checkout_service
from ...core.exceptions import ValidationException
from ...models.profile import Profile
from ...schemas.checkout import CheckoutRequest, CheckoutResponse
from ...services.checkout_service import BuyerContact, CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout-v1"])


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
def start_checkout(
    payload: CheckoutRequest,
    profile: Optional[Profile] = Depends(get_current_profile_optional),
    service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse:
    """
    Start checkout for a listing.

    Signed-in athletes check out as themselves; guests must supply an email.
    """
    email = payload.buyer_email or (profile.email if profile else None)
    if not email:
        raise ValidationException("An email is required to check out", code="INVALID_BUYER_EMAIL")
    result = service.start_checkout(
        payload.listing_id,
        payload.coach_id,
        BuyerContact(
            email=str(email),
            name=payload.buyer_name or (profile.full_name if profile else None),
            profile_id=profile.id if profile else None,
        ),
    )
    return CheckoutResponse(url=result.session_url, booking_id=result.booking_id, session_id=result.session_id)
