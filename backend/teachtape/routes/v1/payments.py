# backend/teachtape/routes/v1/payments.py
"""
Coach payment account routes - API v1

Endpoints:
    POST /onboarding      → Ensure the coach's account exists; return the onboarding link
    GET  /account-status  → Processor readiness for the calling coach
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends

from ...api.dependencies.auth import get_current_coach
from ...api.dependencies.services import get_payment_identity_service
from ...models.profile import Profile
from ...schemas.payments import AccountStatusResponse, OnboardingRequest, OnboardingResponse
from ...services.payment_identity_service import PaymentIdentityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post("/onboarding", response_model=OnboardingResponse)
def start_onboarding(
    payload: Optional[OnboardingRequest] = Body(default=None),
    coach: Profile = Depends(get_current_coach),
    service: PaymentIdentityService = Depends(get_payment_identity_service),
) -> OnboardingResponse:
    return_path = payload.return_path if payload else "/dashboard/payments"
    result = service.start_onboarding(coach.id, return_path=return_path)
    return OnboardingResponse(
        account_id=result.account_id,
        onboarding_url=result.onboarding_url,
        already_onboarded=result.already_onboarded,
    )


@router.get("/account-status", response_model=AccountStatusResponse)
def get_account_status(
    coach: Profile = Depends(get_current_coach),
    service: PaymentIdentityService = Depends(get_payment_identity_service),
) -> AccountStatusResponse:
    account = service.get_status_for_coach_profile(coach.id)
    return AccountStatusResponse(
        has_account=bool(account.account_id),
        account_id=account.account_id or None,
        charges_enabled=account.charges_enabled,
        details_submitted=account.details_submitted,
        payouts_enabled=account.payouts_enabled,
        requirements=account.requirements,
    )
