# backend/teachtape/schemas/payments.py
from typing import List, Optional

from pydantic import Field

from .base import StandardizedModel, StrictRequestModel


class OnboardingRequest(StrictRequestModel):
    return_path: str = Field("/dashboard/payments", max_length=200)


class OnboardingResponse(StandardizedModel):
    account_id: str
    onboarding_url: Optional[str] = None
    already_onboarded: bool


class AccountStatusResponse(StandardizedModel):
    has_account: bool
    account_id: Optional[str] = None
    charges_enabled: bool
    details_submitted: bool
    payouts_enabled: bool = False
    requirements: List[str] = Field(default_factory=list)


class FeeBreakdownResponse(StandardizedModel):
    listing_id: str
    price_cents: int
    platform_fee_cents: int
    buyer_fee_cents: int
    total_charged_cents: int
    coach_payout_cents: int
    platform_fee_percentage: float
