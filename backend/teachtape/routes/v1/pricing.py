# backend/teachtape/routes/v1/pricing.py
"""Public fee preview for a listing."""

from fastapi import APIRouter, Depends, Path

from ...api.dependencies.services import get_pricing_service
from ...schemas.payments import FeeBreakdownResponse
from ...services.pricing_service import PricingService

router = APIRouter(tags=["pricing-v1"])


@router.get("/fee-breakdown/{listing_id}", response_model=FeeBreakdownResponse)
def get_fee_breakdown(
    listing_id: str = Path(..., pattern=r"^[0-9A-HJKMNP-TV-Z]{26}$"),
    service: PricingService = Depends(get_pricing_service),
) -> FeeBreakdownResponse:
    return FeeBreakdownResponse.model_validate(service.fee_breakdown(listing_id))
