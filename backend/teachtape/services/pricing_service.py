# backend/teachtape/services/pricing_service.py
"""
Fee math for checkout.

Platform fee: a percentage of the coach's price kept by the platform as the
application fee on a destination charge. Buyer fee: an optional service fee
added on top of the price as its own line item.

All amounts are integer cents; percentages round half-up.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    BUYER_FEE_MAX_FLAT_CENTS,
    PLATFORM_FEE_MAX_PERCENTAGE,
    PLATFORM_FEE_MIN_PERCENTAGE,
)
from ..core.exceptions import NotFoundException, ValidationException
from ..models.listing import Listing
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeBreakdown:
    listing_id: str
    price_cents: int
    platform_fee_cents: int
    buyer_fee_cents: int
    coach_payout_cents: int
    total_charged_cents: int
    platform_fee_percentage: float


def clamp_percentage(pct: float, maximum: float = PLATFORM_FEE_MAX_PERCENTAGE) -> float:
    return max(PLATFORM_FEE_MIN_PERCENTAGE, min(float(maximum), float(pct)))


def _percent_of(amount_cents: int, pct: float) -> int:
    value = (Decimal(amount_cents) * Decimal(str(pct)) / Decimal(100)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(value)


def platform_fee_cents(price_cents: int, pct: float, maximum: float = PLATFORM_FEE_MAX_PERCENTAGE) -> int:
    """
    Platform fee for a price.

    The percentage is clamped into [0, maximum] and the result never leaves the
    coach with less than 1 cent.
    """
    if price_cents <= 0:
        raise ValidationException("Price must be positive", code="INVALID_PRICE")
    fee = _percent_of(price_cents, clamp_percentage(pct, maximum))
    return max(0, min(fee, price_cents - 1))


def buyer_fee_cents(price_cents: int, pct: float = 0.0, flat_cents: int = 0) -> int:
    pct_fee = _percent_of(price_cents, clamp_percentage(pct))
    flat = max(0, min(BUYER_FEE_MAX_FLAT_CENTS, int(flat_cents)))
    return pct_fee + flat


class PricingService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.listing_repository = RepositoryFactory.create_listing_repository(db)

    @property
    def platform_fee_percentage(self) -> float:
        return clamp_percentage(settings.platform_fee_percentage, settings.platform_fee_max_percentage)

    def fees_for_price(self, price_cents: int) -> tuple[int, int]:
        """Return (platform_fee_cents, buyer_fee_cents) for a listing price."""
        return (
            platform_fee_cents(
                price_cents, settings.platform_fee_percentage, settings.platform_fee_max_percentage
            ),
            buyer_fee_cents(
                price_cents,
                settings.buyer_service_fee_percentage,
                settings.buyer_service_fee_flat_cents,
            ),
        )

    def breakdown_for_listing(self, listing: Listing) -> FeeBreakdown:
        platform_fee, buyer_fee = self.fees_for_price(listing.price_cents)
        return FeeBreakdown(
            listing_id=listing.id,
            price_cents=listing.price_cents,
            platform_fee_cents=platform_fee,
            buyer_fee_cents=buyer_fee,
            coach_payout_cents=listing.price_cents - platform_fee,
            total_charged_cents=listing.price_cents + buyer_fee,
            platform_fee_percentage=self.platform_fee_percentage,
        )

    @BaseService.measure_operation("fee_breakdown")
    def fee_breakdown(self, listing_id: str) -> FeeBreakdown:
        listing: Optional[Listing] = self.listing_repository.get_active(listing_id)
        if listing is None:
            raise NotFoundException("Listing not found", code="LISTING_NOT_FOUND")
        return self.breakdown_for_listing(listing)
