import pytest

from teachtape.core.config import settings
from teachtape.core.exceptions import NotFoundException, ValidationException
from teachtape.models.listing import ListingType
from teachtape.services.pricing_service import (
    PricingService,
    buyer_fee_cents,
    clamp_percentage,
    platform_fee_cents,
)


class TestFeeMath:
    def test_ten_percent_of_fifty_dollars(self):
        assert platform_fee_cents(5000, 10) == 500

    def test_rounds_half_up(self):
        # 10% of 1005 = 100.5
        assert platform_fee_cents(1005, 10) == 101

    def test_percentage_clamped_to_bounds(self):
        assert clamp_percentage(-5) == 0
        assert clamp_percentage(95) == 30
        assert platform_fee_cents(1000, 95) == 300

    def test_coach_always_keeps_a_cent(self):
        assert platform_fee_cents(1, 30) == 0
        assert platform_fee_cents(2, 30) == 1

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValidationException):
            platform_fee_cents(0, 10)

    def test_buyer_fee_combines_percentage_and_flat(self):
        assert buyer_fee_cents(5000, 5, 150) == 400
        assert buyer_fee_cents(5000, 0, 999999) == 2000


class TestPricingService:
    def test_fee_breakdown_for_listing(self, db, factory, monkeypatch):
        monkeypatch.setattr(settings, "buyer_service_fee_flat_cents", 100)
        coach = factory.coach()
        listing = factory.listing(coach, price_cents=8000, listing_type=ListingType.FILM_REVIEW)

        breakdown = PricingService(db).fee_breakdown(listing.id)

        assert breakdown.platform_fee_cents == 800
        assert breakdown.buyer_fee_cents == 100
        assert breakdown.coach_payout_cents == 7200
        assert breakdown.total_charged_cents == 8100
        assert breakdown.platform_fee_percentage == 10.0

    def test_inactive_listing_not_found(self, db, factory):
        listing = factory.listing(factory.coach(), is_active=False)
        with pytest.raises(NotFoundException) as exc_info:
            PricingService(db).fee_breakdown(listing.id)
        assert exc_info.value.code == "LISTING_NOT_FOUND"
