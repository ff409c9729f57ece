# backend/teachtape/services/checkout_service.py
"""
Checkout coordination.

The booking row is written before the buyer is redirected to the processor so
that an early webhook or a reload of the success page always finds it.
If the processor refuses the session, the booking is rolled back with it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    NotFoundException,
    PaymentSetupIncompleteException,
    ProcessorException,
    ValidationException,
)
from ..integrations.payment_processor import (
    CheckoutLineItem,
    CheckoutSessionRequest,
    PaymentProcessor,
)
from ..models.booking import Booking, PaymentStatus, ReviewStatus
from ..models.listing import ListingType
from ..models.profile import Coach
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing_service import PricingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuyerContact:
    email: str
    name: Optional[str] = None
    profile_id: Optional[str] = None


@dataclass(frozen=True)
class CheckoutResult:
    session_url: str
    booking_id: str
    session_id: str


class CheckoutService(BaseService):
    def __init__(
        self,
        db: Session,
        processor: PaymentProcessor,
        pricing_service: Optional[PricingService] = None,
    ):
        super().__init__(db)
        self.processor = processor
        self.pricing_service = pricing_service or PricingService(db)
        self.listing_repository = RepositoryFactory.create_listing_repository(db)
        self.coach_repository = RepositoryFactory.create_coach_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    @staticmethod
    def _callback_urls(booking_id: str) -> tuple[str, str]:
        base = settings.frontend_url.rstrip("/")
        return (
            f"{base}/checkout/success?booking_id={booking_id}&session_id={{CHECKOUT_SESSION_ID}}",
            f"{base}/checkout/cancelled?booking_id={booking_id}",
        )

    def _charges_enabled(self, coach: Coach) -> bool:
        """Live readiness from the processor; refreshes the cached flags when they drifted."""
        account = self.processor.retrieve_account(coach.payment_account_id)
        if (
            account.charges_enabled != coach.charges_enabled
            or account.details_submitted != coach.details_submitted
        ):
            self.logger.info(
                "Coach %s readiness cache was stale (charges_enabled=%s)",
                coach.id,
                account.charges_enabled,
            )
            with self.transaction():
                self.coach_repository.update_readiness(
                    account.id,
                    charges_enabled=account.charges_enabled,
                    details_submitted=account.details_submitted,
                )
        return account.charges_enabled

    @BaseService.measure_operation("start_checkout")
    def start_checkout(self, listing_id: str, coach_id: str, buyer: BuyerContact) -> CheckoutResult:
        """
        Create a pending booking and a processor checkout session for it.

        Raises:
            NotFoundException: listing missing or inactive
            ValidationException: listing belongs to another coach, bad buyer email
            PaymentSetupIncompleteException: coach can't take charges yet (checked live)
            ProcessorException: the processor refused or timed out (nothing persisted)
        """
        listing = self.listing_repository.get_active(listing_id)
        if listing is None:
            raise NotFoundException("Listing not found", code="LISTING_NOT_FOUND")
        if listing.coach_id != coach_id:
            raise ValidationException(
                "Listing does not belong to this coach", code="LISTING_COACH_MISMATCH"
            )
        if not buyer.email or "@" not in buyer.email:
            raise ValidationException("A valid email is required", code="INVALID_BUYER_EMAIL")

        coach = self.coach_repository.get_by_id(coach_id)
        if coach is None:
            raise NotFoundException("Coach not found", code="COACH_NOT_FOUND")
        if not coach.payment_account_id:
            raise PaymentSetupIncompleteException(coach_id, reason="no_payment_account")
        if not self._charges_enabled(coach):
            raise PaymentSetupIncompleteException(coach_id)

        platform_fee, buyer_fee = self.pricing_service.fees_for_price(listing.price_cents)
        is_film_review = listing.listing_type == ListingType.FILM_REVIEW.value

        try:
            booking: Booking = self.booking_repository.create(
                listing_id=listing.id,
                coach_id=coach.id,
                buyer_profile_id=buyer.profile_id,
                buyer_email=buyer.email.strip().lower(),
                buyer_name=buyer.name,
                booking_type=listing.listing_type,
                amount_paid_cents=listing.price_cents + buyer_fee,
                platform_fee_cents=platform_fee,
                buyer_fee_cents=buyer_fee,
                payment_status=PaymentStatus.PENDING.value,
                review_status=ReviewStatus.PENDING_ACCEPTANCE.value if is_film_review else None,
            )

            line_items = [CheckoutLineItem(name=listing.title, amount_cents=listing.price_cents)]
            if buyer_fee:
                line_items.append(CheckoutLineItem(name="Service fee", amount_cents=buyer_fee))
            success_url, cancel_url = self._callback_urls(booking.id)

            session = self.processor.create_checkout_session(
                CheckoutSessionRequest(
                    booking_id=booking.id,
                    destination_account_id=coach.payment_account_id,
                    line_items=line_items,
                    application_fee_cents=platform_fee + buyer_fee,
                    success_url=success_url,
                    cancel_url=cancel_url,
                    expires_at=datetime.now(timezone.utc)
                    + timedelta(minutes=settings.checkout_session_ttl_minutes),
                    customer_email=booking.buyer_email,
                    currency=settings.stripe_currency,
                    metadata={
                        "listing_id": listing.id,
                        "coach_id": coach.id,
                        "booking_type": listing.listing_type,
                    },
                )
            )
            if not session.url:
                raise ProcessorException(
                    "Checkout session has no redirect URL",
                    retryable=True,
                    details={"session_id": session.id},
                )
            booking.processor_session_id = session.id
            self.db.flush()
            self.db.commit()
        except ProcessorException:
            self.db.rollback()
            self.logger.warning("Checkout session creation failed for listing %s", listing_id)
            raise
        except Exception:
            self.db.rollback()
            raise

        self.logger.info(
            "Checkout started booking=%s session=%s amount=%s fee=%s",
            booking.id,
            session.id,
            booking.amount_paid_cents,
            platform_fee,
        )
        return CheckoutResult(session_url=session.url, booking_id=booking.id, session_id=session.id)
