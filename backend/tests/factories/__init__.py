"""Data builders for tests. Every builder commits so services see the rows."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from teachtape.integrations.payment_processor import FakePaymentProcessor
from teachtape.models.booking import Booking, PaymentStatus, ReviewStatus
from teachtape.models.listing import Listing, ListingType
from teachtape.models.profile import Coach, Profile, ProfileRole

_counter = 0


def _next() -> int:
    global _counter
    _counter += 1
    return _counter


class DataFactory:
    def __init__(self, db: Session, processor: FakePaymentProcessor):
        self.db = db
        self.processor = processor

    def _save(self, obj: Any) -> Any:
        self.db.add(obj)
        self.db.commit()
        return obj

    def profile(self, *, email: Optional[str] = None, role: str = ProfileRole.ATHLETE.value, **kwargs: Any) -> Profile:
        n = _next()
        return self._save(
            Profile(
                email=email or f"user{n}@example.com",
                full_name=kwargs.pop("full_name", f"User {n}"),
                role=role,
                **kwargs,
            )
        )

    def coach(self, *, ready: bool = True, **kwargs: Any) -> Coach:
        """A coach; ``ready`` gives it a processor account that can take charges."""
        profile = self.profile(role=ProfileRole.COACH.value, **kwargs)
        coach = Coach(profile_id=profile.id)
        if ready:
            account = self.processor.enable_charges(f"acct_test_{_next()}")
            coach.payment_account_id = account.id
            coach.charges_enabled = True
            coach.details_submitted = True
        return self._save(coach)

    def listing(
        self,
        coach: Coach,
        *,
        listing_type: ListingType = ListingType.LIVE_LESSON,
        price_cents: int = 5000,
        turnaround_hours: int = 48,
        **kwargs: Any,
    ) -> Listing:
        return self._save(
            Listing(
                coach_id=coach.id,
                title=kwargs.pop("title", f"Session {_next()}"),
                listing_type=listing_type.value,
                price_cents=price_cents,
                turnaround_hours=turnaround_hours,
                **kwargs,
            )
        )

    def booking(
        self,
        listing: Listing,
        *,
        buyer: Optional[Profile] = None,
        buyer_email: Optional[str] = None,
        payment_status: PaymentStatus = PaymentStatus.PAID,
        review_status: Optional[ReviewStatus] = None,
        **kwargs: Any,
    ) -> Booking:
        is_film_review = listing.listing_type == ListingType.FILM_REVIEW.value
        if is_film_review and review_status is None:
            review_status = ReviewStatus.PENDING_ACCEPTANCE
        email = buyer_email or (buyer.email if buyer else f"guest{_next()}@example.com")
        values: dict[str, Any] = dict(
            listing_id=listing.id,
            coach_id=listing.coach_id,
            buyer_profile_id=buyer.id if buyer else None,
            buyer_email=email,
            buyer_name=buyer.full_name if buyer else None,
            booking_type=listing.listing_type,
            amount_paid_cents=listing.price_cents,
            platform_fee_cents=listing.price_cents // 10,
            payment_status=payment_status.value,
            review_status=review_status.value if review_status else None,
        )
        if payment_status in (PaymentStatus.PAID, PaymentStatus.COMPLETED):
            values["paid_at"] = datetime.now(timezone.utc)
            values.setdefault("payment_intent_id", f"pi_test_{_next()}")
        values.update(kwargs)
        return self._save(Booking(**values))

    def paid_film_review(self, coach: Optional[Coach] = None, **kwargs: Any) -> Booking:
        coach = coach or self.coach()
        listing = self.listing(coach, listing_type=ListingType.FILM_REVIEW, **kwargs.pop("listing_kwargs", {}))
        return self.booking(listing, **kwargs)
