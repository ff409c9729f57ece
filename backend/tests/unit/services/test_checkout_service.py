from unittest.mock import patch

import pytest

from teachtape.core.config import settings
from teachtape.core.exceptions import (
    NotFoundException,
    PaymentSetupIncompleteException,
    ProcessorException,
    ValidationException,
)
from teachtape.models.booking import Booking, PaymentStatus, ReviewStatus
from teachtape.models.listing import ListingType
from teachtape.services.checkout_service import BuyerContact, CheckoutService


@pytest.fixture
def service(db, processor):
    return CheckoutService(db, processor)


def _booking_count(db) -> int:
    return db.query(Booking).count()


class TestStartCheckout:
    def test_creates_pending_booking_and_session(self, service, factory, processor, db):
        coach = factory.coach()
        listing = factory.listing(coach, price_cents=5000)

        result = service.start_checkout(
            listing.id, coach.id, BuyerContact(email="Buyer@Example.com", name="Sam")
        )

        booking = db.get(Booking, result.booking_id)
        assert booking.payment_status == PaymentStatus.PENDING.value
        assert booking.review_status is None
        assert booking.buyer_email == "buyer@example.com"
        assert booking.amount_paid_cents == 5000
        assert booking.platform_fee_cents == 500
        assert booking.processor_session_id == result.session_id
        assert result.session_url.startswith("https://checkout.example.test/")

        request = processor.session_requests[result.session_id]
        assert request.application_fee_cents == 500
        assert request.destination_account_id == coach.payment_account_id
        assert f"booking_id={booking.id}" in request.success_url

    def test_buyer_fee_is_added_to_total(self, service, factory, processor, db, monkeypatch):
        monkeypatch.setattr(settings, "buyer_service_fee_flat_cents", 200)
        coach = factory.coach()
        listing = factory.listing(coach, price_cents=5000)

        result = service.start_checkout(listing.id, coach.id, BuyerContact(email="b@example.com"))

        booking = db.get(Booking, result.booking_id)
        assert booking.amount_paid_cents == 5200
        assert booking.buyer_fee_cents == 200
        request = processor.session_requests[result.session_id]
        assert [item.amount_cents for item in request.line_items] == [5000, 200]
        assert request.application_fee_cents == 700

    def test_film_review_starts_pending_acceptance(self, service, factory, db):
        coach = factory.coach()
        listing = factory.listing(coach, listing_type=ListingType.FILM_REVIEW)

        result = service.start_checkout(listing.id, coach.id, BuyerContact(email="b@example.com"))

        booking = db.get(Booking, result.booking_id)
        assert booking.review_status == ReviewStatus.PENDING_ACCEPTANCE.value

    def test_coach_without_charges_is_rejected_without_booking(self, service, factory, processor, db):
        coach = factory.coach(ready=False)
        listing = factory.listing(coach)

        with pytest.raises(PaymentSetupIncompleteException) as exc_info:
            service.start_checkout(listing.id, coach.id, BuyerContact(email="b@example.com"))

        assert exc_info.value.code == "PAYMENT_SETUP_INCOMPLETE"
        assert exc_info.value.details["reason"] == "no_payment_account"
        assert _booking_count(db) == 0
        assert processor.call_count("create_checkout_session") == 0

    def test_stale_disabled_cache_is_refreshed_from_processor(self, service, factory, processor, db):
        coach = factory.coach()
        coach.charges_enabled = False
        coach.details_submitted = False
        db.commit()
        listing = factory.listing(coach)

        result = service.start_checkout(listing.id, coach.id, BuyerContact(email="b@example.com"))

        assert result.session_id in processor.sessions
        assert processor.call_count("retrieve_account") == 1
        db.refresh(coach)
        assert coach.charges_enabled is True
        assert coach.details_submitted is True

    def test_stale_enabled_cache_still_blocks_disabled_account(self, service, factory, processor, db):
        coach = factory.coach()
        processor.accounts[coach.payment_account_id].charges_enabled = False
        listing = factory.listing(coach)

        with pytest.raises(PaymentSetupIncompleteException) as exc_info:
            service.start_checkout(listing.id, coach.id, BuyerContact(email="b@example.com"))

        assert exc_info.value.details["reason"] == "charges_not_enabled"
        assert _booking_count(db) == 0
        assert processor.call_count("create_checkout_session") == 0
        db.refresh(coach)
        assert coach.charges_enabled is False

    def test_processor_failure_rolls_back_booking(self, service, factory, processor, db):
        coach = factory.coach()
        listing = factory.listing(coach)
        processor.fail_next(
            "create_checkout_session", ProcessorException("timeout", retryable=True)
        )

        with pytest.raises(ProcessorException) as exc_info:
            service.start_checkout(listing.id, coach.id, BuyerContact(email="b@example.com"))

        assert exc_info.value.retryable is True
        assert _booking_count(db) == 0

    def test_session_without_url_rolls_back(self, service, factory, processor, db):
        coach = factory.coach()
        listing = factory.listing(coach)
        original = processor.create_checkout_session

        def no_url(request):
            session = original(request)
            session.url = None
            return session

        with patch.object(processor, "create_checkout_session", side_effect=no_url):
            with pytest.raises(ProcessorException):
                service.start_checkout(listing.id, coach.id, BuyerContact(email="b@example.com"))
        assert _booking_count(db) == 0

    def test_listing_of_other_coach(self, service, factory):
        listing = factory.listing(factory.coach())
        other = factory.coach()

        with pytest.raises(ValidationException) as exc_info:
            service.start_checkout(listing.id, other.id, BuyerContact(email="b@example.com"))
        assert exc_info.value.code == "LISTING_COACH_MISMATCH"

    def test_unknown_listing(self, service, factory):
        coach = factory.coach()
        with pytest.raises(NotFoundException):
            service.start_checkout("01HZZZZZZZZZZZZZZZZZZZZZZZ", coach.id, BuyerContact(email="b@example.com"))

    def test_invalid_email(self, service, factory):
        coach = factory.coach()
        listing = factory.listing(coach)
        with pytest.raises(ValidationException) as exc_info:
            service.start_checkout(listing.id, coach.id, BuyerContact(email="nope"))
        assert exc_info.value.code == "INVALID_BUYER_EMAIL"
