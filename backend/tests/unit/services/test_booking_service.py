from datetime import datetime, timedelta, timezone

import pytest

from teachtape.core.exceptions import (
    ConflictException,
    NotFoundException,
    ProcessorException,
    ValidationException,
)
from teachtape.integrations.payment_processor import ProcessorCheckoutSession
from teachtape.models.booking import PaymentStatus
from teachtape.models.listing import ListingType
from teachtape.services.booking_service import BookingService


@pytest.fixture
def service(db):
    return BookingService(db)


class TestMarkPaid:
    def test_pending_becomes_paid(self, service, factory, db):
        listing = factory.listing(factory.coach())
        booking = factory.booking(listing, payment_status=PaymentStatus.PENDING)

        assert service.mark_paid(booking.id, payment_intent_id="pi_123", amount_paid_cents=5000) is True

        db.refresh(booking)
        assert booking.payment_status == "paid"
        assert booking.payment_intent_id == "pi_123"
        assert booking.paid_at is not None
        assert booking.version == 2

    def test_second_confirmation_is_a_no_op(self, service, factory, db):
        listing = factory.listing(factory.coach())
        booking = factory.booking(listing, payment_status=PaymentStatus.PENDING)

        assert service.mark_paid(booking.id, payment_intent_id="pi_123") is True
        assert service.mark_paid(booking.id, payment_intent_id="pi_123") is False

        db.refresh(booking)
        assert booking.version == 2

    def test_backfills_missing_payment_intent(self, service, factory, db):
        listing = factory.listing(factory.coach())
        booking = factory.booking(listing, payment_intent_id=None)

        assert service.mark_paid(booking.id, payment_intent_id="pi_late") is False
        db.refresh(booking)
        assert booking.payment_intent_id == "pi_late"

    def test_cancelled_booking_conflicts(self, service, factory):
        listing = factory.listing(factory.coach())
        booking = factory.booking(listing, payment_status=PaymentStatus.CANCELLED)

        with pytest.raises(ConflictException) as exc_info:
            service.mark_paid(booking.id)
        assert exc_info.value.code == "INVALID_PAYMENT_TRANSITION"

    def test_unknown_booking(self, service):
        with pytest.raises(NotFoundException):
            service.mark_paid("01HZZZZZZZZZZZZZZZZZZZZZZZ")


class TestCompleteSession:
    def test_coach_completes_live_lesson(self, service, factory):
        coach = factory.coach()
        booking = factory.booking(factory.listing(coach))

        completed = service.complete_session(booking.id, coach.profile_id)

        assert completed.payment_status == "completed"
        assert completed.completed_at is not None

    def test_twice_conflicts(self, service, factory):
        coach = factory.coach()
        booking = factory.booking(factory.listing(coach))
        service.complete_session(booking.id, coach.profile_id)

        with pytest.raises(ConflictException) as exc_info:
            service.complete_session(booking.id, coach.profile_id)
        assert exc_info.value.code == "BOOKING_ALREADY_COMPLETED"

    def test_other_coach_sees_not_found(self, service, factory):
        booking = factory.booking(factory.listing(factory.coach()))
        stranger = factory.coach()

        with pytest.raises(NotFoundException):
            service.complete_session(booking.id, stranger.profile_id)

    def test_unpaid_lesson_cannot_complete(self, service, factory):
        coach = factory.coach()
        booking = factory.booking(factory.listing(coach), payment_status=PaymentStatus.PENDING)

        with pytest.raises(ConflictException):
            service.complete_session(booking.id, coach.profile_id)

    def test_film_review_rejected(self, service, factory):
        coach = factory.coach()
        booking = factory.paid_film_review(coach)

        with pytest.raises(ValidationException) as exc_info:
            service.complete_session(booking.id, coach.profile_id)
        assert exc_info.value.code == "NOT_A_LIVE_LESSON"


class TestCancellation:
    def test_cancel_pending(self, service, factory, db):
        booking = factory.booking(factory.listing(factory.coach()), payment_status=PaymentStatus.PENDING)

        assert service.cancel_pending(booking.id) is True
        db.refresh(booking)
        assert booking.payment_status == "cancelled"
        assert booking.cancelled_at is not None

    def test_paid_booking_is_left_alone(self, service, factory, db):
        booking = factory.booking(factory.listing(factory.coach()))

        assert service.cancel_pending(booking.id) is False
        db.refresh(booking)
        assert booking.payment_status == "paid"

    def test_cancel_abandoned_only_touches_old_pending(self, service, factory, db):
        listing = factory.listing(factory.coach())
        now = datetime.now(timezone.utc)
        old = factory.booking(
            listing, payment_status=PaymentStatus.PENDING, created_at=now - timedelta(days=2)
        )
        fresh = factory.booking(listing, payment_status=PaymentStatus.PENDING)
        paid = factory.booking(listing, created_at=now - timedelta(days=2))

        assert service.cancel_abandoned(older_than=timedelta(hours=24), now=now) == 1

        for booking in (old, fresh, paid):
            db.refresh(booking)
        assert old.payment_status == "cancelled"
        assert fresh.payment_status == "pending"
        assert paid.payment_status == "paid"


class TestAbandonedCheckoutSessions:
    @pytest.fixture
    def swept(self, db, processor):
        return BookingService(db, processor)

    @staticmethod
    def _abandoned(factory, processor, session_id="cs_abandoned_1"):
        booking = factory.booking(
            factory.listing(factory.coach()),
            payment_status=PaymentStatus.PENDING,
            processor_session_id=session_id,
            created_at=datetime.now(timezone.utc) - timedelta(days=2),
        )
        processor.sessions[session_id] = ProcessorCheckoutSession(
            id=session_id,
            url=f"https://checkout.example.test/pay/{session_id}",
            status="open",
            payment_status="unpaid",
            client_reference_id=booking.id,
            amount_total=booking.amount_paid_cents,
        )
        return booking

    def test_open_session_is_expired_before_cancelling(self, swept, factory, processor, db):
        booking = self._abandoned(factory, processor)

        assert swept.cancel_abandoned(older_than=timedelta(hours=24)) == 1

        assert processor.sessions["cs_abandoned_1"].status == "expired"
        db.refresh(booking)
        assert booking.payment_status == "cancelled"

    def test_session_paid_meanwhile_marks_booking_paid(self, swept, factory, processor, db):
        booking = self._abandoned(factory, processor)
        session = processor.complete_session("cs_abandoned_1")

        assert swept.cancel_abandoned(older_than=timedelta(hours=24)) == 0

        db.refresh(booking)
        assert booking.payment_status == "paid"
        assert booking.payment_intent_id == session.payment_intent_id

    def test_unreachable_processor_leaves_booking_for_next_sweep(self, swept, factory, processor, db):
        booking = self._abandoned(factory, processor)
        processor.fail_next("expire_checkout_session", ProcessorException("timeout", retryable=True))
        processor.fail_next("retrieve_checkout_session", ProcessorException("timeout", retryable=True))

        assert swept.cancel_abandoned(older_than=timedelta(hours=24)) == 0

        db.refresh(booking)
        assert booking.payment_status == "pending"

    def test_session_unknown_to_processor_is_cancelled(self, swept, factory, db):
        booking = factory.booking(
            factory.listing(factory.coach()),
            payment_status=PaymentStatus.PENDING,
            processor_session_id="cs_gone",
            created_at=datetime.now(timezone.utc) - timedelta(days=2),
        )

        assert swept.cancel_abandoned(older_than=timedelta(hours=24)) == 1
        db.refresh(booking)
        assert booking.payment_status == "cancelled"


class TestBookingStatus:
    def test_buyer_and_coach_views(self, service, factory):
        coach = factory.coach()
        buyer = factory.profile()
        booking = factory.booking(factory.listing(coach, listing_type=ListingType.FILM_REVIEW), buyer=buyer)

        buyer_view = service.get_booking_status(booking.id, buyer.id)
        coach_view = service.get_booking_status(booking.id, coach.profile_id)

        assert buyer_view.viewer_role == "buyer"
        assert coach_view.viewer_role == "coach"
        assert buyer_view.review_status == "pending_acceptance"

    def test_guest_purchase_matched_by_email(self, service, factory):
        booking = factory.booking(factory.listing(factory.coach()), buyer_email="guest@example.com")
        later_account = factory.profile(email="Guest@Example.com")

        view = service.get_booking_status(booking.id, later_account.id)
        assert view.viewer_role == "buyer"

    def test_stranger_sees_not_found(self, service, factory):
        booking = factory.booking(factory.listing(factory.coach()))
        stranger = factory.profile()

        with pytest.raises(NotFoundException):
            service.get_booking_status(booking.id, stranger.id)
