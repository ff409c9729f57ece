from teachtape.models.booking import PaymentStatus, RefundStatus, ReviewStatus
from teachtape.repositories.booking_repository import BookingRepository


class TestConditionalTransitions:
    def test_payment_transition_applies_once(self, db, factory):
        booking = factory.booking(factory.listing(factory.coach()), payment_status=PaymentStatus.PENDING)
        repo = BookingRepository(db)

        assert repo.transition_payment_status(booking.id, PaymentStatus.PENDING, PaymentStatus.PAID) == 1
        assert repo.transition_payment_status(booking.id, PaymentStatus.PENDING, PaymentStatus.PAID) == 0
        db.commit()

        assert booking.payment_status == "paid"
        assert booking.version == 2

    def test_review_transition_requires_payment_status(self, db, factory):
        booking = factory.paid_film_review(payment_status=PaymentStatus.PENDING)
        repo = BookingRepository(db)

        rows = repo.transition_review_status(
            booking.id,
            ReviewStatus.PENDING_ACCEPTANCE,
            ReviewStatus.ACCEPTED,
            require_payment_status=PaymentStatus.PAID,
        )

        assert rows == 0
        assert booking.review_status == "pending_acceptance"

    def test_refund_claimed_once(self, db, factory):
        booking = factory.paid_film_review()
        repo = BookingRepository(db)

        assert repo.claim_refund(booking.id) == 1
        assert repo.claim_refund(booking.id) == 0
        assert repo.record_refund_outcome(booking.id, RefundStatus.SUCCEEDED, refund_id="re_1") == 1
        db.commit()

        assert booking.refund_status == "succeeded"
        assert booking.refund_id == "re_1"

    def test_conversation_linked_once(self, db, factory):
        booking = factory.booking(factory.listing(factory.coach()))
        repo = BookingRepository(db)

        assert repo.link_conversation(booking.id, "c1") == 1
        assert repo.link_conversation(booking.id, "c2") == 0
        assert booking.conversation_id == "c1"


class TestLookups:
    def test_processor_identifiers(self, db, factory):
        booking = factory.booking(
            factory.listing(factory.coach()),
            processor_session_id="cs_lookup",
            payment_intent_id="pi_lookup",
            meeting_id="m1",
        )
        repo = BookingRepository(db)

        assert repo.get_by_processor_session_id("cs_lookup").id == booking.id
        assert repo.get_by_payment_intent_id("pi_lookup").id == booking.id
        assert repo.get_by_meeting_id("m1").id == booking.id
