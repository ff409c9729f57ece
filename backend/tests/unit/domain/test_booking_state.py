import pytest

from teachtape.core.exceptions import ConflictException
from teachtape.domain.booking_state import (
    can_transition_payment,
    can_transition_review,
    ensure_payment_transition,
    ensure_review_transition,
    is_terminal_payment,
    is_terminal_review,
)
from teachtape.models.booking import PaymentStatus, ReviewStatus


class TestPaymentAxis:
    @pytest.mark.parametrize(
        "current,target",
        [
            (PaymentStatus.PENDING, PaymentStatus.PAID),
            (PaymentStatus.PENDING, PaymentStatus.CANCELLED),
            (PaymentStatus.PAID, PaymentStatus.COMPLETED),
        ],
    )
    def test_forward_moves_allowed(self, current, target):
        assert can_transition_payment(current, target)
        ensure_payment_transition(current.value, target.value)

    @pytest.mark.parametrize(
        "current,target",
        [
            (PaymentStatus.PAID, PaymentStatus.PENDING),
            (PaymentStatus.PAID, PaymentStatus.PAID),
            (PaymentStatus.PAID, PaymentStatus.CANCELLED),
            (PaymentStatus.COMPLETED, PaymentStatus.PAID),
            (PaymentStatus.CANCELLED, PaymentStatus.PAID),
            (PaymentStatus.PENDING, PaymentStatus.COMPLETED),
        ],
    )
    def test_other_moves_conflict(self, current, target):
        with pytest.raises(ConflictException) as exc_info:
            ensure_payment_transition(current, target, booking_id="b1")
        assert exc_info.value.code == "INVALID_PAYMENT_TRANSITION"
        assert exc_info.value.details["booking_id"] == "b1"

    def test_terminal_states(self):
        assert is_terminal_payment("completed")
        assert is_terminal_payment("cancelled")
        assert not is_terminal_payment("paid")


class TestReviewAxis:
    def test_accept_and_decline_only_from_pending_acceptance(self):
        assert can_transition_review("pending_acceptance", "accepted")
        assert can_transition_review("pending_acceptance", "declined")
        assert not can_transition_review("accepted", "declined")
        assert not can_transition_review("declined", "accepted")

    def test_accepted_ends_completed_or_expired(self):
        assert can_transition_review(ReviewStatus.ACCEPTED, ReviewStatus.COMPLETED)
        assert can_transition_review(ReviewStatus.ACCEPTED, ReviewStatus.EXPIRED)
        assert not can_transition_review(ReviewStatus.EXPIRED, ReviewStatus.COMPLETED)

    def test_live_lessons_have_no_review_axis(self):
        assert not can_transition_review(None, ReviewStatus.ACCEPTED)
        with pytest.raises(ConflictException) as exc_info:
            ensure_review_transition(None, ReviewStatus.ACCEPTED)
        assert exc_info.value.code == "INVALID_REVIEW_TRANSITION"

    def test_terminal_states(self):
        for status in ("declined", "completed", "expired"):
            assert is_terminal_review(status)
        assert not is_terminal_review("accepted")
