from unittest.mock import patch

import pytest

from teachtape.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from teachtape.models.booking import PaymentStatus
from teachtape.models.listing import ListingType
from teachtape.models.review import Review
from teachtape.services.review_service import ReviewService


@pytest.fixture
def service(db):
    return ReviewService(db)


@pytest.fixture
def completed_lesson(factory):
    buyer = factory.profile()
    booking = factory.booking(
        factory.listing(factory.coach()), buyer=buyer, payment_status=PaymentStatus.COMPLETED
    )
    return booking, buyer


class TestCreateReview:
    def test_buyer_reviews_completed_lesson(self, service, completed_lesson):
        booking, buyer = completed_lesson

        review = service.create_review(booking.id, buyer.id, 5, "  Great session  ")

        assert review.rating == 5
        assert review.comment == "Great session"
        assert review.coach_id == booking.coach_id

    def test_second_review_conflicts(self, service, completed_lesson):
        booking, buyer = completed_lesson
        service.create_review(booking.id, buyer.id, 4)

        with pytest.raises(ConflictException) as exc_info:
            service.create_review(booking.id, buyer.id, 5)
        assert exc_info.value.code == "REVIEW_EXISTS"

    def test_concurrent_duplicate_hits_unique_constraint(self, service, completed_lesson, db):
        booking, buyer = completed_lesson
        service.create_review(booking.id, buyer.id, 4)

        with patch.object(service.review_repository, "get_by_booking_id", return_value=None):
            with pytest.raises(ConflictException) as exc_info:
                service.create_review(booking.id, buyer.id, 5)

        assert exc_info.value.code == "REVIEW_EXISTS"
        assert db.query(Review).filter(Review.booking_id == booking.id).count() == 1

    def test_film_review_not_eligible(self, service, factory):
        buyer = factory.profile()
        booking = factory.paid_film_review(buyer=buyer, payment_status=PaymentStatus.COMPLETED)

        with pytest.raises(ValidationException) as exc_info:
            service.create_review(booking.id, buyer.id, 5)
        assert exc_info.value.code == "REVIEW_NOT_ALLOWED_FOR_TYPE"

    def test_only_the_buyer(self, service, completed_lesson, factory):
        booking, _ = completed_lesson
        stranger = factory.profile()

        with pytest.raises(ForbiddenException):
            service.create_review(booking.id, stranger.id, 5)

    def test_guest_buyer_matched_by_email(self, service, factory):
        booking = factory.booking(
            factory.listing(factory.coach()),
            buyer_email="guest@example.com",
            payment_status=PaymentStatus.COMPLETED,
        )
        account = factory.profile(email="guest@example.com")

        review = service.create_review(booking.id, account.id, 3)
        assert review.rater_profile_id == account.id

    def test_lesson_must_be_completed(self, service, factory):
        buyer = factory.profile()
        booking = factory.booking(factory.listing(factory.coach()), buyer=buyer)

        with pytest.raises(ValidationException) as exc_info:
            service.create_review(booking.id, buyer.id, 5)
        assert exc_info.value.code == "BOOKING_NOT_COMPLETED"

    @pytest.mark.parametrize("rating", [0, 6, True])
    def test_rating_bounds(self, service, completed_lesson, rating):
        booking, buyer = completed_lesson
        with pytest.raises(ValidationException) as exc_info:
            service.create_review(booking.id, buyer.id, rating)
        assert exc_info.value.code == "INVALID_RATING"

    def test_comment_length(self, service, completed_lesson):
        booking, buyer = completed_lesson
        with pytest.raises(ValidationException) as exc_info:
            service.create_review(booking.id, buyer.id, 5, "x" * 501)
        assert exc_info.value.code == "COMMENT_TOO_LONG"

    def test_unknown_booking(self, service, factory):
        with pytest.raises(NotFoundException):
            service.create_review("01HZZZZZZZZZZZZZZZZZZZZZZZ", factory.profile().id, 5)


class TestListForCoach:
    def test_lists_reviews(self, service, completed_lesson):
        booking, buyer = completed_lesson
        service.create_review(booking.id, buyer.id, 5)

        reviews = service.list_for_coach(booking.coach_id)
        assert [r.booking_id for r in reviews] == [booking.id]
