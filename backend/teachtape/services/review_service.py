# backend/teachtape/services/review_service.py
"""
Review eligibility gate.

Only the buyer of a completed live lesson may rate the coach, once per
booking. Film reviews are rated through their own delivery flow and are not
eligible here.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.constants import MAX_RATING, MAX_REVIEW_COMMENT_LENGTH, MIN_RATING
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    ValidationException,
)
from ..models.booking import PaymentStatus
from ..models.review import Review
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class ReviewService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.profile_repository = RepositoryFactory.create_profile_repository(db)
        self.review_repository = RepositoryFactory.create_review_repository(db)

    @staticmethod
    def _validate_input(rating: int, comment: Optional[str]) -> Optional[str]:
        if not isinstance(rating, int) or isinstance(rating, bool) or not (
            MIN_RATING <= rating <= MAX_RATING
        ):
            raise ValidationException(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}", code="INVALID_RATING"
            )
        if comment is None:
            return None
        comment = comment.strip()
        if len(comment) > MAX_REVIEW_COMMENT_LENGTH:
            raise ValidationException(
                f"Comment must be at most {MAX_REVIEW_COMMENT_LENGTH} characters",
                code="COMMENT_TOO_LONG",
            )
        return comment or None

    @BaseService.measure_operation("create_review")
    def create_review(
        self,
        booking_id: str,
        rater_profile_id: str,
        rating: int,
        comment: Optional[str] = None,
    ) -> Review:
        comment = self._validate_input(rating, comment)

        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        if not booking.is_live_lesson:
            raise ValidationException(
                "Only live lessons can be reviewed", code="REVIEW_NOT_ALLOWED_FOR_TYPE"
            )

        rater = self.profile_repository.get_by_id(rater_profile_id)
        if rater is None or not booking.is_buyer(rater.id, rater.email):
            raise ForbiddenException("Only the athlete who booked can leave a review")

        if booking.payment_status != PaymentStatus.COMPLETED.value:
            raise ValidationException(
                "Reviews open once the session is completed", code="BOOKING_NOT_COMPLETED"
            )

        if self.review_repository.get_by_booking_id(booking_id) is not None:
            raise ConflictException("This booking has already been reviewed", code="REVIEW_EXISTS")

        try:
            review = self.review_repository.create(
                booking_id=booking_id,
                coach_id=booking.coach_id,
                rater_profile_id=rater.id,
                rating=rating,
                comment=comment,
            )
            self.db.commit()
        except RepositoryException as exc:
            # create() already rolled back
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictException(
                    "This booking has already been reviewed", code="REVIEW_EXISTS"
                ) from exc
            raise ServiceException(str(exc)) from exc
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictException(
                "This booking has already been reviewed", code="REVIEW_EXISTS"
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ServiceException(f"Failed to save review: {exc}") from exc

        self.logger.info("Review %s recorded for booking %s", review.id, booking_id)
        return review

    @BaseService.measure_operation("list_coach_reviews")
    def list_for_coach(self, coach_id: str, limit: int = 50, offset: int = 0) -> List[Review]:
        return self.review_repository.list_visible_for_coach(coach_id, limit=limit, offset=offset)
