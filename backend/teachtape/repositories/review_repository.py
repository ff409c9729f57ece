# backend/teachtape/repositories/review_repository.py
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.review import Review
from .base_repository import BaseRepository


class ReviewRepository(BaseRepository[Review]):
    def __init__(self, db: Session):
        super().__init__(db, Review)

    def get_by_booking_id(self, booking_id: str) -> Optional[Review]:
        return self.find_one_by(booking_id=booking_id)

    def list_visible_for_coach(self, coach_id: str, limit: int = 50, offset: int = 0) -> List[Review]:
        query = (
            self._build_query()
            .filter(Review.coach_id == coach_id, Review.is_hidden.is_(False))
            .order_by(Review.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return self._execute_query(query)
