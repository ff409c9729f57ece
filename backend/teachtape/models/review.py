# backend/teachtape/models/review.py
"""
Coach reviews left by athletes.

One review per booking (DB unique constraint). Hidden reviews are excluded
from the public coach feed.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
import ulid

from ..database import Base


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    coach_id = Column(String(26), ForeignKey("coaches.id", ondelete="CASCADE"), nullable=False, index=True)
    rater_profile_id = Column(String(26), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    is_hidden = Column(Boolean, nullable=False, default=False)
    hidden_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        CheckConstraint(
            "(comment IS NULL) OR (length(comment) <= 500)",
            name="ck_reviews_comment_length",
        ),
        Index("idx_reviews_coach_created", "coach_id", "created_at"),
    )
