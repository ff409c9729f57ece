# backend/teachtape/models/listing.py
"""Coach listings: what an athlete can buy."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
import ulid

from ..core.constants import DEFAULT_TURNAROUND_HOURS
from ..database import Base


class ListingType(str, Enum):
    LIVE_LESSON = "live_lesson"
    FILM_REVIEW = "film_review"


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    coach_id = Column(String(26), ForeignKey("coaches.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    listing_type = Column(String(20), nullable=False, default=ListingType.LIVE_LESSON.value)
    price_cents = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    turnaround_hours = Column(Integer, nullable=False, default=DEFAULT_TURNAROUND_HOURS)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        CheckConstraint("price_cents > 0", name="ck_listings_price_positive"),
        CheckConstraint(
            "listing_type IN ('live_lesson', 'film_review')",
            name="ck_listings_type",
        ),
    )

    @property
    def is_film_review(self) -> bool:
        return self.listing_type == ListingType.FILM_REVIEW.value
