# backend/teachtape/repositories/factory.py
"""
Repository Factory for TeachTape

Centralizes repository creation so services share one construction path.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .conversation_repository import ConversationRepository
    from .event_outbox_repository import EventOutboxRepository
    from .listing_repository import ListingRepository
    from .profile_repository import CoachRepository, ProfileRepository
    from .review_repository import ReviewRepository
    from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_coach_repository(db: Session) -> "CoachRepository":
        from .profile_repository import CoachRepository

        return CoachRepository(db)

    @staticmethod
    def create_profile_repository(db: Session) -> "ProfileRepository":
        from .profile_repository import ProfileRepository

        return ProfileRepository(db)

    @staticmethod
    def create_listing_repository(db: Session) -> "ListingRepository":
        from .listing_repository import ListingRepository

        return ListingRepository(db)

    @staticmethod
    def create_review_repository(db: Session) -> "ReviewRepository":
        from .review_repository import ReviewRepository

        return ReviewRepository(db)

    @staticmethod
    def create_conversation_repository(db: Session) -> "ConversationRepository":
        from .conversation_repository import ConversationRepository

        return ConversationRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> "WebhookEventRepository":
        from .webhook_event_repository import WebhookEventRepository

        return WebhookEventRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)
