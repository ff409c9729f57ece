# backend/teachtape/services/conversation_service.py
"""Booking conversation bootstrap."""

from dataclasses import dataclass
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.constants import SYSTEM_WELCOME_MESSAGE
from ..core.exceptions import BuyerNotRegisteredException, NotFoundException, ServiceException
from ..models.profile import Profile
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnsureConversationResult:
    conversation_id: str
    created: bool


class ConversationService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.coach_repository = RepositoryFactory.create_coach_repository(db)
        self.profile_repository = RepositoryFactory.create_profile_repository(db)
        self.conversation_repository = RepositoryFactory.create_conversation_repository(db)

    @BaseService.measure_operation("ensure_conversation")
    def ensure_conversation(self, booking_id: str, requester_profile_id: str) -> EnsureConversationResult:
        """
        Return the booking's conversation, creating it on first use.

        Raises:
            NotFoundException: booking missing or requester is not a party to it
            BuyerNotRegisteredException: the buyer checked out as a guest and has no account
        """
        booking = self.booking_repository.get_by_id(booking_id)
        requester = self.profile_repository.get_by_id(requester_profile_id)
        if booking is None or requester is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        coach = self.coach_repository.get_by_id(booking.coach_id)
        is_coach = coach is not None and coach.profile_id == requester.id
        if not is_coach and not booking.is_buyer(requester.id, requester.email):
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")

        if booking.conversation_id:
            return EnsureConversationResult(conversation_id=booking.conversation_id, created=False)

        buyer: Profile | None = None
        if booking.buyer_profile_id:
            buyer = self.profile_repository.get_by_id(booking.buyer_profile_id)
        if buyer is None:
            buyer = self.profile_repository.get_by_email(booking.buyer_email)
        if buyer is None:
            raise BuyerNotRegisteredException(booking_id)

        try:
            conversation = self.conversation_repository.create_with_participants(
                booking_id=booking.id,
                coach_profile_id=coach.profile_id,
                buyer_profile_id=buyer.id,
                system_message=SYSTEM_WELCOME_MESSAGE,
            )
            linked = self.booking_repository.link_conversation(booking.id, conversation.id)
            if not linked:
                # Another request linked first; discard ours with the rollback
                self.db.rollback()
                winner = self.booking_repository.get_by_id(booking_id)
                return EnsureConversationResult(conversation_id=winner.conversation_id, created=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.logger.error("Failed to create conversation for booking %s: %s", booking_id, exc)
            raise ServiceException(f"Failed to create conversation: {exc}") from exc

        self.logger.info("Conversation %s created for booking %s", conversation.id, booking_id)
        return EnsureConversationResult(conversation_id=conversation.id, created=True)
