# backend/teachtape/repositories/conversation_repository.py
from typing import Optional

from sqlalchemy.orm import Session

from ..models.conversation import Conversation, ConversationParticipant, Message, MessageKind
from .base_repository import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    def __init__(self, db: Session):
        super().__init__(db, Conversation)

    def create_with_participants(
        self,
        *,
        booking_id: str,
        coach_profile_id: str,
        buyer_profile_id: str,
        system_message: Optional[str] = None,
    ) -> Conversation:
        """Insert the conversation, both participants and an optional system message."""
        conversation = Conversation(booking_id=booking_id)
        conversation.participants = [
            ConversationParticipant(profile_id=coach_profile_id, role="coach"),
            ConversationParticipant(profile_id=buyer_profile_id, role="athlete"),
        ]
        if system_message:
            conversation.messages = [
                Message(sender_profile_id=None, body=system_message, kind=MessageKind.SYSTEM.value)
            ]
        self.db.add(conversation)
        self.db.flush()
        return conversation

    def list_messages(self, conversation_id: str) -> list[Message]:
        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
            .all()
        )
