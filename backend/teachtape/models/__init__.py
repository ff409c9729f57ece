"""
Database models for TeachTape.

Importing this package registers every table on ``Base.metadata``.
"""

from .booking import Booking, BookingType, PaymentStatus, RefundStatus, ReviewStatus
from .conversation import Conversation, ConversationParticipant, Message, MessageKind
from .event_outbox import EventOutbox, EventOutboxStatus
from .listing import Listing, ListingType
from .profile import Coach, Profile, ProfileRole
from .review import Review
from .webhook_event import WebhookEvent, WebhookSource, WebhookStatus

__all__ = [
    "Booking",
    "BookingType",
    "Coach",
    "Conversation",
    "ConversationParticipant",
    "EventOutbox",
    "EventOutboxStatus",
    "Listing",
    "ListingType",
    "Message",
    "MessageKind",
    "PaymentStatus",
    "Profile",
    "ProfileRole",
    "RefundStatus",
    "Review",
    "ReviewStatus",
    "WebhookEvent",
    "WebhookSource",
    "WebhookStatus",
]
