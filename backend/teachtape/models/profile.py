# backend/teachtape/models/profile.py
"""
Profile and coach models.

A Profile stands in for the external auth identity (the gateway forwards its
id). Coaches are profiles that sell listings and receive payouts through a
connected payment account.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
import ulid

from ..database import Base


class ProfileRole(str, Enum):
    ATHLETE = "athlete"
    COACH = "coach"
    ADMIN = "admin"


class Profile(Base):
    """Authenticated platform user."""

    __tablename__ = "profiles"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=ProfileRole.ATHLETE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    coach = relationship("Coach", uselist=False, back_populates="profile")

    def __init__(self, **kwargs):
        email = kwargs.get("email")
        if email:
            kwargs["email"] = email.strip().lower()
        super().__init__(**kwargs)

    @property
    def is_coach(self) -> bool:
        return self.role == ProfileRole.COACH.value

    def __repr__(self) -> str:
        return f"<Profile {self.id} {self.role}>"


class Coach(Base):
    """
    Coach record holding the connected payment account.

    payment_account_id is written at most once, through a conditional update
    guarded on IS NULL. charges_enabled/details_submitted cache the processor's
    view and are refreshed on status reads and account.updated webhooks.
    """

    __tablename__ = "coaches"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    profile_id = Column(String(26), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True)
    payment_account_id = Column(String(255), nullable=True, unique=True)
    charges_enabled = Column(Boolean, nullable=False, default=False)
    details_submitted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=True,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    profile = relationship("Profile", back_populates="coach")

    @property
    def can_accept_payments(self) -> bool:
        return bool(self.payment_account_id) and bool(self.charges_enabled)
