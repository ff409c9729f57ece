# backend/teachtape/repositories/profile_repository.py
"""Profile and coach lookups plus the coach payment-account writes."""

import logging
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..models.profile import Coach, Profile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ProfileRepository(BaseRepository[Profile]):
    def __init__(self, db: Session):
        super().__init__(db, Profile)

    def get_by_email(self, email: str) -> Optional[Profile]:
        if not email:
            return None
        normalized = email.strip().lower()
        query = self._build_query().filter(func.lower(Profile.email) == normalized)
        results = self._execute_query(query.limit(1))
        return results[0] if results else None


class CoachRepository(BaseRepository[Coach]):
    """
    Coach data access.

    ``set_payment_account_if_absent`` is the single write path for
    payment_account_id; it only succeeds while the column is still NULL.
    """

    def __init__(self, db: Session):
        super().__init__(db, Coach)

    def get_by_profile_id(self, profile_id: str) -> Optional[Coach]:
        return self.find_one_by(profile_id=profile_id)

    def get_by_payment_account_id(self, account_id: str) -> Optional[Coach]:
        return self.find_one_by(payment_account_id=account_id)

    def set_payment_account_if_absent(self, coach_id: str, account_id: str) -> int:
        stmt = (
            update(Coach)
            .where(Coach.id == coach_id, Coach.payment_account_id.is_(None))
            .values(payment_account_id=account_id)
        )
        rows = self._execute_update(stmt)
        self._expire_cached(coach_id)
        return rows

    def update_readiness(
        self, account_id: str, *, charges_enabled: bool, details_submitted: bool
    ) -> int:
        """Refresh the cached processor readiness flags for the owning coach."""
        stmt = (
            update(Coach)
            .where(Coach.payment_account_id == account_id)
            .values(charges_enabled=charges_enabled, details_submitted=details_submitted)
        )
        rows = self._execute_update(stmt)
        coach = self.get_by_payment_account_id(account_id)
        if coach is not None:
            self.db.expire(coach)
        return rows
