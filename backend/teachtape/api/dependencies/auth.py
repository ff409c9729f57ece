# backend/teachtape/api/dependencies/auth.py
"""
Caller identity dependencies.

Authentication happens at the gateway, which forwards the authenticated
profile id in ``X-Profile-Id``. These dependencies only resolve that id to
a profile and check the coach role.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
import ulid

from ...models.profile import Profile
from ...repositories.profile_repository import ProfileRepository
from .database import get_db

logger = logging.getLogger(__name__)

PROFILE_HEADER = "X-Profile-Id"


def _is_profile_id(value: str) -> bool:
    try:
        ulid.ULID.from_str(value)
    except (ValueError, TypeError):
        return False
    return True


def get_current_profile(
    x_profile_id: Optional[str] = Header(default=None, alias=PROFILE_HEADER),
    db: Session = Depends(get_db),
) -> Profile:
    if not x_profile_id or not _is_profile_id(x_profile_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    profile = ProfileRepository(db).get_by_id(x_profile_id)
    if profile is None:
        logger.info("Unknown profile id on request: %s", x_profile_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return profile


def get_current_profile_optional(
    x_profile_id: Optional[str] = Header(default=None, alias=PROFILE_HEADER),
    db: Session = Depends(get_db),
) -> Optional[Profile]:
    """Resolve the caller when present; guest checkout has no profile."""
    if not x_profile_id:
        return None
    return get_current_profile(x_profile_id, db)


def get_current_coach(profile: Profile = Depends(get_current_profile)) -> Profile:
    if not profile.is_coach:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Coach access required",
        )
    return profile
