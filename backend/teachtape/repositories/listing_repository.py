# backend/teachtape/repositories/listing_repository.py
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.listing import Listing
from .base_repository import BaseRepository


class ListingRepository(BaseRepository[Listing]):
    def __init__(self, db: Session):
        super().__init__(db, Listing)

    def get_active(self, listing_id: str) -> Optional[Listing]:
        return self.find_one_by(id=listing_id, is_active=True)

    def list_for_coach(self, coach_id: str, include_inactive: bool = False) -> List[Listing]:
        query = self._build_query().filter(Listing.coach_id == coach_id)
        if not include_inactive:
            query = query.filter(Listing.is_active.is_(True))
        return self._execute_query(query.order_by(Listing.created_at.desc()))
