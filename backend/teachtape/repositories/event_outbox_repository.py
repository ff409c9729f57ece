# backend/teachtape/repositories/event_outbox_repository.py
"""
Outbox repository.

Publishing is insert-or-ignore on the idempotency key; delivery bookkeeping
is done with plain UPDATEs so a worker never has to hold the ORM row.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.exceptions import RepositoryException
from ..models.event_outbox import EventOutbox, EventOutboxStatus
from .base_repository import BaseRepository

_MAX_ERROR_LENGTH = 1000


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxRepository(BaseRepository[EventOutbox]):
    def __init__(self, db: Session):
        super().__init__(db, EventOutbox)

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> tuple[EventOutbox, bool]:
        """
        Publish a side effect unless its idempotency key is already taken.

        Returns (row, created). An existing row is returned untouched.
        """
        key = idempotency_key or f"{event_type}:{aggregate_id}"
        row_id = str(ulid.ULID())
        values = {
            "id": row_id,
            "event_type": event_type,
            "aggregate_id": aggregate_id,
            "idempotency_key": key,
            "payload": payload or {},
            "status": EventOutboxStatus.PENDING.value,
            "attempt_count": 0,
            "next_attempt_at": _now_utc(),
        }

        try:
            if self.dialect_name == "postgresql":
                stmt = (
                    pg_insert(EventOutbox)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["idempotency_key"])
                    .returning(EventOutbox.id)
                )
                created = self.db.execute(stmt).scalar_one_or_none() is not None
            else:
                stmt = insert(EventOutbox).values(**values).prefix_with("OR IGNORE", dialect="sqlite")
                created = bool(self.db.execute(stmt).rowcount)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to enqueue %s for %s: %s", event_type, aggregate_id, exc)
            raise RepositoryException(f"Failed to enqueue outbox event: {exc}") from exc

        if created:
            row = self.db.get(EventOutbox, row_id)
        else:
            row = self.get_by_key(key)
        if row is None:
            raise RepositoryException(f"Outbox row for {key} could not be loaded")
        return row, created

    def get_by_key(self, idempotency_key: str) -> Optional[EventOutbox]:
        return self.find_one_by(idempotency_key=idempotency_key)

    def fetch_due(self, limit: int = 200, now: Optional[datetime] = None) -> list[EventOutbox]:
        """Pending rows whose next attempt time has passed, oldest first."""
        stmt = (
            select(EventOutbox)
            .where(
                EventOutbox.status == EventOutboxStatus.PENDING.value,
                EventOutbox.next_attempt_at <= (now or _now_utc()),
            )
            .order_by(EventOutbox.next_attempt_at.asc(), EventOutbox.id.asc())
            .limit(limit)
        )
        if self.dialect_name == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise RepositoryException(f"Failed to fetch due outbox rows: {exc}") from exc

    def claim_for_delivery(self, event_id: str) -> Optional[EventOutbox]:
        """Load a row for delivery, skipping it if another worker holds the lock."""
        if self.dialect_name != "postgresql":
            return self.db.get(EventOutbox, event_id)
        stmt = select(EventOutbox).where(EventOutbox.id == event_id).with_for_update(skip_locked=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def record_sent(self, event_id: str, attempt_count: int) -> int:
        now = _now_utc()
        stmt = (
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=EventOutboxStatus.SENT.value,
                attempt_count=attempt_count,
                last_error=None,
                sent_at=now,
                updated_at=now,
            )
        )
        rows = self._execute_update(stmt)
        self._expire_cached(event_id)
        return rows

    def record_failure(
        self,
        event_id: str,
        *,
        attempt_count: int,
        retry_in_seconds: Optional[int],
        error: str,
    ) -> int:
        """Store a failed attempt; ``retry_in_seconds=None`` gives up on the row."""
        now = _now_utc()
        values: dict[str, Any] = {
            "attempt_count": attempt_count,
            "last_error": error[:_MAX_ERROR_LENGTH],
            "updated_at": now,
        }
        if retry_in_seconds is None:
            values["status"] = EventOutboxStatus.FAILED.value
        else:
            values["next_attempt_at"] = now + timedelta(seconds=max(retry_in_seconds, 1))
        rows = self._execute_update(update(EventOutbox).where(EventOutbox.id == event_id).values(**values))
        self._expire_cached(event_id)
        return rows
