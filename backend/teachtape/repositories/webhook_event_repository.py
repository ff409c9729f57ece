"""Repository helpers for the webhook event ledger."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Optional, cast

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from teachtape.core.exceptions import RepositoryException
from teachtape.models.webhook_event import WebhookEvent, WebhookStatus
from teachtape.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook ledger queries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def get_by_dedup_key(
        self, source: str, source_id: str, event_type: str, occurred_at: datetime
    ) -> Optional[WebhookEvent]:
        stmt = select(WebhookEvent).where(
            WebhookEvent.source == source,
            WebhookEvent.source_id == source_id,
            WebhookEvent.event_type == event_type,
            WebhookEvent.occurred_at == occurred_at,
        )
        try:
            return cast(Optional[WebhookEvent], self.db.execute(stmt).scalar_one_or_none())
        except SQLAlchemyError as exc:
            raise RepositoryException(f"Failed to load webhook event: {exc}") from exc

    def insert_if_absent(
        self,
        *,
        source: str,
        source_id: str,
        event_type: str,
        occurred_at: datetime,
        payload: dict[str, Any],
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
    ) -> tuple[WebhookEvent, bool]:
        """
        Insert a ledger row unless the dedup key already exists.

        Returns (row, created). Concurrent duplicates resolve at the unique
        constraint, so exactly one caller sees created=True.
        """
        event_id = str(ulid.ULID())
        values = dict(
            id=event_id,
            source=source,
            source_id=source_id,
            event_type=event_type,
            occurred_at=occurred_at,
            payload=payload,
            status=WebhookStatus.RECEIVED.value,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            received_at=_now_utc(),
        )
        dialect = self.dialect_name
        try:
            if dialect == "postgresql":
                stmt = (
                    pg_insert(WebhookEvent)
                    .values(**values)
                    .on_conflict_do_nothing(constraint="uq_webhook_events_dedup_key")
                    .returning(WebhookEvent.id)
                )
                inserted = self.db.execute(stmt).scalar_one_or_none() is not None
            else:
                stmt = insert(WebhookEvent).values(**values)
                if dialect == "sqlite":
                    stmt = stmt.prefix_with("OR IGNORE")
                result = self.db.execute(stmt)
                inserted = bool(getattr(result, "rowcount", 0))
        except SQLAlchemyError as exc:
            self.logger.error("Failed to record webhook event %s/%s: %s", source, source_id, exc)
            raise RepositoryException(f"Failed to record webhook event: {exc}") from exc

        if inserted:
            self.db.flush()
            row = self.db.get(WebhookEvent, event_id)
            if row is None:
                raise RepositoryException("Inserted webhook event could not be reloaded")
            return row, True

        existing = self.get_by_dedup_key(source, source_id, event_type, occurred_at)
        if existing is None:
            raise RepositoryException("Webhook event not found after dedup conflict")
        return existing, False

    def list_events(
        self,
        *,
        source: str | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> list[WebhookEvent]:
        query = self._build_query()
        if source:
            query = query.filter(WebhookEvent.source == source)
        if status:
            query = query.filter(WebhookEvent.status == status)
        query = query.order_by(WebhookEvent.received_at.desc()).limit(limit)
        return self._execute_query(query)
