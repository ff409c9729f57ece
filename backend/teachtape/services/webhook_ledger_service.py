"""Service for recording inbound webhook deliveries in the dedup ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from teachtape.models.webhook_event import WebhookEvent, WebhookStatus
from teachtape.repositories.factory import RepositoryFactory
from teachtape.services.base import BaseService

_MAX_ERROR_LENGTH = 2000


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class WebhookLedgerService(BaseService):
    """Business logic for webhook ledger entries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.repository = RepositoryFactory.create_webhook_event_repository(db)

    @BaseService.measure_operation("webhook_ledger.record")
    def record(
        self,
        *,
        source: str,
        source_id: str,
        event_type: str,
        occurred_at: datetime,
        payload: dict[str, Any],
    ) -> tuple[WebhookEvent, bool]:
        """
        Record a delivery and commit.

        Returns (event, created). created=False means this exact event was
        already recorded and must not be applied again.
        """
        if occurred_at.tzinfo is None:
            occurred_at = occurred_at.replace(tzinfo=timezone.utc)
        with self.transaction():
            event, created = self.repository.insert_if_absent(
                source=source,
                source_id=source_id,
                event_type=event_type or "unknown",
                occurred_at=occurred_at,
                payload=payload,
            )
        return event, created

    def _finish(self, event: WebhookEvent, status: WebhookStatus, **fields: Any) -> WebhookEvent:
        with self.transaction():
            event.status = status.value
            event.processed_at = _now_utc()
            for name, value in fields.items():
                setattr(event, name, value)
            self.repository.flush()
        return event

    @BaseService.measure_operation("webhook_ledger.mark_processed")
    def mark_processed(
        self,
        event: WebhookEvent,
        *,
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
    ) -> WebhookEvent:
        return self._finish(
            event,
            WebhookStatus.PROCESSED,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
        )

    @BaseService.measure_operation("webhook_ledger.mark_ignored")
    def mark_ignored(self, event: WebhookEvent, *, reason: str | None = None) -> WebhookEvent:
        return self._finish(event, WebhookStatus.IGNORED, processing_error=reason)

    @BaseService.measure_operation("webhook_ledger.mark_failed")
    def mark_failed(self, event: WebhookEvent, *, error: str) -> WebhookEvent:
        """Mark webhook as failed."""
        return self._finish(event, WebhookStatus.FAILED, processing_error=error[:_MAX_ERROR_LENGTH])

    @BaseService.measure_operation("webhook_ledger.list_events")
    def list_events(
        self, *, source: str | None = None, status: str | None = None, limit: int = 50
    ) -> list[WebhookEvent]:
        return self.repository.list_events(source=source, status=status, limit=limit)
