# backend/teachtape/models/event_outbox.py
"""
Side-effect outbox.

A row is written after a booking transition commits and is delivered later
by the Celery outbox worker. The idempotency key is unique, so publishing
the same side effect twice leaves a single row.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from teachtape.database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class EventOutbox(Base):
    __tablename__ = "event_outbox"

    __table_args__ = (
        sa.UniqueConstraint("idempotency_key", name="uq_event_outbox_idempotency_key"),
        sa.Index("ix_event_outbox_due", "status", "next_attempt_at"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    # Booking id for film review emails, coach id for account cleanup
    aggregate_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EventOutboxStatus.PENDING.value
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc
    )

    @property
    def is_pending(self) -> bool:
        return self.status == EventOutboxStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<EventOutbox {self.id} {self.event_type} {self.status} attempts={self.attempt_count}>"
