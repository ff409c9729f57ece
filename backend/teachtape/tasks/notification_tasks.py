# backend/teachtape/tasks/notification_tasks.py
"""
Celery tasks for delivering outbox side effects.

Implements a two-step workflow:
1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` performs delivery with retries and backoff.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from time import monotonic
from typing import Any, Iterator, Optional

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from teachtape.database import SessionLocal
from teachtape.monitoring.prometheus_metrics import PrometheusMetrics
from teachtape.repositories.factory import RepositoryFactory
from teachtape.services.side_effects import SideEffectDispatcher
from teachtape.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(frozen=True)
class DeliveryOutcome:
    event_id: str
    status: str  # sent | retry | failed | missing | skipped
    attempt: int = 0
    backoff_seconds: Optional[int] = None
    error: Optional[Exception] = None


def deliver_outbox_event(
    session: Session,
    event_id: str,
    dispatcher: Optional[SideEffectDispatcher] = None,
) -> DeliveryOutcome:
    """
    Attempt one delivery of an outbox row and record the result on it.

    Delivery errors are recorded, never raised; the caller decides whether
    to reschedule from the returned outcome.
    """
    repo = RepositoryFactory.create_event_outbox_repository(session)
    event = repo.claim_for_delivery(event_id)
    if event is None:
        logger.warning("Outbox event %s missing; skipping", event_id)
        return DeliveryOutcome(event_id=event_id, status="missing")
    if not event.is_pending:
        return DeliveryOutcome(event_id=event_id, status="skipped", attempt=event.attempt_count)

    dispatcher = dispatcher or SideEffectDispatcher(session)
    attempt_number = event.attempt_count + 1
    event_type = event.event_type
    PrometheusMetrics.record_outbox_attempt(event_type)

    start = monotonic()
    try:
        dispatcher.dispatch(event_type, dict(event.payload or {}), event.idempotency_key)
    except Exception as exc:
        session.rollback()
        PrometheusMetrics.observe_outbox_dispatch(event_type, monotonic() - start)
        backoff = _next_backoff(attempt_number)
        terminal = attempt_number >= MAX_DELIVERY_ATTEMPTS
        repo.record_failure(
            event_id,
            attempt_count=attempt_number,
            retry_in_seconds=None if terminal else backoff,
            error=f"{type(exc).__name__}: {exc}",
        )
        session.commit()
        if terminal:
            PrometheusMetrics.record_outbox_outcome(event_type, "failed")
            logger.error(
                "Outbox event %s (%s) failed permanently after %s attempts: %s",
                event_id,
                event_type,
                attempt_number,
                exc,
            )
            return DeliveryOutcome(event_id, "failed", attempt_number, error=exc)
        logger.warning(
            "Outbox event %s attempt=%s failed; retrying in %ss: %s",
            event_id,
            attempt_number,
            backoff,
            exc,
        )
        return DeliveryOutcome(event_id, "retry", attempt_number, backoff, exc)

    PrometheusMetrics.observe_outbox_dispatch(event_type, monotonic() - start)
    repo.record_sent(event_id, attempt_number)
    session.commit()
    PrometheusMetrics.record_outbox_outcome(event_type, "sent")
    logger.info("Delivered outbox event %s type=%s attempts=%s", event_id, event_type, attempt_number)
    return DeliveryOutcome(event_id, "sent", attempt_number)


@celery_app.task(name="outbox.dispatch_pending", max_retries=0)
def dispatch_pending() -> int:
    """
    Fetch pending outbox events and enqueue delivery tasks.

    Returns the number of events scheduled.
    """
    with _session_scope() as session:
        pending = RepositoryFactory.create_event_outbox_repository(session).fetch_due(limit=200)
        for event in pending:
            deliver_event.apply_async((event.id,))
        scheduled = len(pending)
        if scheduled:
            logger.info("Scheduled %s outbox events for delivery", scheduled)
        return scheduled


@celery_app.task(
    name="outbox.deliver_event",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    default_retry_delay=BACKOFF_SECONDS[0],
)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """Deliver a single outbox event."""
    session = SessionLocal()
    try:
        outcome = deliver_outbox_event(session, event_id)
    finally:
        session.close()

    if outcome.status == "retry":
        raise self.retry(countdown=outcome.backoff_seconds, exc=outcome.error)
    return outcome.event_id if outcome.status == "sent" else None
