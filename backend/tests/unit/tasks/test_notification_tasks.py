from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from teachtape.models.event_outbox import EventOutbox, EventOutboxStatus
from teachtape.services.side_effects import FILM_REVIEW_ACCEPTED, publish_side_effect
from teachtape.tasks import notification_tasks
from teachtape.tasks.notification_tasks import (
    BACKOFF_SECONDS,
    MAX_DELIVERY_ATTEMPTS,
    deliver_outbox_event,
)


def _as_utc(value):
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@pytest.fixture
def outbox_row(db):
    publish_side_effect(db, FILM_REVIEW_ACCEPTED, "01HBOOKING0000000000000000", payload={"booking_id": "b"})
    return db.query(EventOutbox).one()


class TestDeliverOutboxEvent:
    def test_successful_delivery(self, db, outbox_row):
        dispatcher = Mock()

        outcome = deliver_outbox_event(db, outbox_row.id, dispatcher=dispatcher)

        assert outcome.status == "sent"
        assert outcome.attempt == 1
        dispatcher.dispatch.assert_called_once_with(
            FILM_REVIEW_ACCEPTED, {"booking_id": "b"}, outbox_row.idempotency_key
        )
        db.refresh(outbox_row)
        assert outbox_row.status == EventOutboxStatus.SENT.value
        assert outbox_row.sent_at is not None

    def test_failure_schedules_retry_with_backoff(self, db, outbox_row):
        dispatcher = Mock()
        dispatcher.dispatch.side_effect = RuntimeError("smtp down")
        before = datetime.now(timezone.utc)

        outcome = deliver_outbox_event(db, outbox_row.id, dispatcher=dispatcher)

        assert outcome.status == "retry"
        assert outcome.backoff_seconds == BACKOFF_SECONDS[0]
        db.refresh(outbox_row)
        assert outbox_row.status == EventOutboxStatus.PENDING.value
        assert outbox_row.attempt_count == 1
        assert "smtp down" in outbox_row.last_error
        assert _as_utc(outbox_row.next_attempt_at) >= before + timedelta(seconds=BACKOFF_SECONDS[0])

    def test_gives_up_after_max_attempts(self, db, outbox_row):
        outbox_row.attempt_count = MAX_DELIVERY_ATTEMPTS - 1
        db.commit()
        dispatcher = Mock()
        dispatcher.dispatch.side_effect = RuntimeError("still down")

        outcome = deliver_outbox_event(db, outbox_row.id, dispatcher=dispatcher)

        assert outcome.status == "failed"
        assert outcome.attempt == MAX_DELIVERY_ATTEMPTS
        db.refresh(outbox_row)
        assert outbox_row.status == EventOutboxStatus.FAILED.value

    def test_sent_row_is_skipped(self, db, outbox_row):
        deliver_outbox_event(db, outbox_row.id, dispatcher=Mock())
        dispatcher = Mock()

        outcome = deliver_outbox_event(db, outbox_row.id, dispatcher=dispatcher)

        assert outcome.status == "skipped"
        dispatcher.dispatch.assert_not_called()

    def test_missing_row(self, db):
        assert deliver_outbox_event(db, "01HMISSING0000000000000000", dispatcher=Mock()).status == "missing"


class TestDispatchPending:
    def test_schedules_due_rows_only(self, db, outbox_row):
        later = EventOutbox(
            event_type=FILM_REVIEW_ACCEPTED,
            aggregate_id="other",
            idempotency_key="later",
            payload={},
            next_attempt_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        db.add(later)
        db.commit()

        @contextmanager
        def scope():
            yield db

        with patch.object(notification_tasks, "_session_scope", scope), patch.object(
            notification_tasks.deliver_event, "apply_async"
        ) as apply_async:
            scheduled = notification_tasks.dispatch_pending()

        assert scheduled == 1
        apply_async.assert_called_once_with((outbox_row.id,))
