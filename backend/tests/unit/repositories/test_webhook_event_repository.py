from datetime import datetime, timezone

from teachtape.models.webhook_event import WebhookEvent
from teachtape.repositories.webhook_event_repository import WebhookEventRepository

OCCURRED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(repo, **overrides):
    values = dict(
        source="stripe",
        source_id="evt_1",
        event_type="checkout.session.completed",
        occurred_at=OCCURRED,
        payload={"id": "evt_1"},
    )
    values.update(overrides)
    return repo.insert_if_absent(**values)


class TestInsertIfAbsent:
    def test_duplicate_returns_existing_row(self, db):
        repo = WebhookEventRepository(db)

        first, created = _record(repo)
        second, created_again = _record(repo)

        assert created is True
        assert created_again is False
        assert second.id == first.id
        assert db.query(WebhookEvent).count() == 1

    def test_key_includes_type_and_time(self, db):
        repo = WebhookEventRepository(db)

        _record(repo)
        _, other_type = _record(repo, event_type="checkout.session.expired")
        _, other_time = _record(repo, occurred_at=datetime(2026, 3, 1, 12, 5, tzinfo=timezone.utc))

        assert other_type is True
        assert other_time is True
        assert db.query(WebhookEvent).count() == 3

    def test_list_events_filters(self, db):
        repo = WebhookEventRepository(db)
        _record(repo)
        _record(repo, source="zoom", source_id="123", event_type="meeting.ended")
        db.commit()

        zoom = repo.list_events(source="zoom")
        assert [event.source_id for event in zoom] == ["123"]
