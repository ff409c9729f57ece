# backend/teachtape/tasks/beat_schedule.py
"""
Celery Beat schedule for TeachTape.

The outbox dispatcher runs every 30 seconds; the booking sweeps run on
crontab schedules.
"""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    "dispatch-outbox-events": {
        "task": "outbox.dispatch_pending",
        "schedule": timedelta(seconds=30),
        "options": {"queue": "notifications", "priority": 8},
    },
    # Accepted film reviews past their deadline
    "expire-overdue-film-reviews": {
        "task": "bookings.expire_overdue_film_reviews",
        "schedule": crontab(minute="*/15"),
        "options": {"queue": "bookings", "priority": 6},
    },
    # Pending bookings whose checkout was never completed
    "cancel-abandoned-checkouts": {
        "task": "bookings.cancel_abandoned_checkouts",
        "schedule": crontab(minute=5),
        "options": {"queue": "bookings", "priority": 3},
    },
}


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return dict(CELERYBEAT_SCHEDULE)
