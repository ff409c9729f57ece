# backend/teachtape/tasks/celery_app.py
"""
Celery application configuration for TeachTape.

Redis is the broker. Workers deliver outbox side effects and run the
periodic booking sweeps.
"""

import logging
import os
from typing import Any, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from teachtape.core.config import settings

TASK_MODULES = (
    "teachtape.tasks.notification_tasks",
    "teachtape.tasks.booking_tasks",
)


def _broker_url() -> str:
    # Priority: CELERY_BROKER_URL -> settings.redis_url -> default
    broker_url = os.getenv("CELERY_BROKER_URL") or settings.redis_url or "redis://localhost:6379"
    if not any(broker_url.endswith(f"/{i}") for i in range(16)):
        broker_url = f"{broker_url}/0"
    return broker_url


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    broker_url = _broker_url()
    celery_app = Celery(
        "teachtape",
        broker=broker_url,
        backend=os.getenv("CELERY_RESULT_BACKEND") or broker_url,
    )

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 120,
            "task_time_limit": 300,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "task_ignore_result": True,
            "worker_hijack_root_logger": False,
            "broker_transport_options": {"visibility_timeout": 3600},
        }
    )
    celery_app.conf.imports = TASK_MODULES
    celery_app.conf.task_routes = {
        "outbox.*": {"queue": "notifications"},
        "bookings.*": {"queue": "bookings"},
    }

    from teachtape.tasks.beat_schedule import get_beat_schedule

    celery_app.conf.beat_schedule = get_beat_schedule()
    return celery_app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Keep Celery from installing its own logging configuration."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Base task that logs failures and retries."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logging.getLogger(__name__).error(
            "Task %s[%s] failed with exception: %s",
            self.name,
            task_id,
            exc,
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name, "task_args": str(args)},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logging.getLogger(__name__).warning(
            "Task %s[%s] retry %s due to: %s",
            self.name,
            task_id,
            self.request.retries,
            exc,
            extra={"task_id": task_id, "task_name": self.name, "retry_count": self.request.retries},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)

