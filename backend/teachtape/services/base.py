# backend/teachtape/services/base.py
"""
Base Service Pattern for TeachTape

Services own the transaction boundary: repositories flush, services commit
through ``transaction()`` or roll back. Public operations are wrapped with
``measure_operation`` so every call is timed and counted.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """Shared session handling and instrumentation for booking-core services."""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on clean exit, roll back on any error.

        Database errors surface as ServiceException; domain exceptions
        propagate unchanged so the API layer can map them.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error("Transaction failed: %s", e)
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}")
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Time a service operation and record its outcome.

        Usage:
            @BaseService.measure_operation("start_checkout")
            def start_checkout(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.monotonic()
                error_type: Optional[str] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.monotonic() - started
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            "Slow operation detected: %s took %.2fs", operation_name, elapsed
                        )
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator
