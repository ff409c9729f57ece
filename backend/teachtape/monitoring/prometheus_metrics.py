"""
Prometheus metrics for TeachTape.

Service timings come from the @measure_operation decorator; domain counters
cover booking transitions, webhook ingestion, refunds and outbox delivery.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so tests and multiple app instances don't collide with defaults
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "teachtape_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "teachtape_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "teachtape_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "teachtape_booking_transitions_total",
    "Booking status transitions by axis and outcome",
    ["axis", "target", "outcome"],  # outcome: applied | conflict
    registry=REGISTRY,
)

webhook_events_total = Counter(
    "teachtape_webhook_events_total",
    "Inbound webhook deliveries by source and result",
    ["source", "result"],  # processed | duplicate | ignored | failed | rejected
    registry=REGISTRY,
)

refunds_total = Counter(
    "teachtape_refunds_total",
    "Refund attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)

outbox_attempt_total = Counter(
    "teachtape_outbox_attempt_total",
    "Number of outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

outbox_total = Counter(
    "teachtape_outbox_total",
    "Outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

outbox_dispatch_seconds = Histogram(
    "teachtape_outbox_dispatch_seconds",
    "Side-effect dispatch duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'CheckoutService')
            operation: Operation name (e.g., 'start_checkout')
            duration: Operation duration in seconds
            status: 'success' or 'error'
            error_type: Exception class name when status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_booking_transition(axis: str, target: str, applied: bool) -> None:
        outcome = "applied" if applied else "conflict"
        booking_transitions_total.labels(axis=axis, target=target, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_webhook(source: str, result: str) -> None:
        webhook_events_total.labels(source=source, result=result).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_refund(outcome: str) -> None:
        refunds_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_outbox_attempt(event_type: str) -> None:
        outbox_attempt_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_outbox_outcome(event_type: str, status: str) -> None:
        outbox_total.labels(status=status, event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_outbox_dispatch(event_type: str, duration: float) -> None:
        outbox_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
