"""
Prometheus metrics for the Lawnly booking core.

Service timings come from ``@BaseService.measure_operation``; the outbox
dispatcher and scheduled jobs report their own counters.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Separate from the default registry
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "lawnly_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

service_operations_total = Counter(
    "lawnly_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "lawnly_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

money_movements_total = Counter(
    "lawnly_money_movements_total",
    "Charges, transfers and refunds attempted against the payment processor",
    ["kind", "outcome"],  # kind: charge | transfer | refund
    registry=REGISTRY,
)

scheduled_job_items_total = Counter(
    "lawnly_scheduled_job_items_total",
    "Items processed by scheduled jobs",
    ["job", "outcome"],  # outcome: succeeded | failed
    registry=REGISTRY,
)

notifications_outbox_total = Counter(
    "lawnly_notifications_outbox_total",
    "Outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

notifications_dispatch_seconds = Histogram(
    "lawnly_notifications_dispatch_seconds",
    "Outbox handler duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


class PrometheusMetrics:
    """Recording helpers and exposition for the metrics above."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """Timing, count and error type for one service call."""
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_money_movement(kind: str, outcome: str) -> None:
        money_movements_total.labels(kind=kind, outcome=outcome).inc()

    @staticmethod
    def record_scheduled_job(job: str, succeeded: int, failed: int) -> None:
        if succeeded:
            scheduled_job_items_total.labels(job=job, outcome="succeeded").inc(succeeded)
        if failed:
            scheduled_job_items_total.labels(job=job, outcome="failed").inc(failed)

    @staticmethod
    def record_notification_outcome(event_type: str, status: str) -> None:
        notifications_outbox_total.labels(status=status, event_type=event_type).inc()

    @staticmethod
    def observe_notification_dispatch(event_type: str, duration: float) -> None:
        notifications_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))

    @staticmethod
    def get_metrics() -> bytes:
        """Metrics in Prometheus text exposition format."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return str(CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
