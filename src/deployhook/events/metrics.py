"""Prometheus metrics for delivery observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- deployhook_webhook_requests_total: Counter of handled deliveries by status
- deployhook_projects_provisioned_total: Counter of committed Projects
- deployhook_builds_dispatched_total: Counter of workflow dispatches
- deployhook_repository_failures_total: Counter of per-repository failures
- deployhook_request_duration_seconds: Histogram of delivery handling time

The MetricsEventEmitter integrates with the event emission system to
update metrics from delivery events.

Source:
- src/deployhook/events/models.py (DeliveryEvent, EventType)
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.deployhook.events.emitter import EventEmitter
from src.deployhook.events.models import DeliveryEvent, EventType


logger = logging.getLogger(__name__)


# Provisioning plus dispatch is a handful of remote calls
DEFAULT_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0)


class DeployhookMetrics:
    """Container for all deployhook Prometheus metrics.

    Pass a custom registry for testing.

    Attributes:
        registry: The Prometheus registry for these metrics.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.webhook_requests_total = Counter(
            "deployhook_webhook_requests_total",
            "Total number of webhook deliveries handled",
            labelnames=["status"],
            registry=self.registry,
        )

        self.projects_provisioned_total = Counter(
            "deployhook_projects_provisioned_total",
            "Total number of repositories provisioned on the platform",
            registry=self.registry,
        )

        self.builds_dispatched_total = Counter(
            "deployhook_builds_dispatched_total",
            "Total number of builder workflow dispatches",
            registry=self.registry,
        )

        self.repository_failures_total = Counter(
            "deployhook_repository_failures_total",
            "Total number of repositories that failed processing",
            labelnames=["stage", "error_type"],
            registry=self.registry,
        )

        self.request_duration_seconds = Histogram(
            "deployhook_request_duration_seconds",
            "Time spent handling webhook deliveries in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_request(self, status: str) -> None:
        self.webhook_requests_total.labels(status=status).inc()

    def record_repository_failure(self, stage: str, error_type: str) -> None:
        self.repository_failures_total.labels(
            stage=stage,
            error_type=error_type,
        ).inc()


# Global metrics instance for the default registry
_default_metrics: Optional[DeployhookMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> DeployhookMetrics:
    """Get or create the metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return DeployhookMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = DeployhookMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus metrics output for the /metrics endpoint."""
    target_registry = registry or REGISTRY
    return generate_latest(target_registry)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    Attributes:
        metrics: The DeployhookMetrics instance to update.
    """

    def __init__(
        self,
        metrics: Optional[DeployhookMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> DeployhookMetrics:
        return self._metrics

    async def emit(self, event: DeliveryEvent) -> None:
        try:
            if event.event_type == EventType.REQUEST_REJECTED:
                self._metrics.record_request("rejected")
            elif event.event_type == EventType.REQUEST_INVALID:
                self._metrics.record_request("invalid")
            elif event.event_type == EventType.REQUEST_IGNORED:
                self._metrics.record_request("ignored")
            elif event.event_type == EventType.PROJECT_PROVISIONED:
                self._metrics.projects_provisioned_total.inc()
            elif event.event_type == EventType.BUILD_DISPATCHED:
                self._metrics.builds_dispatched_total.inc()
            elif event.event_type == EventType.REPOSITORY_FAILED:
                self._metrics.record_repository_failure(
                    stage=event.details.get("stage", "unknown"),
                    error_type=event.details.get("error_type", "unknown"),
                )
            elif event.event_type == EventType.REQUEST_COMPLETED:
                self._metrics.record_request(event.details.get("status", "unknown"))
                duration = event.details.get("duration_seconds")
                if duration is not None:
                    self._metrics.request_duration_seconds.observe(float(duration))
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "delivery_id": event.delivery_id,
                },
            )
