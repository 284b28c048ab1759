"""Delivery event emission and metrics.

This module provides observability for webhook handling:
- Event emission for rejections, provisioning, dispatches, failures
- Prometheus metrics: requests by status, provisioned projects,
  dispatched builds, per-repository failures, handling time
"""

from src.deployhook.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.deployhook.events.metrics import (
    DeployhookMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
    get_metrics,
)
from src.deployhook.events.models import DeliveryEvent, EventType

__all__ = [
    # Event models
    "DeliveryEvent",
    "EventType",
    # Event emitters
    "EventEmitter",
    "LoggingEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    # Metrics
    "DeployhookMetrics",
    "get_metrics",
    "generate_metrics_output",
    # Factory and configuration
    "EventSinkType",
    "create_event_emitter",
]
