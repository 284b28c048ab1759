"""Delivery lifecycle event models for observability.

This module defines the data models for events emitted while handling a
webhook delivery:
- EventType: Enum of all event types emitted by the orchestrator
- DeliveryEvent: Structured event with delivery and repository context

The models use Pydantic for validation, consistent with the service's
approach in registry/models.py and webhook/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted while handling a delivery.

    Attributes:
        REQUEST_REJECTED: Signature verification failed.
        REQUEST_INVALID: Correctly signed, but the body is not a JSON object.
        REQUEST_IGNORED: The event did not classify to any repository.
        PROJECT_PROVISIONED: A new Project was provisioned and committed.
        PROJECT_REUSED: An existing Project was found for the repository.
        BUILD_DISPATCHED: The builder workflow was triggered.
        REPOSITORY_FAILED: Processing one repository failed.
        REQUEST_COMPLETED: All classified repositories were processed.
    """

    REQUEST_REJECTED = "request_rejected"
    REQUEST_INVALID = "request_invalid"
    REQUEST_IGNORED = "request_ignored"
    PROJECT_PROVISIONED = "project_provisioned"
    PROJECT_REUSED = "project_reused"
    BUILD_DISPATCHED = "build_dispatched"
    REPOSITORY_FAILED = "repository_failed"
    REQUEST_COMPLETED = "request_completed"


class DeliveryEvent(BaseModel):
    """Structured event emitted while handling a webhook delivery.

    Attributes:
        event_type: The category of event.
        delivery_id: GitHub delivery id (x-github-delivery), if sent.
        repository: Repository "{owner}/{name}" for per-repository events.
        repository_id: GitHub repository id for per-repository events.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For REPOSITORY_FAILED events:
            - stage: "provisioning" or "dispatch"
            - error_type: Exception class name
            - error_message: Human-readable error description
            - retryable: Whether the failure was transient

        For REQUEST_COMPLETED events:
            - status: "accepted" or "failed"
            - repositories: Number of repositories processed
            - failed: Number of repositories that failed
            - duration_seconds: Total handling time
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    delivery_id: Optional[str] = Field(
        default=None,
        description="GitHub delivery id from the x-github-delivery header",
    )

    repository: Optional[str] = Field(
        default=None,
        description='Repository path in format "{owner}/{name}"',
    )

    repository_id: Optional[int] = Field(
        default=None,
        description="GitHub repository id",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary suitable for structured logging."""
        return {
            "event_type": self.event_type.value,
            "delivery_id": self.delivery_id,
            "repository": self.repository,
            "repository_id": self.repository_id,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
