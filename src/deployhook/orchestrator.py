"""Webhook orchestrator connecting verification, provisioning and dispatch.

Handles one webhook delivery end to end:
verify → classify → for each repository: register-or-provision → dispatch.

Delivery stages:
    received → verified → classified → (registered → dispatched)* → acknowledged
with terminal exits to rejected (bad signature) or failed.

Repositories of one delivery are processed sequentially and independently:
a failure for one is recorded on its outcome and the remaining ones are
still processed. Dispatch never runs for a repository whose Project could
not be registered.

Source:
- src/deployhook/webhook/signature.py (SignatureVerifier)
- src/deployhook/webhook/classifier.py (EventClassifier)
- src/deployhook/registry/registry.py (ProjectRegistry)
- src/deployhook/provisioning/service.py (ProvisioningService)
- src/deployhook/dispatch/dispatcher.py (BuildDispatcher)
- src/deployhook/events/emitter.py (EventEmitter)
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.deployhook.dispatch.dispatcher import BuildDispatcher
from src.deployhook.errors import TransientExternalFailure
from src.deployhook.events.emitter import EventEmitter, LoggingEventEmitter
from src.deployhook.events.models import DeliveryEvent, EventType
from src.deployhook.provisioning.service import ProvisioningService
from src.deployhook.registry.models import Project
from src.deployhook.registry.registry import ProjectRegistry
from src.deployhook.registry.store import StoreError
from src.deployhook.webhook.classifier import EventClassifier
from src.deployhook.webhook.models import RepositoryRef
from src.deployhook.webhook.signature import AuthenticationFailure, SignatureVerifier

logger = logging.getLogger(__name__)

DEFAULT_REPOSITORY_TIMEOUT_SECONDS = 120.0


class DeliveryStatus(str, Enum):
    """Final status of a handled delivery.

    Attributes:
        REJECTED: Signature verification failed. Nothing was processed.
        INVALID: Correctly signed, but the body is not a JSON object.
        IGNORED: The event classified to no repositories.
        ACCEPTED: Every classified repository was dispatched.
        FAILED: At least one repository failed.
    """

    REJECTED = "rejected"
    INVALID = "invalid"
    IGNORED = "ignored"
    ACCEPTED = "accepted"
    FAILED = "failed"


HTTP_STATUS_CODES = {
    DeliveryStatus.REJECTED: 401,
    DeliveryStatus.INVALID: 400,
    DeliveryStatus.IGNORED: 200,
    DeliveryStatus.ACCEPTED: 202,
    DeliveryStatus.FAILED: 500,
}


class RepositoryStage(str, Enum):
    """Terminal per-repository stages.

    A repository is registered before it is dispatched; a dispatch failure
    therefore implies a committed Project.
    """

    DISPATCHED = "dispatched"
    FAILED = "failed"


class RepositoryOutcome(BaseModel):
    """Result of processing one repository within a delivery.

    Attributes:
        repository_id: GitHub repository id.
        full_name: Repository "{owner}/{name}".
        stage: Last stage reached (dispatched on success).
        project_created: True if this delivery provisioned the Project.
        platform_service_id: The service the build was dispatched for.
        failed_step: "provisioning" or "dispatch" when stage is failed.
        error: Error description when stage is failed.
        error_type: Exception class name when stage is failed.
        retryable: Whether the failure was transient.
    """

    repository_id: int
    full_name: str
    stage: RepositoryStage
    project_created: bool = False
    platform_service_id: Optional[str] = None
    failed_step: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    retryable: bool = False


class WebhookResult(BaseModel):
    """Result of handling one webhook delivery."""

    status: DeliveryStatus
    message: str
    delivery_id: Optional[str] = None
    repositories: List[RepositoryOutcome] = Field(default_factory=list)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_CODES[self.status]


class WebhookOrchestrator:
    """Drives a webhook delivery through verification, provisioning and dispatch.

    All collaborators are injected so that tests can substitute doubles.

    Attributes:
        verifier: Checks the delivery signature.
        classifier: Maps events to repositories.
        registry: Idempotent repository → Project mapping.
        provisioning: Creates platform resources for new repositories.
        dispatcher: Triggers the builder workflow.
        event_emitter: Emits delivery events for observability.
        repository_timeout_seconds: Deadline for processing one repository.
    """

    def __init__(
        self,
        verifier: SignatureVerifier,
        classifier: EventClassifier,
        registry: ProjectRegistry,
        provisioning: ProvisioningService,
        dispatcher: BuildDispatcher,
        event_emitter: Optional[EventEmitter] = None,
        repository_timeout_seconds: float = DEFAULT_REPOSITORY_TIMEOUT_SECONDS,
    ):
        self.verifier = verifier
        self.classifier = classifier
        self.registry = registry
        self.provisioning = provisioning
        self.dispatcher = dispatcher
        self.event_emitter = event_emitter or LoggingEventEmitter()
        self.repository_timeout_seconds = repository_timeout_seconds

    async def handle(
        self,
        payload: bytes,
        signature: Optional[str],
        event_type: Optional[str],
        delivery_id: Optional[str] = None,
    ) -> WebhookResult:
        """Handle one webhook delivery.

        Args:
            payload: The raw request body.
            signature: Value of the x-hub-signature-256 header.
            event_type: Value of the x-github-event header.
            delivery_id: Value of the x-github-delivery header.

        Returns:
            The delivery result, including one outcome per repository.
        """
        started = time.monotonic()

        try:
            self.verifier.require(payload, signature)
        except AuthenticationFailure as exc:
            await self._safe_emit(
                DeliveryEvent(
                    event_type=EventType.REQUEST_REJECTED,
                    delivery_id=delivery_id,
                    details={"github_event": event_type, "reason": exc.message},
                )
            )
            return WebhookResult(
                status=DeliveryStatus.REJECTED,
                message="Invalid signature.",
                delivery_id=delivery_id,
            )

        try:
            body = json.loads(payload)
        except ValueError:
            body = None
        if not isinstance(body, dict):
            await self._safe_emit(
                DeliveryEvent(
                    event_type=EventType.REQUEST_INVALID,
                    delivery_id=delivery_id,
                    details={
                        "github_event": event_type,
                        "reason": "payload is not a JSON object",
                    },
                )
            )
            return WebhookResult(
                status=DeliveryStatus.INVALID,
                message="Payload must be a JSON object.",
                delivery_id=delivery_id,
            )

        repositories = self.classifier.classify(event_type, body)
        if not repositories:
            await self._safe_emit(
                DeliveryEvent(
                    event_type=EventType.REQUEST_IGNORED,
                    delivery_id=delivery_id,
                    details={"github_event": event_type},
                )
            )
            return WebhookResult(
                status=DeliveryStatus.IGNORED,
                message="Event ignored.",
                delivery_id=delivery_id,
            )

        logger.info(
            "Processing delivery",
            extra={
                "delivery_id": delivery_id,
                "github_event": event_type,
                "repository_count": len(repositories),
            },
        )

        outcomes = []
        for repository in repositories:
            outcomes.append(await self._process_repository(repository, delivery_id))

        failed = [o for o in outcomes if o.stage == RepositoryStage.FAILED]
        status = DeliveryStatus.FAILED if failed else DeliveryStatus.ACCEPTED

        await self._safe_emit(
            DeliveryEvent(
                event_type=EventType.REQUEST_COMPLETED,
                delivery_id=delivery_id,
                details={
                    "status": status.value,
                    "repositories": len(outcomes),
                    "failed": len(failed),
                    "duration_seconds": time.monotonic() - started,
                },
            )
        )

        if failed:
            message = (
                f"Processing failed for {len(failed)} of {len(outcomes)} "
                f"repositories."
            )
        else:
            message = "Deployment process initiated."

        return WebhookResult(
            status=status,
            message=message,
            delivery_id=delivery_id,
            repositories=outcomes,
        )

    async def _process_repository(
        self,
        repository: RepositoryRef,
        delivery_id: Optional[str],
    ) -> RepositoryOutcome:
        """Register (provisioning if needed), then dispatch one repository."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.repository_timeout_seconds
        provisioned: Optional[Project] = None

        async def create_project() -> Project:
            nonlocal provisioned
            resources = await self.provisioning.provision(
                repository.full_name,
                repository.name,
            )
            provisioned = Project(
                repository_id=repository.repository_id,
                repository_full_name=repository.full_name,
                platform_project_id=resources.platform_project_id,
                platform_service_id=resources.platform_service_id,
            )
            return provisioned

        try:
            project = await asyncio.wait_for(
                self.registry.find_or_create(
                    repository.repository_id,
                    create_project,
                    self.provisioning.discard,
                ),
                timeout=self.repository_timeout_seconds,
            )
        except Exception as exc:
            return await self._fail(repository, delivery_id, "provisioning", exc)

        # A lost insert race returns the winner's Project
        created = (
            provisioned is not None
            and provisioned.platform_project_id == project.platform_project_id
        )

        await self._safe_emit(
            DeliveryEvent(
                event_type=(
                    EventType.PROJECT_PROVISIONED
                    if created
                    else EventType.PROJECT_REUSED
                ),
                delivery_id=delivery_id,
                repository=repository.full_name,
                repository_id=repository.repository_id,
                details={
                    "platform_project_id": project.platform_project_id,
                    "platform_service_id": project.platform_service_id,
                },
            )
        )

        try:
            await asyncio.wait_for(
                self.dispatcher.dispatch(
                    owner=repository.owner_login,
                    repo=repository.name,
                    platform_service_id=project.platform_service_id,
                    repository_id=repository.repository_id,
                ),
                timeout=max(deadline - loop.time(), 0.001),
            )
        except Exception as exc:
            return await self._fail(
                repository,
                delivery_id,
                "dispatch",
                exc,
                project=project,
                project_created=created,
            )

        await self._safe_emit(
            DeliveryEvent(
                event_type=EventType.BUILD_DISPATCHED,
                delivery_id=delivery_id,
                repository=repository.full_name,
                repository_id=repository.repository_id,
                details={"platform_service_id": project.platform_service_id},
            )
        )

        return RepositoryOutcome(
            repository_id=repository.repository_id,
            full_name=repository.full_name,
            stage=RepositoryStage.DISPATCHED,
            project_created=created,
            platform_service_id=project.platform_service_id,
        )

    async def _fail(
        self,
        repository: RepositoryRef,
        delivery_id: Optional[str],
        step: str,
        exc: Exception,
        project: Optional[Project] = None,
        project_created: bool = False,
    ) -> RepositoryOutcome:
        """Record a per-repository failure and emit an error event."""
        if isinstance(exc, asyncio.TimeoutError):
            error_message = (
                f"{step} timed out after {self.repository_timeout_seconds}s"
            )
        else:
            error_message = str(exc) or type(exc).__name__
        retryable = bool(getattr(exc, "retryable", False)) or isinstance(
            exc, (TransientExternalFailure, StoreError, asyncio.TimeoutError)
        )

        logger.error(
            "Repository processing failed",
            exc_info=exc,
            extra={
                "delivery_id": delivery_id,
                "repository_id": repository.repository_id,
                "repository": repository.full_name,
                "step": step,
            },
        )

        await self._safe_emit(
            DeliveryEvent(
                event_type=EventType.REPOSITORY_FAILED,
                delivery_id=delivery_id,
                repository=repository.full_name,
                repository_id=repository.repository_id,
                details={
                    "stage": step,
                    "error_type": type(exc).__name__,
                    "error_message": error_message,
                    "retryable": retryable,
                },
            )
        )

        return RepositoryOutcome(
            repository_id=repository.repository_id,
            full_name=repository.full_name,
            stage=RepositoryStage.FAILED,
            project_created=project_created,
            platform_service_id=project.platform_service_id if project else None,
            failed_step=step,
            error=error_message,
            error_type=type(exc).__name__,
            retryable=retryable,
        )

    async def _safe_emit(self, event: DeliveryEvent) -> None:
        """Emit an event, logging failures so handling is never disrupted."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit delivery event",
                extra={
                    "event_type": event.event_type.value,
                    "delivery_id": event.delivery_id,
                },
            )
