"""FastAPI application entry point for deployhook.

Receives GitHub webhooks at ``POST /webhook``, provisions platform
resources for new repositories and triggers the builder workflow.

Collaborators (store, API clients, orchestrator) are built from settings
in the lifespan handler unless they are passed to create_app(), which is
how tests substitute doubles.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from .config import DeployhookSettings, get_settings
from .dispatch.dispatcher import BuildDispatcher
from .events.emitter import EventSinkType, create_event_emitter
from .events.metrics import generate_metrics_output
from .github.client import GitHubClient
from .orchestrator import WebhookOrchestrator
from .platform.client import PlatformClient
from .provisioning.service import ProvisioningService
from .registry.registry import ProjectRegistry
from .registry.repository import PostgresProjectStore
from .registry.store import InMemoryProjectStore, ProjectStore
from .webhook.classifier import EventClassifier
from .webhook.signature import SignatureVerifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: DeployhookSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Deployhook configuration:")
    logger.info(f"  Webhook Secret: {_redact_secret(settings.webhook_shared_secret)}")
    logger.info(
        f"  Platform API Token: {_redact_secret(settings.deploy_platform_api_token)}"
    )
    logger.info(
        f"  Source Control Token: {_redact_secret(settings.source_control_api_token)}"
    )
    logger.info(f"  Platform API URL: {settings.platform_api_url}")
    logger.info(f"  Platform Service Image: {settings.platform_service_image}")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(
        f"  Builder Workflow: {settings.builder_repository_owner}/"
        f"{settings.builder_repository_name}/{settings.builder_workflow_file}"
        f"@{settings.builder_workflow_ref}"
    )
    logger.info(f"  Default Branch: {settings.default_branch}")
    logger.info(f"  Database URL: {_redact_secret(settings.database_url, 13)}")
    logger.info(f"  Request Timeout Seconds: {settings.request_timeout_seconds}")
    logger.info(f"  Repository Timeout Seconds: {settings.repository_timeout_seconds}")
    logger.info(f"  Max Retries: {settings.max_retries}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def build_orchestrator(
    cfg: DeployhookSettings,
    store: ProjectStore,
    platform_client: PlatformClient,
    github_client: GitHubClient,
) -> WebhookOrchestrator:
    """Wire all dependencies into a WebhookOrchestrator."""
    provisioning = ProvisioningService(
        platform=platform_client,
        service_image=cfg.platform_service_image,
    )
    dispatcher = BuildDispatcher(
        github_client=github_client,
        workflow_owner=cfg.builder_repository_owner,
        workflow_repo=cfg.builder_repository_name,
        workflow_file=cfg.builder_workflow_file,
        ref=cfg.builder_workflow_ref,
    )
    return WebhookOrchestrator(
        verifier=SignatureVerifier(secret=cfg.webhook_shared_secret),
        classifier=EventClassifier(default_branch=cfg.default_branch),
        registry=ProjectRegistry(store=store),
        provisioning=provisioning,
        dispatcher=dispatcher,
        event_emitter=create_event_emitter(
            [EventSinkType.LOGGING, EventSinkType.METRICS]
        ),
        repository_timeout_seconds=cfg.repository_timeout_seconds,
    )


def create_app(
    settings: Optional[DeployhookSettings] = None,
    orchestrator: Optional[WebhookOrchestrator] = None,
    store: Optional[ProjectStore] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use. Loaded from the environment at startup
            when omitted.
        orchestrator: Pre-built orchestrator. Built from settings at
            startup when omitted.
        store: Project store. A PostgresProjectStore is created when
            settings carry a database_url, else an InMemoryProjectStore.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Deployhook starting up...")
        owned = []

        if app.state.orchestrator is None:
            cfg = settings or get_settings()
            logging.getLogger().setLevel(cfg.log_level)
            _log_configuration(cfg)

            if app.state.store is None:
                if cfg.database_url:
                    pg_store = PostgresProjectStore(cfg.database_url)
                    await pg_store.connect()
                    owned.append(pg_store.disconnect)
                    app.state.store = pg_store
                else:
                    logger.warning(
                        "DATABASE_URL not set, using in-memory project store"
                    )
                    app.state.store = InMemoryProjectStore()

            platform_client = PlatformClient(
                token=cfg.deploy_platform_api_token,
                base_url=cfg.platform_api_url,
                max_retries=cfg.max_retries,
                timeout=cfg.request_timeout_seconds,
            )
            github_client = GitHubClient(
                token=cfg.source_control_api_token,
                base_url=cfg.github_base_url,
                max_retries=cfg.max_retries,
                timeout=cfg.request_timeout_seconds,
            )
            owned.extend([platform_client.close, github_client.close])

            app.state.orchestrator = build_orchestrator(
                cfg, app.state.store, platform_client, github_client
            )
            owned.append(app.state.orchestrator.event_emitter.close)

        logger.info("Deployhook started successfully")

        yield

        logger.info("Deployhook shutting down...")
        for close in owned:
            await close()
        logger.info("Deployhook shutdown complete")

    app = FastAPI(
        title="Deployhook",
        description="Provision platform projects and trigger builds from GitHub webhooks",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.store = store

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness probe endpoint.

        Returns 503 when the orchestrator is not wired yet or the project
        store is unreachable.
        """
        state = request.app.state
        store_healthy = state.store is not None and await state.store.health_check()
        is_ready = state.orchestrator is not None and store_healthy
        body = {
            "status": "ready" if is_ready else "not_ready",
            "dependencies": {
                "database": "healthy" if store_healthy else "unhealthy",
            },
        }
        return JSONResponse(body, status_code=200 if is_ready else 503)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_metrics_output(),
            media_type=CONTENT_TYPE_LATEST,
        )

    @app.post("/webhook")
    async def webhook(request: Request):
        """GitHub webhook receiver endpoint.

        Responds 401 for a bad signature, 400 for a non-object payload,
        200 for ignored events, 202 when every repository was dispatched
        and 500 when any repository failed.
        """
        current = request.app.state.orchestrator
        if current is None:
            logger.error("Orchestrator not initialized")
            return JSONResponse(
                {"status": "failed", "message": "Service not initialized."},
                status_code=500,
            )

        payload = await request.body()
        result = await current.handle(
            payload=payload,
            signature=request.headers.get("x-hub-signature-256"),
            event_type=request.headers.get("x-github-event"),
            delivery_id=request.headers.get("x-github-delivery"),
        )
        return JSONResponse(
            result.model_dump(mode="json"),
            status_code=result.http_status,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.deployhook.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
