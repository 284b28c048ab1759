"""Tests for the FastAPI application.

The orchestrator and store are injected through create_app(), so the
lifespan handler builds nothing from the environment.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from fakes import FakePlatformClient
from src.deployhook.dispatch import BuildDispatcher
from src.deployhook.events import NullEventEmitter
from src.deployhook.main import _redact_secret, create_app
from src.deployhook.orchestrator import WebhookOrchestrator
from src.deployhook.provisioning import ProvisioningService
from src.deployhook.registry import InMemoryProjectStore, ProjectRegistry
from src.deployhook.webhook import EventClassifier, SignatureVerifier
from src.deployhook.webhook.signature import compute_signature


SECRET = "topsecret"

PUSH_BODY = {
    "ref": "refs/heads/main",
    "repository": {
        "id": 42,
        "name": "app",
        "full_name": "acme/app",
        "default_branch": "main",
        "owner": {"login": "acme"},
    },
}


class UnhealthyStore(InMemoryProjectStore):
    async def health_check(self) -> bool:
        return False


@pytest.fixture
def store():
    return InMemoryProjectStore()


@pytest.fixture
def github():
    return AsyncMock()


@pytest.fixture
def client(store, github):
    orchestrator = WebhookOrchestrator(
        verifier=SignatureVerifier(secret=SECRET),
        classifier=EventClassifier(),
        registry=ProjectRegistry(store),
        provisioning=ProvisioningService(FakePlatformClient()),
        dispatcher=BuildDispatcher(
            github_client=github,
            workflow_owner="VarunGupta2005",
            workflow_repo="Deployer",
        ),
        event_emitter=NullEventEmitter(),
    )
    app = create_app(orchestrator=orchestrator, store=store)
    with TestClient(app) as test_client:
        yield test_client


def _post(client, body, event="push", secret=SECRET, delivery="d-1"):
    payload = body if isinstance(body, bytes) else json.dumps(body).encode()
    headers = {
        "content-type": "application/json",
        "x-github-event": event,
        "x-github-delivery": delivery,
    }
    if secret is not None:
        headers["x-hub-signature-256"] = compute_signature(payload, secret)
    return client.post("/webhook", content=payload, headers=headers)


class TestWebhookEndpoint:

    def test_push_is_accepted(self, client, store, github):
        response = _post(client, PUSH_BODY)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "accepted"
        assert body["message"] == "Deployment process initiated."
        assert body["delivery_id"] == "d-1"
        assert body["repositories"][0]["platform_service_id"] == "s1"
        github.create_workflow_dispatch.assert_awaited_once()

    def test_bad_signature_is_unauthorized(self, client, github):
        response = _post(client, PUSH_BODY, secret="wrong")

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid signature."
        github.create_workflow_dispatch.assert_not_awaited()

    def test_missing_signature_is_unauthorized(self, client):
        assert _post(client, PUSH_BODY, secret=None).status_code == 401

    def test_ignored_event_returns_ok(self, client):
        response = _post(client, {"zen": "Design for failure."}, event="ping")

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_invalid_json_is_bad_request(self, client):
        assert _post(client, b"{not json").status_code == 400

    def test_processing_failure_is_server_error(self, client, github):
        github.create_workflow_dispatch.side_effect = RuntimeError("boom")

        response = _post(client, PUSH_BODY)

        assert response.status_code == 500
        assert response.json()["repositories"][0]["failed_step"] == "dispatch"

    def test_uninitialized_orchestrator_is_server_error(self):
        app = create_app(orchestrator=None, store=InMemoryProjectStore())
        # No context manager: the lifespan (which would build one) never runs
        test_client = TestClient(app)

        response = test_client.post("/webhook", content=b"{}")

        assert response.status_code == 500


class TestHealthEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["dependencies"]["database"] == "healthy"

    def test_not_ready_when_store_unhealthy(self):
        app = create_app(orchestrator=AsyncMock(), store=UnhealthyStore())
        with TestClient(app) as test_client:
            response = test_client.get("/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_metrics(self, client):
        _post(client, PUSH_BODY)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")


class TestRedaction:

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, "<unset>"),
            ("", "<unset>"),
            ("abc", "***"),
            ("ghp_secret", "ghp_******"),
        ],
    )
    def test_redact_secret(self, value, expected):
        assert _redact_secret(value) == expected
