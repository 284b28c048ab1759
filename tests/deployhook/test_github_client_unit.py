"""Unit tests for GitHubClient.

Uses httpx.MockTransport so requests never leave the process. Backoff
delays are zeroed through base_delay.
"""

import json
import time

import httpx
import pytest

from fakes import run_async
from src.deployhook.errors import TransientExternalFailure
from src.deployhook.github import GitHubAPIError, GitHubClient, RateLimitError


DISPATCH_PATH = "/repos/acme/builder/actions/workflows/deployer.yml/dispatches"


def _make_client(handler, **kwargs) -> GitHubClient:
    kwargs.setdefault("max_retries", 2)
    return GitHubClient(
        token="ghp_test",
        base_url="https://api.github.test",
        base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _dispatch(client: GitHubClient):
    async def run():
        async with client:
            await client.create_workflow_dispatch(
                owner="acme",
                repo="builder",
                workflow_id="deployer.yml",
                ref="main",
                inputs={"repo": "app"},
            )

    return run_async(run())


class TestWorkflowDispatch:

    def test_posts_ref_and_inputs(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        _dispatch(_make_client(handler))

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == DISPATCH_PATH
        assert json.loads(request.content) == {
            "ref": "main",
            "inputs": {"repo": "app"},
        }
        assert request.headers["authorization"] == "Bearer ghp_test"
        assert request.headers["accept"] == "application/vnd.github+json"

    def test_not_found_raises_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not Found"})

        with pytest.raises(GitHubAPIError) as exc_info:
            _dispatch(_make_client(handler))

        assert exc_info.value.status_code == 404
        assert exc_info.value.request_url.endswith(DISPATCH_PATH)

    def test_server_error_is_not_retried_for_dispatch(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502)

        with pytest.raises(TransientExternalFailure) as exc_info:
            _dispatch(_make_client(handler))

        assert len(calls) == 1
        assert exc_info.value.status_code == 502

    def test_connection_error_is_not_retried_for_dispatch(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientExternalFailure) as exc_info:
            _dispatch(_make_client(handler, max_retries=3))

        assert len(calls) == 1
        assert "1 attempt" in exc_info.value.message

    def test_read_timeout_is_not_retried_for_dispatch(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransientExternalFailure):
            _dispatch(_make_client(handler))

        assert len(calls) == 1


class TestRateLimits:

    def test_exhausted_primary_limit_raises_rate_limit_error(self):
        reset_at = int(time.time()) + 60

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403,
                headers={
                    "x-ratelimit-remaining": "0",
                    "x-ratelimit-reset": str(reset_at),
                },
            )

        with pytest.raises(RateLimitError) as exc_info:
            _dispatch(_make_client(handler))

        assert exc_info.value.status_code == 403
        assert "retry after" in exc_info.value.message
        assert isinstance(exc_info.value, TransientExternalFailure)

    def test_secondary_limit_uses_retry_after(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"retry-after": "30"})

        with pytest.raises(RateLimitError) as exc_info:
            _dispatch(_make_client(handler))

        assert exc_info.value.message.endswith("retry after 30s")
        assert exc_info.value.status_code == 429

    def test_plain_forbidden_is_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, headers={"x-ratelimit-remaining": "4999"})

        with pytest.raises(GitHubAPIError) as exc_info:
            _dispatch(_make_client(handler))

        assert exc_info.value.status_code == 403


class TestBackoff:

    def test_backoff_is_capped(self):
        client = GitHubClient(token="t", base_delay=1.0, max_delay=5.0)

        for attempt in range(10):
            delay = client._calculate_backoff(attempt)
            assert 0 <= delay <= min(2 ** attempt, 5.0)
