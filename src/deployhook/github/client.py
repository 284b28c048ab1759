"""GitHub API client for triggering builder workflows.

This module provides an async wrapper around the GitHub REST API for
creating workflow_dispatch events. Workflows are addressed directly by
their file name, so no workflow discovery call is ever made.

Rate limits are detected and reported. A dispatch is attempted once and
any failure is reported to the caller.

Source:
- src/deployhook/retry.py (RetryingHTTPClient)
- src/deployhook/config.py (source_control_api_token, github_base_url)
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from src.deployhook.errors import ExternalServiceError, TransientExternalFailure
from src.deployhook.retry import RetryingHTTPClient


logger = logging.getLogger(__name__)


class GitHubAPIError(ExternalServiceError):
    """Raised when a GitHub API request fails with a non-retryable status.

    Attributes:
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        super().__init__(
            service="github",
            message=message,
            status_code=status_code,
            response_body=response_body,
        )
        self.request_url = request_url


class RateLimitError(TransientExternalFailure):
    """Raised when GitHub API rate limit is exceeded."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(service="github", message=message, status_code=status_code)


class GitHubClient(RetryingHTTPClient):
    """Async GitHub API client with rate limiting and retry logic.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     await client.create_workflow_dispatch(
        ...         "acme", "builder", "deploy.yml", "main", {"repo": "app"}
        ...     )
    """

    service_name = "github"

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        **kwargs: Any,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            **kwargs: Retry and transport options for RetryingHTTPClient.
        """
        super().__init__(base_url=base_url, **kwargs)
        self.token = token

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "deployhook/1.0",
        }

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    async def _check_response(self, response: httpx.Response) -> None:
        """Raise RateLimitError for exhausted primary or secondary limits."""
        if response.status_code == 403:
            remaining = self._parse_int_header(
                response.headers,
                "x-ratelimit-remaining",
            )
            if remaining == 0:
                self._raise_rate_limit(response)

        if response.status_code == 429:
            self._raise_rate_limit(response)

    def _raise_rate_limit(self, response: httpx.Response) -> None:
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
            },
        )

        message = "GitHub API rate limit exceeded"
        if retry_after is not None:
            message += f", retry after {retry_after}s"
        raise RateLimitError(message=message, status_code=response.status_code)

    def _api_error(self, response: httpx.Response) -> GitHubAPIError:
        return GitHubAPIError(
            message=f"GitHub API error: {response.status_code}",
            status_code=response.status_code,
            response_body=response.text,
            request_url=str(response.url),
        )

    async def create_workflow_dispatch(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        ref: str,
        inputs: Dict[str, str],
    ) -> None:
        """Trigger a workflow_dispatch event.

        Args:
            owner: Owner of the repository hosting the workflow.
            repo: Name of the repository hosting the workflow.
            workflow_id: Workflow file name (e.g. "deployer.yml") or numeric id.
            ref: Git ref the workflow runs on.
            inputs: Workflow inputs. GitHub requires string values.

        Raises:
            GitHubAPIError: If GitHub rejects the request (404 when the
                workflow file does not exist).
            TransientExternalFailure: If the request times out, cannot
                connect or gets a 5xx. It is attempted once.
        """
        path = f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches"

        logger.info(
            "Creating workflow dispatch",
            extra={
                "owner": owner,
                "repo": repo,
                "workflow_id": workflow_id,
                "ref": ref,
            },
        )

        # Responds 204 No Content. Failures go to the caller without retry.
        await self._request(
            method="POST",
            path=path,
            json_data={"ref": ref, "inputs": inputs},
            idempotent=False,
            max_retries=0,
        )
