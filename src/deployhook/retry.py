"""Async HTTP client base with retry and backoff.

Both remote APIs (the deploy platform's GraphQL endpoint and the GitHub
REST API) share this request loop:

- exponential backoff with full jitter between attempts
- retries on 408/429/5xx responses, timeouts and transport errors
- TransientExternalFailure once retries are exhausted
- a client-specific API error for any other 4xx/5xx response

Requests that create remote resources are marked non-idempotent. They are
only retried when the request provably never reached the server (connection
failures) or was explicitly rejected before processing (429). A timeout or
5xx on a mutation may have taken effect, so it is surfaced immediately
instead of risking a duplicate resource.
"""

import asyncio
import logging
import random
from typing import Any, Dict, Optional

import httpx

from src.deployhook.errors import ExternalServiceError, TransientExternalFailure


logger = logging.getLogger(__name__)


class RetryingHTTPClient:
    """Base class for async API clients with retry logic.

    Subclasses set ``service_name`` and implement ``_default_headers``.
    They may override ``_check_response`` for service-specific handling
    (rate limits) and ``_api_error`` to raise their own error type.

    Attributes:
        base_url: Base URL for the API.
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.
    """

    service_name = "remote"

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    # Status codes guaranteeing the request was not processed
    UNPROCESSED_STATUS_CODES = {429}

    def __init__(
        self,
        base_url: str,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        raise NotImplementedError

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    async def _check_response(self, response: httpx.Response) -> None:
        """Hook for service-specific response handling before retry checks."""

    def _api_error(self, response: httpx.Response) -> ExternalServiceError:
        return ExternalServiceError(
            service=self.service_name,
            message=f"{self.service_name} API error: {response.status_code}",
            status_code=response.status_code,
            response_body=response.text,
        )

    def _can_retry(
        self,
        attempt: int,
        retries: int,
        idempotent: bool,
        unprocessed: bool,
    ) -> bool:
        return attempt < retries and (idempotent or unprocessed)

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method.
            path: API path relative to base_url.
            json_data: Optional JSON body for the request.
            idempotent: Whether repeating the request is harmless.
            max_retries: Overrides the client's retry count for this call.

        Returns:
            The successful HTTP response.

        Raises:
            TransientExternalFailure: Retryable failure that persisted.
            ExternalServiceError: Non-retryable error response.
        """
        last_error: Optional[str] = None
        last_status: Optional[int] = None
        retries = self.max_retries if max_retries is None else max_retries

        for attempt in range(retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                )
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                last_error, last_status = str(e) or type(e).__name__, None
                if self._can_retry(attempt, retries, idempotent, unprocessed=True):
                    await self._backoff(
                        attempt, retries, path, "Connection failed, retrying"
                    )
                    continue
                break
            except httpx.TimeoutException as e:
                last_error, last_status = f"timeout: {e}", None
                if self._can_retry(attempt, retries, idempotent, unprocessed=False):
                    await self._backoff(attempt, retries, path, "Request timeout, retrying")
                    continue
                break
            except httpx.RequestError as e:
                last_error, last_status = str(e), None
                if self._can_retry(attempt, retries, idempotent, unprocessed=False):
                    await self._backoff(attempt, retries, path, "Request error, retrying")
                    continue
                break

            await self._check_response(response)

            if response.status_code in self.RETRYABLE_STATUS_CODES:
                last_error = f"HTTP {response.status_code}"
                last_status = response.status_code
                unprocessed = response.status_code in self.UNPROCESSED_STATUS_CODES
                if self._can_retry(attempt, retries, idempotent, unprocessed):
                    await self._backoff(
                        attempt,
                        retries,
                        path,
                        "Retryable error from API",
                        status_code=response.status_code,
                    )
                    continue
                break

            if response.status_code >= 400:
                logger.error(
                    "%s API error",
                    self.service_name,
                    extra={
                        "status_code": response.status_code,
                        "path": path,
                        "method": method,
                        "response_body": response.text[:500],
                    },
                )
                raise self._api_error(response)

            return response

        logger.error(
            "%s API request failed",
            self.service_name,
            extra={
                "path": path,
                "method": method,
                "attempts": attempt + 1,
                "last_error": last_error,
            },
        )
        raise TransientExternalFailure(
            service=self.service_name,
            message=(
                f"{self.service_name} request {method} {path} failed after "
                f"{attempt + 1} attempt(s): {last_error}"
            ),
            status_code=last_status,
        )

    async def _backoff(
        self,
        attempt: int,
        retries: int,
        path: str,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        delay = self._calculate_backoff(attempt)
        logger.warning(
            message,
            extra={
                "service": self.service_name,
                "status_code": status_code,
                "attempt": attempt + 1,
                "max_retries": retries,
                "delay": delay,
                "path": path,
            },
        )
        await asyncio.sleep(delay)
