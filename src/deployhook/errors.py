"""Shared error taxonomy for the deployhook service.

Component-specific errors (AuthenticationFailure, PartialProvisioningFailure,
DispatchFailure, StoreConflict, ...) live next to the component that raises
them and derive from the classes defined here.
"""

from typing import Optional


class DeployhookError(Exception):
    """Base class for all errors raised by the deployhook service."""


class ExternalServiceError(DeployhookError):
    """Raised when a call to a remote API fails.

    Attributes:
        service: Name of the remote service ("platform", "github", ...).
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
        response_body: Response body from the remote API, if any.
    """

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        self.service = service
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class TransientExternalFailure(ExternalServiceError):
    """Raised when a remote call keeps timing out or returning 5xx/429.

    The client has already exhausted its own retries. The operation is safe
    for the caller (or the webhook sender) to retry since provisioning is
    idempotent per repository id.
    """
