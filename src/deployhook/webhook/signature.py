"""Webhook signature verification.

GitHub signs every delivery with HMAC-SHA256 over the exact request body
and sends it as ``x-hub-signature-256: sha256=<hex>``. Verification must
run against the raw bytes; re-serializing parsed JSON changes the digest.
"""

import hashlib
import hmac
from typing import Optional, Union

from src.deployhook.errors import DeployhookError

SIGNATURE_PREFIX = "sha256="


class AuthenticationFailure(DeployhookError):
    """Raised when a webhook delivery has a missing or invalid signature."""

    def __init__(self, message: str = "Invalid webhook signature"):
        self.message = message
        super().__init__(message)


def compute_signature(payload: bytes, secret: Union[str, bytes]) -> str:
    """Compute the ``sha256=<hex>`` signature GitHub sends for a payload.

    Args:
        payload: The raw request body.
        secret: The shared webhook secret.

    Returns:
        The formatted signature header value.
    """
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    digest = hmac.new(key, payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: Union[str, bytes],
) -> bool:
    """Check a delivery's signature header against its raw body.

    The comparison runs in constant time. A missing header, a header without
    the ``sha256=`` prefix or an empty secret all fail closed.

    Args:
        payload: The raw request body bytes.
        signature_header: Value of the x-hub-signature-256 header.
        secret: The shared webhook secret.

    Returns:
        True if the signature matches, False otherwise.
    """
    if not secret or not signature_header:
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(
        expected.encode("ascii"),
        signature_header.encode("utf-8"),
    )


class SignatureVerifier:
    """Verifies deliveries against a fixed shared secret.

    Attributes:
        secret: The shared webhook secret.
    """

    def __init__(self, secret: str) -> None:
        self.secret = secret

    def verify(self, payload: bytes, signature_header: Optional[str]) -> bool:
        return verify_signature(payload, signature_header, self.secret)

    def require(self, payload: bytes, signature_header: Optional[str]) -> None:
        """Raise AuthenticationFailure unless the signature is valid."""
        if signature_header is None:
            raise AuthenticationFailure("Missing x-hub-signature-256 header")
        if not self.verify(payload, signature_header):
            raise AuthenticationFailure()
