"""GitHub webhook intake for deployhook.

This module authenticates and classifies inbound GitHub deliveries:
- push - commits pushed to the default branch
- installation_repositories.added - repositories granted to the app

Every delivery is verified against the shared secret (HMAC-SHA256 over
the raw body) before its payload is looked at.
"""

from .classifier import EventClassifier
from .models import EventType, RepositoryRef
from .signature import (
    AuthenticationFailure,
    SignatureVerifier,
    compute_signature,
    verify_signature,
)

__all__ = [
    "AuthenticationFailure",
    "EventClassifier",
    "EventType",
    "RepositoryRef",
    "SignatureVerifier",
    "compute_signature",
    "verify_signature",
]
