"""Deploy platform API client (projects and services)."""

from src.deployhook.platform.client import PlatformAPIError, PlatformClient

__all__ = [
    "PlatformAPIError",
    "PlatformClient",
]
