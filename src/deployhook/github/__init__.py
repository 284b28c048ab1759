"""GitHub API client for builder workflow dispatch.

Includes rate limiting and retry logic for API resilience.
"""

from src.deployhook.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "RateLimitError",
]
