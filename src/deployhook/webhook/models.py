"""GitHub webhook event models for deployhook.

This module defines the data models produced by event classification.
Only two GitHub event types lead to work: pushes to a repository's default
branch, and repositories being added to an app installation.

The models use Pydantic for validation, consistent with the service's
configuration approach in config.py.
"""

from enum import Enum

from pydantic import BaseModel, Field

# Largest value of a signed 64-bit integer (PostgreSQL BIGINT)
MAX_REPOSITORY_ID = 2**63 - 1


class EventType(str, Enum):
    """GitHub event types (x-github-event header) that deployhook acts on.

    Attributes:
        PUSH: Commits pushed to a branch. Only default-branch pushes count.
        INSTALLATION_REPOSITORIES: Repositories added to or removed from
            an app installation. Only additions count.
    """

    PUSH = "push"
    INSTALLATION_REPOSITORIES = "installation_repositories"


class RepositoryRef(BaseModel):
    """A repository that requires provisioning and a build.

    Attributes:
        repository_id: GitHub's immutable numeric repository identifier.
        full_name: Repository path in format "{owner}/{name}".
        owner_login: The repository owner (user or organization).
        name: The repository name without owner prefix.
    """

    repository_id: int = Field(
        ...,
        gt=0,
        le=MAX_REPOSITORY_ID,
        description="GitHub repository id (positive 64-bit integer)",
    )

    full_name: str = Field(
        ...,
        min_length=3,
        description='Repository path in format "{owner}/{name}"',
    )

    owner_login: str = Field(
        ...,
        min_length=1,
        description="The repository owner (user or organization)",
    )

    name: str = Field(
        ...,
        min_length=1,
        description="The repository name without owner prefix",
    )
