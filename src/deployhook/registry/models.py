"""Project registry models.

A Project binds a GitHub repository to the platform project and service
provisioned for it. Records are written once and never updated: a Project
is either absent or present with both platform identifiers populated.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from src.deployhook.webhook.models import MAX_REPOSITORY_ID


class Project(BaseModel):
    """Persisted provisioning state for one repository.

    Attributes:
        repository_id: GitHub repository id. Primary key.
        repository_full_name: "{owner}/{name}" at creation time. Display only.
        platform_project_id: Identifier of the provisioned platform project.
        platform_service_id: Identifier of the platform service in that project.
        created_at: When the record was created (UTC).
    """

    model_config = ConfigDict(frozen=True)

    repository_id: int = Field(
        ...,
        gt=0,
        le=MAX_REPOSITORY_ID,
        description="GitHub repository id (positive 64-bit integer)",
    )

    repository_full_name: str = Field(
        ...,
        min_length=1,
        description='Repository path in format "{owner}/{name}" at creation time',
    )

    platform_project_id: str = Field(
        ...,
        min_length=1,
        description="Opaque identifier of the provisioned platform project",
    )

    platform_service_id: str = Field(
        ...,
        min_length=1,
        description="Opaque identifier of the provisioned platform service",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the record was created (UTC)",
    )
