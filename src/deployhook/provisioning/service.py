"""Platform provisioning for repositories.

Creates the platform project and service a repository is deployed to.
The two remote calls are dependent: the service is created inside the
project, so a failure between them leaves an orphaned project behind.
The orphan is deleted before the failure is reported, and the
PartialProvisioningFailure raised says whether that cleanup succeeded.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from src.deployhook.errors import DeployhookError, TransientExternalFailure
from src.deployhook.platform.client import PlatformClient
from src.deployhook.registry.models import Project

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_IMAGE = "ghcr.io/railwayapp/nixpacks/node:latest"


@dataclass(frozen=True)
class ProvisionedResources:
    """Result of a successful provisioning.

    Attributes:
        platform_project_id: Id of the created platform project.
        platform_service_id: Id of the service created in that project.
    """

    platform_project_id: str
    platform_service_id: str


class ProvisioningError(DeployhookError):
    """Raised when provisioning fails before anything was created.

    Attributes:
        step: The remote call that failed.
        retryable: Whether the underlying failure was transient.
    """

    def __init__(self, message: str, step: str, retryable: bool = False):
        self.message = message
        self.step = step
        self.retryable = retryable
        super().__init__(message)


class PartialProvisioningFailure(ProvisioningError):
    """Raised when the project was created but the service was not.

    Attributes:
        platform_project_id: The project created by the first call.
        compensated: True if the orphaned project was deleted again.
    """

    def __init__(
        self,
        message: str,
        platform_project_id: str,
        compensated: bool,
        retryable: bool = False,
    ):
        super().__init__(message, step="create_service", retryable=retryable)
        self.platform_project_id = platform_project_id
        self.compensated = compensated


class ProvisioningService:
    """Creates platform projects and services for repositories.

    Attributes:
        platform: Client for the deploy platform API.
        service_image: Source image for created services.
    """

    def __init__(
        self,
        platform: PlatformClient,
        service_image: str = DEFAULT_SERVICE_IMAGE,
    ):
        self.platform = platform
        self.service_image = service_image

    async def provision(
        self,
        repository_full_name: str,
        repository_name: str,
    ) -> ProvisionedResources:
        """Create a platform project and service for a repository.

        Args:
            repository_full_name: "{owner}/{name}", used as the project name.
            repository_name: Repository name, used as the service name.

        Returns:
            The ids of the created project and service.

        Raises:
            ProvisioningError: If project creation failed. Nothing exists
                remotely; retrying from scratch is safe.
            PartialProvisioningFailure: If service creation failed after
                the project was created.
        """
        try:
            project_id = await self.platform.create_project(repository_full_name)
        except Exception as e:
            logger.error(
                "Platform project creation failed",
                extra={"repository": repository_full_name, "error": str(e)},
            )
            raise ProvisioningError(
                f"Failed to create platform project for {repository_full_name}: {e}",
                step="create_project",
                retryable=isinstance(e, TransientExternalFailure),
            ) from e

        try:
            service_id = await self.platform.create_service(
                project_id,
                repository_name,
                self.service_image,
            )
        except asyncio.CancelledError:
            logger.error(
                "Provisioning cancelled after project creation",
                extra={
                    "repository": repository_full_name,
                    "platform_project_id": project_id,
                },
            )
            await asyncio.shield(self._delete_orphan(project_id, repository_full_name))
            raise
        except Exception as e:
            compensated = await self._delete_orphan(project_id, repository_full_name)
            raise PartialProvisioningFailure(
                f"Failed to create platform service for {repository_full_name} "
                f"in project {project_id}: {e}"
                + ("" if compensated else " (orphaned project was not deleted)"),
                platform_project_id=project_id,
                compensated=compensated,
                retryable=isinstance(e, TransientExternalFailure),
            ) from e

        logger.info(
            "Provisioned platform resources",
            extra={
                "repository": repository_full_name,
                "platform_project_id": project_id,
                "platform_service_id": service_id,
            },
        )
        return ProvisionedResources(
            platform_project_id=project_id,
            platform_service_id=service_id,
        )

    async def discard(self, project: Project) -> None:
        """Delete the platform project of a Project that was never committed.

        Used when a concurrent delivery won the insert race.

        Raises:
            ExternalServiceError: If the platform refuses the deletion.
        """
        logger.info(
            "Discarding duplicate platform project",
            extra={
                "repository_id": project.repository_id,
                "platform_project_id": project.platform_project_id,
            },
        )
        await self.platform.delete_project(project.platform_project_id)

    async def _delete_orphan(
        self,
        project_id: str,
        repository_full_name: Optional[str] = None,
    ) -> bool:
        """Delete a project whose service was never created.

        Returns:
            True if deleted, False if the orphan could not be removed.
        """
        try:
            await self.platform.delete_project(project_id)
        except Exception as e:
            logger.error(
                "Failed to delete orphaned platform project",
                extra={
                    "repository": repository_full_name,
                    "platform_project_id": project_id,
                    "error": str(e),
                },
            )
            return False

        logger.warning(
            "Deleted orphaned platform project",
            extra={
                "repository": repository_full_name,
                "platform_project_id": project_id,
            },
        )
        return True
