"""Builder workflow dispatch.

Triggers the remote build pipeline for a provisioned repository. The
workflow is addressed directly by its stable file name; a missing workflow
surfaces as a 404 from the dispatch call itself.
"""

import logging

from src.deployhook.errors import (
    DeployhookError,
    ExternalServiceError,
    TransientExternalFailure,
)
from src.deployhook.github.client import GitHubClient

logger = logging.getLogger(__name__)


class DispatchFailure(DeployhookError):
    """Raised when the build workflow could not be triggered.

    Attributes:
        retryable: Whether the underlying failure was transient.
    """

    def __init__(self, message: str, retryable: bool = False):
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class WorkflowNotFound(DispatchFailure):
    """Raised when the builder workflow file does not exist."""


class BuildDispatcher:
    """Dispatches the builder workflow for a repository.

    Attributes:
        github_client: Client used to create the workflow_dispatch event.
        workflow_owner: Owner of the repository hosting the workflow.
        workflow_repo: Name of the repository hosting the workflow.
        workflow_file: Workflow file name, e.g. "deployer.yml".
        ref: Git ref the workflow runs on.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        workflow_owner: str,
        workflow_repo: str,
        workflow_file: str = "deployer.yml",
        ref: str = "main",
    ):
        self.github_client = github_client
        self.workflow_owner = workflow_owner
        self.workflow_repo = workflow_repo
        self.workflow_file = workflow_file
        self.ref = ref

    async def dispatch(
        self,
        owner: str,
        repo: str,
        platform_service_id: str,
        repository_id: int,
    ) -> None:
        """Trigger the builder workflow for a repository.

        Args:
            owner: Owner login of the repository to build.
            repo: Name of the repository to build.
            platform_service_id: Platform service the build deploys to.
            repository_id: GitHub id of the repository to build.

        Raises:
            WorkflowNotFound: If the workflow file does not exist.
            DispatchFailure: If the dispatch call failed for any other reason.
        """
        inputs = {
            "owner": owner,
            "repo": repo,
            "platformServiceId": platform_service_id,
            "repositoryId": str(repository_id),
        }

        try:
            await self.github_client.create_workflow_dispatch(
                owner=self.workflow_owner,
                repo=self.workflow_repo,
                workflow_id=self.workflow_file,
                ref=self.ref,
                inputs=inputs,
            )
        except ExternalServiceError as e:
            if e.status_code == 404:
                raise WorkflowNotFound(
                    f"Workflow {self.workflow_file} not found in "
                    f"{self.workflow_owner}/{self.workflow_repo}"
                ) from e
            raise DispatchFailure(
                f"Failed to dispatch {self.workflow_file} for {owner}/{repo}: "
                f"{e.message}",
                retryable=isinstance(e, TransientExternalFailure),
            ) from e

        logger.info(
            "Dispatched builder workflow",
            extra={
                "owner": owner,
                "repo": repo,
                "repository_id": repository_id,
                "platform_service_id": platform_service_id,
                "workflow": self.workflow_file,
            },
        )
