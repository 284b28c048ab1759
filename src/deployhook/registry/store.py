"""Project store interface and in-memory implementation.

The store is the single piece of shared mutable state in the service.
It only needs to offer lookup by repository id and an insert that refuses
to overwrite an existing record; the registry builds at-most-once
provisioning on top of those two operations.
"""

import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from src.deployhook.errors import DeployhookError
from src.deployhook.registry.models import Project

logger = logging.getLogger(__name__)


class StoreError(DeployhookError):
    """Raised when a store operation fails.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


@runtime_checkable
class ProjectStore(Protocol):
    """Protocol defining the interface for Project persistence.

    Implementations must enforce uniqueness of repository_id: insert()
    never replaces an existing record.
    """

    async def get(self, repository_id: int) -> Optional[Project]:
        """Get the Project for a repository.

        Args:
            repository_id: The GitHub repository id.

        Returns:
            The Project if found, None otherwise.
        """
        ...

    async def insert(self, project: Project) -> bool:
        """Insert a new Project.

        Args:
            project: The fully provisioned Project to persist.

        Returns:
            True if inserted, False if a record for the repository
            already exists (uniqueness conflict).

        Raises:
            StoreError: If the insert fails for any other reason.
        """
        ...

    async def health_check(self) -> bool:
        """Return True if the store is reachable."""
        ...


class InMemoryProjectStore:
    """In-memory ProjectStore for local development and tests.

    Only safe within a single process; use PostgresProjectStore when more
    than one worker handles deliveries.
    """

    def __init__(self) -> None:
        self._projects: Dict[int, Project] = {}

    async def get(self, repository_id: int) -> Optional[Project]:
        return self._projects.get(repository_id)

    async def insert(self, project: Project) -> bool:
        if project.repository_id in self._projects:
            return False
        self._projects[project.repository_id] = project
        return True

    async def health_check(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._projects)
