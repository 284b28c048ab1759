"""Project registry with at-most-once provisioning per repository.

The registry is the only component allowed to create Project records.
``find_or_create`` combines two guards:

- an in-process lock per repository id, held across
  lookup → provision → insert, so duplicate deliveries handled by the same
  worker never provision twice;
- the store's insert-once contract, so that when several workers race the
  loser notices the conflict, discards the platform resources it created
  and returns the winner's record.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

from src.deployhook.errors import DeployhookError
from src.deployhook.registry.models import Project
from src.deployhook.registry.store import ProjectStore

logger = logging.getLogger(__name__)

CreateFn = Callable[[], Awaitable[Project]]
DiscardFn = Callable[[Project], Awaitable[None]]


class StoreConflict(DeployhookError):
    """Raised when a provisioning race at insert time cannot be resolved.

    Attributes:
        repository_id: The repository both writers provisioned.
        orphaned: The losing writer's Project, whose platform resources
            may still exist.
    """

    def __init__(
        self,
        repository_id: int,
        message: str,
        orphaned: Optional[Project] = None,
    ):
        self.repository_id = repository_id
        self.orphaned = orphaned
        self.message = message
        super().__init__(message)


class _KeyedLocks:
    """asyncio locks keyed by repository id, dropped when unused."""

    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, key: int) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ProjectRegistry:
    """Idempotent mapping from repository id to Project.

    Attributes:
        store: The ProjectStore holding committed records.

    Example:
        >>> registry = ProjectRegistry(InMemoryProjectStore())
        >>> project = await registry.find_or_create(42, provision_repo_42)
    """

    def __init__(self, store: ProjectStore):
        self.store = store
        self._locks = _KeyedLocks()

    async def find_or_create(
        self,
        repository_id: int,
        create_fn: CreateFn,
        discard_fn: Optional[DiscardFn] = None,
    ) -> Project:
        """Return the Project for a repository, provisioning it if absent.

        ``create_fn`` is only awaited when no record exists. Its result is
        persisted before being returned, so a caller never sees a Project
        that is not committed.

        Args:
            repository_id: The GitHub repository id.
            create_fn: Coroutine factory performing provisioning and
                returning the complete Project.
            discard_fn: Called with this writer's Project when another
                writer inserted first, or when the insert failed without
                committing it.

        Returns:
            The committed Project (pre-existing, freshly created, or the
            winner of a concurrent race).

        Raises:
            StoreConflict: If a race was lost and either the winner cannot
                be read back or the loser's resources could not be discarded.
            StoreError: If the insert fails. The provisioned resources are
                discarded first.
            Exception: Anything raised by create_fn or the store.
        """
        existing = await self.store.get(repository_id)
        if existing is not None:
            return existing

        async with self._locks.hold(repository_id):
            existing = await self.store.get(repository_id)
            if existing is not None:
                logger.info(
                    "Project created by concurrent delivery",
                    extra={"repository_id": repository_id},
                )
                return existing

            project = await create_fn()
            if project.repository_id != repository_id:
                raise ValueError(
                    f"create_fn returned project for repository "
                    f"{project.repository_id}, expected {repository_id}"
                )

            try:
                inserted = await self.store.insert(project)
            except BaseException:
                # Also reached on cancellation
                await asyncio.shield(self._discard_uncommitted(project, discard_fn))
                raise

            if inserted:
                logger.info(
                    "Registered project",
                    extra={
                        "repository_id": repository_id,
                        "platform_project_id": project.platform_project_id,
                        "platform_service_id": project.platform_service_id,
                    },
                )
                return project

            return await self._resolve_conflict(project, discard_fn)

    async def _discard_uncommitted(
        self,
        project: Project,
        discard_fn: Optional[DiscardFn],
    ) -> None:
        """Discard resources whose insert failed, unless the record landed anyway.

        Never raises, so the insert failure is what reaches the caller.
        """
        repository_id = project.repository_id
        if discard_fn is None:
            return

        try:
            committed = await self.store.get(repository_id)
        except Exception as e:
            # A committed record may reference this project
            logger.error(
                "Insert failed and commit state is unknown, keeping platform project",
                extra={
                    "repository_id": repository_id,
                    "platform_project_id": project.platform_project_id,
                    "error": str(e),
                },
            )
            return

        if (
            committed is not None
            and committed.platform_project_id == project.platform_project_id
        ):
            return

        logger.warning(
            "Insert failed, discarding uncommitted platform project",
            extra={
                "repository_id": repository_id,
                "platform_project_id": project.platform_project_id,
            },
        )
        try:
            await discard_fn(project)
        except Exception as e:
            logger.error(
                "Failed to discard uncommitted platform project",
                extra={
                    "repository_id": repository_id,
                    "platform_project_id": project.platform_project_id,
                    "error": str(e),
                },
            )

    async def _resolve_conflict(
        self,
        project: Project,
        discard_fn: Optional[DiscardFn],
    ) -> Project:
        """Discard the losing writer's resources and return the winner."""
        repository_id = project.repository_id
        logger.warning(
            "Lost provisioning race, discarding duplicate resources",
            extra={
                "repository_id": repository_id,
                "platform_project_id": project.platform_project_id,
            },
        )

        if discard_fn is not None:
            try:
                await discard_fn(project)
            except Exception as e:
                logger.error(
                    "Failed to discard duplicate platform project",
                    extra={
                        "repository_id": repository_id,
                        "platform_project_id": project.platform_project_id,
                        "error": str(e),
                    },
                )
                raise StoreConflict(
                    repository_id,
                    f"Lost provisioning race for repository {repository_id} "
                    f"and could not discard platform project "
                    f"{project.platform_project_id}: {e}",
                    orphaned=project,
                ) from e

        winner = await self.store.get(repository_id)
        if winner is None:
            raise StoreConflict(
                repository_id,
                f"Insert conflict for repository {repository_id} "
                f"but no committed project was found",
                orphaned=None if discard_fn is not None else project,
            )
        return winner
