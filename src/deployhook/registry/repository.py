"""PostgreSQL store for Project records.

This module implements the ProjectStore protocol using asyncpg for async
PostgreSQL access. It provides:
- Connection pooling for production use
- Insert-once semantics via the repository_id primary key
  (INSERT ... ON CONFLICT DO NOTHING)

Source:
- migrations/001_projects.sql (schema definition)
- src/deployhook/registry/store.py (ProjectStore protocol)
"""

import logging
from datetime import timezone
from typing import Any, Optional

import asyncpg

from src.deployhook.registry.models import Project
from src.deployhook.registry.store import StoreError


logger = logging.getLogger(__name__)


class PostgresProjectStore:
    """PostgreSQL implementation of the ProjectStore protocol.

    The store expects the schema from migrations/001_projects.sql to be
    applied before use.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresProjectStore("postgresql://...") as store:
        ...     project = await store.get(42)
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            StoreError: If the pool is not initialized.
        """
        if self._pool is None:
            raise StoreError(
                "Database pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            StoreError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise StoreError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresProjectStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    async def get(self, repository_id: int) -> Optional[Project]:
        """Get the Project for a repository.

        Raises:
            StoreError: If the query fails.
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT
                        repository_id,
                        repository_full_name,
                        platform_project_id,
                        platform_service_id,
                        created_at
                    FROM projects
                    WHERE repository_id = $1
                    """,
                    repository_id,
                )
        except StoreError:
            raise
        except Exception as e:
            logger.error(
                "Failed to get project",
                extra={"repository_id": repository_id, "error": str(e)},
            )
            raise StoreError(
                f"Failed to get project: {e}",
                original_error=e,
            ) from e

        if row is None:
            return None

        created_at = row["created_at"]
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return Project(
            repository_id=row["repository_id"],
            repository_full_name=row["repository_full_name"],
            platform_project_id=row["platform_project_id"],
            platform_service_id=row["platform_service_id"],
            created_at=created_at,
        )

    async def insert(self, project: Project) -> bool:
        """Insert a Project unless one already exists for the repository.

        Returns:
            True if inserted, False on a repository_id conflict.

        Raises:
            StoreError: If the insert fails.
        """
        try:
            async with self.pool.acquire() as conn:
                inserted = await conn.fetchval(
                    """
                    INSERT INTO projects (
                        repository_id,
                        repository_full_name,
                        platform_project_id,
                        platform_service_id,
                        created_at
                    ) VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (repository_id) DO NOTHING
                    RETURNING repository_id
                    """,
                    project.repository_id,
                    project.repository_full_name,
                    project.platform_project_id,
                    project.platform_service_id,
                    project.created_at,
                )
        except StoreError:
            raise
        except Exception as e:
            logger.error(
                "Failed to insert project",
                extra={"repository_id": project.repository_id, "error": str(e)},
            )
            raise StoreError(
                f"Failed to insert project: {e}",
                original_error=e,
            ) from e

        if inserted is None:
            logger.warning(
                "Project already exists",
                extra={"repository_id": project.repository_id},
            )
            return False

        logger.info(
            "Saved project",
            extra={
                "repository_id": project.repository_id,
                "platform_project_id": project.platform_project_id,
                "platform_service_id": project.platform_service_id,
            },
        )
        return True

    async def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False
