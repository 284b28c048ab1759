"""Project registry and persistence.

This module answers "has this repository been provisioned?":
- Project: immutable record binding a repository to platform ids
- ProjectStore: find / insert-once persistence contract
- ProjectRegistry: find_or_create with at-most-once provisioning

State is persisted to PostgreSQL, keyed uniquely by repository id.
"""

from src.deployhook.registry.models import Project
from src.deployhook.registry.registry import ProjectRegistry, StoreConflict
from src.deployhook.registry.repository import PostgresProjectStore
from src.deployhook.registry.store import (
    InMemoryProjectStore,
    ProjectStore,
    StoreError,
)

__all__ = [
    # Models
    "Project",
    # Store
    "InMemoryProjectStore",
    "PostgresProjectStore",
    "ProjectStore",
    "StoreError",
    # Registry
    "ProjectRegistry",
    "StoreConflict",
]
