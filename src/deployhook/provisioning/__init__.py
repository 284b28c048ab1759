"""Platform provisioning for repositories.

Creates one platform project and one service per repository, deleting
the project again when the service step fails.
"""

from src.deployhook.provisioning.service import (
    PartialProvisioningFailure,
    ProvisionedResources,
    ProvisioningError,
    ProvisioningService,
)

__all__ = [
    "PartialProvisioningFailure",
    "ProvisionedResources",
    "ProvisioningError",
    "ProvisioningService",
]
