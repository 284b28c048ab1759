"""Builder workflow dispatch for provisioned repositories."""

from src.deployhook.dispatch.dispatcher import (
    BuildDispatcher,
    DispatchFailure,
    WorkflowNotFound,
)

__all__ = [
    "BuildDispatcher",
    "DispatchFailure",
    "WorkflowNotFound",
]
