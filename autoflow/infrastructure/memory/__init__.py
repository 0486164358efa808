"""In-process storage backend."""

from autoflow.infrastructure.memory.repositories import (
    InMemoryExecutionRepository,
    InMemoryPermissionRepository,
    InMemoryStore,
    InMemoryWorkflowRepository,
    InMemoryWorkflowVersionRepository,
)

__all__ = [
    "InMemoryStore",
    "InMemoryWorkflowRepository",
    "InMemoryWorkflowVersionRepository",
    "InMemoryExecutionRepository",
    "InMemoryPermissionRepository",
]
