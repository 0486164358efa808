"""SQL repositories (storage_backend = "sql")."""

from autoflow.infrastructure.persistence.repositories.execution_repo import (
    ExecutionRepository,
)
from autoflow.infrastructure.persistence.repositories.permission_repo import (
    PermissionRepository,
)
from autoflow.infrastructure.persistence.repositories.workflow_repo import (
    WorkflowRepository,
    WorkflowVersionRepository,
)

__all__ = [
    "ExecutionRepository",
    "PermissionRepository",
    "WorkflowRepository",
    "WorkflowVersionRepository",
]
