"""ORM models. Importing this package registers every table on Base.metadata."""

from autoflow.infrastructure.persistence.models.workflow import (
    OrganizationRole,
    Workflow,
    WorkflowExecution,
    WorkflowExecutionLog,
    WorkflowPermission,
    WorkflowVersion,
)

__all__ = [
    "OrganizationRole",
    "Workflow",
    "WorkflowExecution",
    "WorkflowExecutionLog",
    "WorkflowPermission",
    "WorkflowVersion",
]
