"""Domain entities: graph model, workflows, versions, executions."""

from autoflow.domain.entities.execution import ExecutionInstance, ExecutionLogEntry
from autoflow.domain.entities.graph import Edge, Node, WorkflowGraph
from autoflow.domain.entities.workflow import (
    OrganizationRoleEntity,
    WorkflowEntity,
    WorkflowPermissionEntity,
    WorkflowVersionEntity,
)

__all__ = [
    "Node",
    "Edge",
    "WorkflowGraph",
    "WorkflowEntity",
    "WorkflowVersionEntity",
    "WorkflowPermissionEntity",
    "OrganizationRoleEntity",
    "ExecutionInstance",
    "ExecutionLogEntry",
]
