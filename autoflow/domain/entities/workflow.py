"""Workflow domain entities.

A workflow is a tenant-owned, versioned graph definition. Its versions
are immutable snapshots; the workflow row only moves pointers between
them (current head for editing, published version for execution).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from autoflow.domain.entities.graph import WorkflowGraph
from autoflow.domain.enums import WorkflowRole


@dataclass
class WorkflowEntity:
    """Domain entity for a workflow definition."""

    id: str
    organization_id: str
    name: str
    trigger_type: str
    trigger_config: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    is_active: bool = True
    current_version_id: str | None = None
    published_version_id: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def belongs_to_organization(self, organization_id: str) -> bool:
        """Return whether this workflow belongs to the given organization."""
        return self.organization_id == organization_id

    def can_trigger_on(self, event_type: str) -> bool:
        """Return whether this workflow is active, published and matches the event type."""
        return (
            self.is_active
            and self.published_version_id is not None
            and self.trigger_type == event_type
        )


@dataclass(frozen=True)
class WorkflowVersionEntity:
    """Immutable snapshot of a validated graph."""

    id: str
    workflow_id: str
    version_number: int
    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]
    created_by: str | None
    created_at: datetime | None
    name: str | None = None

    @property
    def graph(self) -> WorkflowGraph:
        return WorkflowGraph.build(self.nodes, self.edges)


@dataclass(frozen=True)
class WorkflowPermissionEntity:
    """Explicit per-workflow role grant."""

    workflow_id: str
    user_id: str
    role: WorkflowRole


@dataclass(frozen=True)
class OrganizationRoleEntity:
    """Organization-wide role; fallback when a workflow has no explicit grant."""

    organization_id: str
    user_id: str
    role: WorkflowRole
