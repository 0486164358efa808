"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill
(SQL via SQLAlchemy, or in-process memory). All types reference domain
entities only; no infrastructure imports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from autoflow.domain.entities.execution import ExecutionInstance, ExecutionLogEntry
    from autoflow.domain.entities.workflow import (
        WorkflowEntity,
        WorkflowPermissionEntity,
        WorkflowVersionEntity,
    )
    from autoflow.domain.enums import WorkflowRole


# Workflow repository interface
class IWorkflowRepository(Protocol):
    """Protocol for workflow rows and their version pointers."""

    async def create(
        self, workflow: WorkflowEntity, first_version: WorkflowVersionEntity
    ) -> WorkflowEntity:
        """Persist a new workflow together with its first version (one transaction)."""

    async def get_by_id(self, workflow_id: str) -> WorkflowEntity | None:
        """Return workflow by ID."""

    async def list_by_organization(
        self, organization_id: str, *, active_only: bool = False
    ) -> list[WorkflowEntity]:
        """Return workflows of an organization, oldest first."""

    async def list_triggerable(
        self, organization_id: str, event_type: str
    ) -> list[WorkflowEntity]:
        """Return active, published workflows of the organization whose trigger_type equals event_type."""

    async def append_version(
        self,
        workflow_id: str,
        expected_current_version_id: str | None,
        version: WorkflowVersionEntity,
    ) -> bool:
        """Insert version and advance current_version_id iff it still equals expected_current_version_id.

        Compare-and-swap: returns False (and writes nothing) when another save won.
        """

    async def update_published(
        self,
        workflow_id: str,
        published_version_id: str,
        trigger_type: str,
        trigger_config: dict[str, Any],
        *,
        current_version_id: str | None = None,
    ) -> WorkflowEntity | None:
        """Point published_version_id (and optionally current_version_id) at an existing version."""

    async def set_active(self, workflow_id: str, is_active: bool) -> WorkflowEntity | None:
        """Enable or disable triggering. Returns None if the workflow does not exist."""


# Workflow version repository interface
class IWorkflowVersionRepository(Protocol):
    """Protocol for reading immutable version snapshots. Versions are written only via append_version."""

    async def get_by_id(self, version_id: str) -> WorkflowVersionEntity | None:
        """Return version by ID."""

    async def list_by_workflow(self, workflow_id: str) -> list[WorkflowVersionEntity]:
        """Return every version of a workflow, ascending version_number."""

    async def get_latest_number(self, workflow_id: str) -> int:
        """Return the highest version_number of a workflow (0 when none)."""


# Execution repository interface
class IExecutionRepository(Protocol):
    """Protocol for execution instances and their append-only step log."""

    async def create(self, instance: ExecutionInstance) -> ExecutionInstance:
        """Persist a new (pending) instance."""

    async def update(self, instance: ExecutionInstance) -> ExecutionInstance:
        """Persist status, context, timestamps and error of an existing instance."""

    async def get_by_id(self, instance_id: str) -> ExecutionInstance | None:
        """Return instance by ID."""

    async def list_by_organization(
        self,
        organization_id: str,
        *,
        workflow_id: str | None = None,
        limit: int = 50,
    ) -> list[ExecutionInstance]:
        """Return instances of an organization, newest first."""

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append one step record. Entries are never updated or deleted."""

    async def list_logs(self, instance_id: str) -> list[ExecutionLogEntry]:
        """Return step records of an instance in sequence order."""


# Permission repository interface
class IPermissionRepository(Protocol):
    """Protocol for per-workflow grants and organization-wide roles."""

    async def get_grant(self, workflow_id: str, user_id: str) -> WorkflowRole | None:
        """Return the explicit role of a user on a workflow."""

    async def upsert_grant(
        self, workflow_id: str, user_id: str, role: WorkflowRole
    ) -> WorkflowPermissionEntity:
        """Create or replace the user's grant on the workflow."""

    async def delete_grant(self, workflow_id: str, user_id: str) -> bool:
        """Remove a grant. Returns False if there was none."""

    async def list_grants(self, workflow_id: str) -> list[WorkflowPermissionEntity]:
        """Return all explicit grants on a workflow."""

    async def get_organization_role(
        self, organization_id: str, user_id: str
    ) -> WorkflowRole | None:
        """Return the user's organization-wide role."""

    async def set_organization_role(
        self, organization_id: str, user_id: str, role: WorkflowRole
    ) -> None:
        """Create or replace the user's organization-wide role."""
