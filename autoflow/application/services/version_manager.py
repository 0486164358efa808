"""Version manager: immutable graph snapshots with publish and rollback.

Every save appends a new WorkflowVersion; prior versions are never mutated
or deleted. Concurrent edits are guarded by optimistic concurrency: a save
names the version it was based on and is rejected when current_version_id
has moved since. Authorization and validation run before any write, so a
rejected call leaves no partial state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from autoflow.application.interfaces.repositories import (
    IWorkflowRepository,
    IWorkflowVersionRepository,
)
from autoflow.application.services.graph_validator import GraphValidator
from autoflow.application.services.permission_service import PermissionService
from autoflow.application.services.trigger_config_resolver import resolve_trigger_config
from autoflow.domain.entities.graph import Edge, Node, WorkflowGraph
from autoflow.domain.entities.workflow import WorkflowEntity, WorkflowVersionEntity
from autoflow.domain.enums import WorkflowRole
from autoflow.domain.exceptions import (
    ResourceNotFoundException,
    StaleVersionException,
    ValidationException,
)
from autoflow.shared.telemetry.logging import get_logger
from autoflow.shared.telemetry.tracing import traced
from autoflow.shared.utils.datetime import utc_now
from autoflow.shared.utils.generators import generate_cuid

logger = get_logger(__name__)

NodesIn = Iterable[Node | Mapping[str, Any]]
EdgesIn = Iterable[Edge | Mapping[str, Any]]


class VersionManager:
    """Creates workflows and moves their version pointers."""

    def __init__(
        self,
        workflow_repo: IWorkflowRepository,
        version_repo: IWorkflowVersionRepository,
        validator: GraphValidator,
        permissions: PermissionService,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.version_repo = version_repo
        self.validator = validator
        self.permissions = permissions

    def _snapshot(
        self,
        workflow_id: str,
        version_number: int,
        graph: WorkflowGraph,
        actor_id: str,
        name: str | None,
    ) -> WorkflowVersionEntity:
        return WorkflowVersionEntity(
            id=generate_cuid(),
            workflow_id=workflow_id,
            version_number=version_number,
            nodes=graph.node_dicts(),
            edges=graph.edge_dicts(),
            created_by=actor_id,
            created_at=utc_now(),
            name=name,
        )

    async def _get_workflow_or_raise(self, workflow_id: str) -> WorkflowEntity:
        workflow = await self.workflow_repo.get_by_id(workflow_id)
        if workflow is None:
            raise ResourceNotFoundException("workflow", workflow_id)
        return workflow

    async def _get_version_of(self, workflow_id: str, version_id: str) -> WorkflowVersionEntity:
        version = await self.version_repo.get_by_id(version_id)
        if version is None or version.workflow_id != workflow_id:
            raise ResourceNotFoundException("workflow_version", version_id)
        return version

    @traced("version_manager.create_workflow")
    async def create_workflow(
        self,
        organization_id: str,
        name: str,
        nodes: NodesIn,
        edges: EdgesIn,
        actor_id: str,
        *,
        description: str | None = None,
        is_active: bool = True,
        publish: bool = False,
    ) -> WorkflowEntity:
        """Create a workflow with version 1 and make actor_id its admin.

        Requires organization role editor (approver when publish=True).

        Raises:
            AuthorizationException: If the actor's organization role is too low.
            GraphValidationException: If the graph is invalid.
        """
        if not name or not name.strip():
            raise ValidationException("Workflow name is required", field="name")
        required = WorkflowRole.APPROVER if publish else WorkflowRole.EDITOR
        await self.permissions.require_organization_role(organization_id, actor_id, required)
        graph = self.validator.ensure_valid(nodes, edges)
        trigger_type, trigger_config = resolve_trigger_config(graph.nodes)

        workflow_id = generate_cuid()
        version = self._snapshot(workflow_id, 1, graph, actor_id, name)
        now = utc_now()
        workflow = WorkflowEntity(
            id=workflow_id,
            organization_id=organization_id,
            name=name.strip(),
            description=description,
            trigger_type=trigger_type,
            trigger_config=trigger_config,
            is_active=is_active,
            current_version_id=version.id,
            published_version_id=version.id if publish else None,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        created = await self.workflow_repo.create(workflow, version)
        await self.permissions.assign_owner(workflow_id, actor_id)
        logger.info(
            "Created workflow %s (%s) in organization %s, trigger %s",
            workflow_id,
            name,
            organization_id,
            trigger_type,
        )
        return created

    @traced("version_manager.save_draft")
    async def save_draft(
        self,
        workflow_id: str,
        nodes: NodesIn,
        edges: EdgesIn,
        actor_id: str,
        *,
        base_version_id: str | None,
        name: str | None = None,
    ) -> str:
        """Validate and append a new version; advance current_version_id.

        Returns:
            The new version id.

        Raises:
            AuthorizationException: If the actor is below editor.
            StaleVersionException: If base_version_id is no longer current.
            GraphValidationException: If the graph is invalid.
        """
        await self.permissions.require_permission(workflow_id, actor_id, WorkflowRole.EDITOR)
        workflow = await self._get_workflow_or_raise(workflow_id)
        if workflow.current_version_id != base_version_id:
            raise StaleVersionException(workflow_id, base_version_id, workflow.current_version_id)
        graph = self.validator.ensure_valid(nodes, edges)

        next_number = await self.version_repo.get_latest_number(workflow_id) + 1
        version = self._snapshot(workflow_id, next_number, graph, actor_id, name)
        swapped = await self.workflow_repo.append_version(workflow_id, base_version_id, version)
        if not swapped:
            latest = await self._get_workflow_or_raise(workflow_id)
            raise StaleVersionException(workflow_id, base_version_id, latest.current_version_id)
        logger.info(
            "Saved workflow %s version %d (%s) by %s",
            workflow_id,
            next_number,
            version.id,
            actor_id,
        )
        return version.id

    @traced("version_manager.publish")
    async def publish(self, workflow_id: str, version_id: str, actor_id: str) -> WorkflowEntity:
        """Make version_id the version new executions run. Requires approver."""
        await self.permissions.require_permission(workflow_id, actor_id, WorkflowRole.APPROVER)
        version = await self._get_version_of(workflow_id, version_id)
        trigger_type, trigger_config = resolve_trigger_config(version.graph.nodes)
        updated = await self.workflow_repo.update_published(
            workflow_id, version.id, trigger_type, trigger_config
        )
        if updated is None:
            raise ResourceNotFoundException("workflow", workflow_id)
        logger.info("Published workflow %s version %d by %s", workflow_id, version.version_number, actor_id)
        return updated

    @traced("version_manager.rollback")
    async def rollback(
        self, workflow_id: str, target_version_id: str, actor_id: str
    ) -> WorkflowEntity:
        """Repoint current and published versions at an earlier snapshot. Requires approver.

        History is untouched; the next save is based on target_version_id.
        """
        await self.permissions.require_permission(workflow_id, actor_id, WorkflowRole.APPROVER)
        version = await self._get_version_of(workflow_id, target_version_id)
        trigger_type, trigger_config = resolve_trigger_config(version.graph.nodes)
        updated = await self.workflow_repo.update_published(
            workflow_id,
            version.id,
            trigger_type,
            trigger_config,
            current_version_id=version.id,
        )
        if updated is None:
            raise ResourceNotFoundException("workflow", workflow_id)
        logger.info(
            "Rolled back workflow %s to version %d by %s",
            workflow_id,
            version.version_number,
            actor_id,
        )
        return updated

    @traced("version_manager.set_active")
    async def set_active(self, workflow_id: str, is_active: bool, actor_id: str) -> WorkflowEntity:
        """Enable or disable event triggering. Requires approver."""
        await self.permissions.require_permission(workflow_id, actor_id, WorkflowRole.APPROVER)
        updated = await self.workflow_repo.set_active(workflow_id, is_active)
        if updated is None:
            raise ResourceNotFoundException("workflow", workflow_id)
        return updated

    async def get_workflow(self, workflow_id: str, actor_id: str) -> WorkflowEntity:
        await self.permissions.require_permission(workflow_id, actor_id, WorkflowRole.VIEWER)
        return await self._get_workflow_or_raise(workflow_id)

    async def list_workflows(self, organization_id: str, actor_id: str) -> list[WorkflowEntity]:
        """Workflows of an organization. Requires organization role viewer."""
        await self.permissions.require_organization_role(
            organization_id, actor_id, WorkflowRole.VIEWER
        )
        return await self.workflow_repo.list_by_organization(organization_id)

    async def list_versions(self, workflow_id: str, actor_id: str) -> list[WorkflowVersionEntity]:
        """Full history, oldest first."""
        await self.permissions.require_permission(workflow_id, actor_id, WorkflowRole.VIEWER)
        return await self.version_repo.list_by_workflow(workflow_id)

    async def get_version(
        self, workflow_id: str, version_id: str, actor_id: str
    ) -> WorkflowVersionEntity:
        await self.permissions.require_permission(workflow_id, actor_id, WorkflowRole.VIEWER)
        return await self._get_version_of(workflow_id, version_id)
