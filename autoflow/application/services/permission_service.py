"""Permission service: role-ranked access control for workflow editing.

Effective role on a workflow = explicit per-workflow grant, else the user's
organization-wide role, else the configured default (None = no access).
Gates VersionManager and grant/revoke only; the execution engine never
consults it.
"""

from __future__ import annotations

from autoflow.application.interfaces.repositories import (
    IPermissionRepository,
    IWorkflowRepository,
)
from autoflow.domain.entities.workflow import WorkflowPermissionEntity
from autoflow.domain.enums import WorkflowRole
from autoflow.domain.exceptions import (
    AuthorizationException,
    ResourceNotFoundException,
    ValidationException,
)
from autoflow.shared.telemetry.logging import get_logger
from autoflow.shared.telemetry.tracing import traced

logger = get_logger(__name__)

_MSG_LAST_ADMIN = "Cannot revoke the last admin of workflow %s"


def coerce_role(role: WorkflowRole | str) -> WorkflowRole:
    """Return role as WorkflowRole. Raises ValidationException for unknown names."""
    if isinstance(role, WorkflowRole):
        return role
    try:
        return WorkflowRole(role)
    except ValueError as e:
        raise ValidationException(
            f"Unknown role {role!r}; expected one of {', '.join(WorkflowRole.values())}",
            field="role",
        ) from e


class PermissionService:
    """Resolves effective roles and manages grants."""

    def __init__(
        self,
        permission_repo: IPermissionRepository,
        workflow_repo: IWorkflowRepository,
        default_organization_role: WorkflowRole | str | None = None,
    ) -> None:
        self._repo = permission_repo
        self._workflow_repo = workflow_repo
        self._default_role = (
            coerce_role(default_organization_role)
            if default_organization_role is not None
            else None
        )

    async def get_effective_role(self, workflow_id: str, user_id: str) -> WorkflowRole | None:
        """Return the user's role on the workflow, or None when they have no access.

        Raises:
            ResourceNotFoundException: If the workflow does not exist.
        """
        explicit = await self._repo.get_grant(workflow_id, user_id)
        if explicit is not None:
            return explicit
        workflow = await self._workflow_repo.get_by_id(workflow_id)
        if workflow is None:
            raise ResourceNotFoundException("workflow", workflow_id)
        return await self.get_organization_role(workflow.organization_id, user_id)

    async def get_organization_role(
        self, organization_id: str, user_id: str
    ) -> WorkflowRole | None:
        """Return the user's organization-wide role, else the configured default."""
        role = await self._repo.get_organization_role(organization_id, user_id)
        return role if role is not None else self._default_role

    async def check_permission(
        self, workflow_id: str, user_id: str, required_role: WorkflowRole | str
    ) -> bool:
        """Return True if the user's effective role ranks at least required_role."""
        required = coerce_role(required_role)
        role = await self.get_effective_role(workflow_id, user_id)
        return role is not None and role.satisfies(required)

    async def require_permission(
        self, workflow_id: str, user_id: str, required_role: WorkflowRole | str
    ) -> None:
        """Raise AuthorizationException if the user lacks required_role on the workflow."""
        required = coerce_role(required_role)
        if not await self.check_permission(workflow_id, user_id, required):
            logger.info(
                "Denied %s on workflow %s: requires %s", user_id, workflow_id, required.value
            )
            raise AuthorizationException(
                user_id=user_id, required_role=required.value, workflow_id=workflow_id
            )

    async def check_organization_role(
        self, organization_id: str, user_id: str, required_role: WorkflowRole | str
    ) -> bool:
        """Return True if the user's organization role ranks at least required_role."""
        required = coerce_role(required_role)
        role = await self.get_organization_role(organization_id, user_id)
        return role is not None and role.satisfies(required)

    async def require_organization_role(
        self, organization_id: str, user_id: str, required_role: WorkflowRole | str
    ) -> None:
        """Raise AuthorizationException if the user's organization role is too low."""
        required = coerce_role(required_role)
        if not await self.check_organization_role(organization_id, user_id, required):
            raise AuthorizationException(
                user_id=user_id, required_role=required.value, organization_id=organization_id
            )

    @traced("permission_service.grant")
    async def grant(
        self,
        workflow_id: str,
        actor_id: str,
        user_id: str,
        role: WorkflowRole | str,
    ) -> WorkflowPermissionEntity:
        """Create or replace user_id's grant. actor_id must be admin on the workflow."""
        new_role = coerce_role(role)
        await self.require_permission(workflow_id, actor_id, WorkflowRole.ADMIN)
        current = await self._repo.get_grant(workflow_id, user_id)
        if current == WorkflowRole.ADMIN and new_role != WorkflowRole.ADMIN:
            await self._ensure_not_last_admin(workflow_id)
        result = await self._repo.upsert_grant(workflow_id, user_id, new_role)
        logger.info(
            "Granted %s on workflow %s to %s (by %s)", new_role.value, workflow_id, user_id, actor_id
        )
        return result

    @traced("permission_service.revoke")
    async def revoke(self, workflow_id: str, actor_id: str, user_id: str) -> bool:
        """Remove user_id's explicit grant. actor_id must be admin; the last admin stays."""
        await self.require_permission(workflow_id, actor_id, WorkflowRole.ADMIN)
        current = await self._repo.get_grant(workflow_id, user_id)
        if current is None:
            return False
        if current == WorkflowRole.ADMIN:
            await self._ensure_not_last_admin(workflow_id)
        removed = await self._repo.delete_grant(workflow_id, user_id)
        logger.info("Revoked grant on workflow %s from %s (by %s)", workflow_id, user_id, actor_id)
        return removed

    async def list_permissions(
        self, workflow_id: str, actor_id: str
    ) -> list[WorkflowPermissionEntity]:
        """Return explicit grants on the workflow. actor_id must be at least viewer."""
        await self.require_permission(workflow_id, actor_id, WorkflowRole.VIEWER)
        return await self._repo.list_grants(workflow_id)

    async def assign_owner(self, workflow_id: str, user_id: str) -> WorkflowPermissionEntity:
        """Grant admin to a workflow's creator. Called by VersionManager on creation only."""
        return await self._repo.upsert_grant(workflow_id, user_id, WorkflowRole.ADMIN)

    async def set_organization_role(
        self, organization_id: str, user_id: str, role: WorkflowRole | str
    ) -> None:
        """Set a user's organization-wide role (owned by the organization membership module)."""
        await self._repo.set_organization_role(organization_id, user_id, coerce_role(role))

    async def _ensure_not_last_admin(self, workflow_id: str) -> None:
        grants = await self._repo.list_grants(workflow_id)
        admins = [g for g in grants if g.role == WorkflowRole.ADMIN]
        if len(admins) <= 1:
            raise ValidationException(_MSG_LAST_ADMIN % workflow_id, field="role")
