"""Workflow grant and organization role repository."""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autoflow.domain.entities.workflow import WorkflowPermissionEntity
from autoflow.domain.enums import WorkflowRole
from autoflow.infrastructure.persistence.models.workflow import (
    OrganizationRole,
    WorkflowPermission,
)
from autoflow.infrastructure.persistence.repositories.base import BaseRepository


class PermissionRepository(BaseRepository[WorkflowPermission]):
    """Role storage backing PermissionService."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, WorkflowPermission)

    async def get_grant(self, workflow_id: str, user_id: str) -> WorkflowRole | None:
        async with self._transaction() as session:
            row = await self._get_model(session, workflow_id, user_id)
            return WorkflowRole(row.role) if row else None

    async def upsert_grant(
        self, workflow_id: str, user_id: str, role: WorkflowRole
    ) -> WorkflowPermissionEntity:
        async with self._transaction() as session:
            row = await self._get_model(session, workflow_id, user_id)
            if row is None:
                session.add(
                    WorkflowPermission(workflow_id=workflow_id, user_id=user_id, role=role.value)
                )
            else:
                row.role = role.value
        return WorkflowPermissionEntity(workflow_id=workflow_id, user_id=user_id, role=role)

    async def delete_grant(self, workflow_id: str, user_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(WorkflowPermission).where(
                    WorkflowPermission.workflow_id == workflow_id,
                    WorkflowPermission.user_id == user_id,
                )
            )
            return result.rowcount > 0

    async def list_grants(self, workflow_id: str) -> list[WorkflowPermissionEntity]:
        async with self._transaction() as session:
            result = await session.execute(
                select(WorkflowPermission)
                .where(WorkflowPermission.workflow_id == workflow_id)
                .order_by(WorkflowPermission.user_id.asc())
            )
            return [
                WorkflowPermissionEntity(
                    workflow_id=r.workflow_id, user_id=r.user_id, role=WorkflowRole(r.role)
                )
                for r in result.scalars().all()
            ]

    async def get_organization_role(
        self, organization_id: str, user_id: str
    ) -> WorkflowRole | None:
        async with self._transaction() as session:
            row = await session.get(OrganizationRole, (organization_id, user_id))
            return WorkflowRole(row.role) if row else None

    async def set_organization_role(
        self, organization_id: str, user_id: str, role: WorkflowRole
    ) -> None:
        async with self._transaction() as session:
            row = await session.get(OrganizationRole, (organization_id, user_id))
            if row is None:
                session.add(
                    OrganizationRole(
                        organization_id=organization_id, user_id=user_id, role=role.value
                    )
                )
            else:
                row.role = role.value
