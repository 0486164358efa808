"""Workflow and WorkflowVersion repositories."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autoflow.domain.entities.workflow import WorkflowEntity, WorkflowVersionEntity
from autoflow.infrastructure.persistence.models.workflow import Workflow, WorkflowVersion
from autoflow.infrastructure.persistence.repositories.base import BaseRepository
from autoflow.shared.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)


def workflow_to_entity(row: Workflow) -> WorkflowEntity:
    return WorkflowEntity(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        trigger_type=row.trigger_type,
        trigger_config=dict(row.trigger_config or {}),
        description=row.description,
        is_active=row.is_active,
        current_version_id=row.current_version_id,
        published_version_id=row.published_version_id,
        created_by=row.created_by,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def version_to_entity(row: WorkflowVersion) -> WorkflowVersionEntity:
    return WorkflowVersionEntity(
        id=row.id,
        workflow_id=row.workflow_id,
        version_number=row.version_number,
        nodes=list(row.nodes),
        edges=list(row.edges),
        created_by=row.created_by,
        created_at=ensure_utc(row.created_at),
        name=row.name,
    )


def _version_row(version: WorkflowVersionEntity) -> WorkflowVersion:
    row = WorkflowVersion(
        id=version.id,
        workflow_id=version.workflow_id,
        version_number=version.version_number,
        name=version.name,
        nodes=version.nodes,
        edges=version.edges,
        created_by=version.created_by,
    )
    if version.created_at is not None:
        row.created_at = version.created_at
    return row


class WorkflowRepository(BaseRepository[Workflow]):
    """Workflow repository. Version pointers move by compare-and-swap."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, Workflow)

    async def create(
        self, workflow: WorkflowEntity, first_version: WorkflowVersionEntity
    ) -> WorkflowEntity:
        """Insert the workflow and its first version in one transaction."""
        async with self._transaction() as session:
            row = Workflow(
                id=workflow.id,
                organization_id=workflow.organization_id,
                name=workflow.name,
                description=workflow.description,
                is_active=workflow.is_active,
                trigger_type=workflow.trigger_type,
                trigger_config=workflow.trigger_config,
                current_version_id=workflow.current_version_id,
                published_version_id=workflow.published_version_id,
                created_by=workflow.created_by,
            )
            if workflow.created_at is not None:
                row.created_at = workflow.created_at
                row.updated_at = workflow.updated_at or workflow.created_at
            session.add(row)
            await session.flush()
            session.add(_version_row(first_version))
            await session.flush()
            await session.refresh(row)
            return workflow_to_entity(row)

    async def get_by_id(self, workflow_id: str) -> WorkflowEntity | None:
        async with self._transaction() as session:
            row = await self._get_model(session, workflow_id)
            return workflow_to_entity(row) if row else None

    async def list_by_organization(
        self, organization_id: str, *, active_only: bool = False
    ) -> list[WorkflowEntity]:
        q = select(Workflow).where(Workflow.organization_id == organization_id)
        if active_only:
            q = q.where(Workflow.is_active.is_(True))
        q = q.order_by(Workflow.created_at.asc(), Workflow.id.asc())
        async with self._transaction() as session:
            result = await session.execute(q)
            return [workflow_to_entity(r) for r in result.scalars().all()]

    async def list_triggerable(
        self, organization_id: str, event_type: str
    ) -> list[WorkflowEntity]:
        async with self._transaction() as session:
            result = await session.execute(
                select(Workflow)
                .where(
                    Workflow.organization_id == organization_id,
                    Workflow.trigger_type == event_type,
                    Workflow.is_active.is_(True),
                    Workflow.published_version_id.is_not(None),
                )
                .order_by(Workflow.created_at.asc(), Workflow.id.asc())
            )
            return [workflow_to_entity(r) for r in result.scalars().all()]

    async def append_version(
        self,
        workflow_id: str,
        expected_current_version_id: str | None,
        version: WorkflowVersionEntity,
    ) -> bool:
        """Insert version and make it current iff current is still expected.

        The conditional UPDATE takes the row lock, so of two concurrent
        saves based on the same head exactly one matches.
        """
        if expected_current_version_id is None:
            matches_expected = Workflow.current_version_id.is_(None)
        else:
            matches_expected = Workflow.current_version_id == expected_current_version_id
        try:
            async with self._transaction() as session:
                result = await session.execute(
                    update(Workflow)
                    .where(Workflow.id == workflow_id, matches_expected)
                    .values(current_version_id=version.id, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False
                session.add(_version_row(version))
        except IntegrityError:
            logger.warning(
                "Version %s of workflow %s lost a concurrent save",
                version.version_number,
                workflow_id,
            )
            return False
        return True

    async def _update(self, workflow_id: str, **values: Any) -> WorkflowEntity | None:
        async with self._transaction() as session:
            row = await self._get_model(session, workflow_id)
            if row is None:
                return None
            for key, value in values.items():
                setattr(row, key, value)
            await session.flush()
            await session.refresh(row)
            return workflow_to_entity(row)

    async def update_published(
        self,
        workflow_id: str,
        published_version_id: str,
        trigger_type: str,
        trigger_config: dict[str, Any],
        *,
        current_version_id: str | None = None,
    ) -> WorkflowEntity | None:
        values: dict[str, Any] = {
            "published_version_id": published_version_id,
            "trigger_type": trigger_type,
            "trigger_config": dict(trigger_config),
        }
        if current_version_id is not None:
            values["current_version_id"] = current_version_id
        return await self._update(workflow_id, **values)

    async def set_active(self, workflow_id: str, is_active: bool) -> WorkflowEntity | None:
        return await self._update(workflow_id, is_active=is_active)


class WorkflowVersionRepository(BaseRepository[WorkflowVersion]):
    """Read side of workflow versions; inserts go through WorkflowRepository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, WorkflowVersion)

    async def get_by_id(self, version_id: str) -> WorkflowVersionEntity | None:
        async with self._transaction() as session:
            row = await self._get_model(session, version_id)
            return version_to_entity(row) if row else None

    async def list_by_workflow(self, workflow_id: str) -> list[WorkflowVersionEntity]:
        async with self._transaction() as session:
            result = await session.execute(
                select(WorkflowVersion)
                .where(WorkflowVersion.workflow_id == workflow_id)
                .order_by(WorkflowVersion.version_number.asc())
            )
            return [version_to_entity(r) for r in result.scalars().all()]

    async def get_latest_number(self, workflow_id: str) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                select(func.max(WorkflowVersion.version_number)).where(
                    WorkflowVersion.workflow_id == workflow_id
                )
            )
            return result.scalar_one_or_none() or 0
