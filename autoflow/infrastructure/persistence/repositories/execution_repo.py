"""Execution instance and step log repository."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autoflow.domain.entities.execution import ExecutionInstance, ExecutionLogEntry
from autoflow.infrastructure.persistence.models.workflow import (
    WorkflowExecution,
    WorkflowExecutionLog,
)
from autoflow.infrastructure.persistence.repositories.base import BaseRepository
from autoflow.shared.enums import ExecutionStatus, StepStatus
from autoflow.shared.utils.datetime import ensure_utc
from autoflow.shared.utils.generators import generate_cuid


def execution_to_entity(row: WorkflowExecution) -> ExecutionInstance:
    return ExecutionInstance(
        id=row.id,
        organization_id=row.organization_id,
        workflow_id=row.workflow_id,
        version_id=row.version_id,
        event_type=row.event_type,
        status=ExecutionStatus(row.status),
        context=dict(row.context or {}),
        entity_id=row.entity_id,
        error_message=row.error_message,
        created_at=ensure_utc(row.created_at),
        started_at=ensure_utc(row.started_at),
        completed_at=ensure_utc(row.completed_at),
    )


def log_to_entity(row: WorkflowExecutionLog) -> ExecutionLogEntry:
    return ExecutionLogEntry(
        id=row.id,
        instance_id=row.execution_id,
        sequence=row.sequence,
        node_id=row.node_id,
        node_type=row.node_type,
        status=StepStatus(row.status),
        input_snapshot=dict(row.input_snapshot or {}),
        output_snapshot=dict(row.output_snapshot or {}),
        started_at=ensure_utc(row.started_at),
        completed_at=ensure_utc(row.completed_at),
        branch=row.branch,
        error=row.error,
        attempt=row.attempt,
    )


class ExecutionRepository(BaseRepository[WorkflowExecution]):
    """Execution repository. The engine writes status changes and log entries as they happen."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, WorkflowExecution)

    async def create(self, instance: ExecutionInstance) -> ExecutionInstance:
        async with self._transaction() as session:
            row = WorkflowExecution(
                id=instance.id,
                organization_id=instance.organization_id,
                workflow_id=instance.workflow_id,
                version_id=instance.version_id,
                event_type=instance.event_type,
                entity_id=instance.entity_id,
                status=instance.status.value,
                context=instance.context,
                started_at=instance.started_at,
                completed_at=instance.completed_at,
                error_message=instance.error_message,
            )
            if instance.created_at is not None:
                row.created_at = instance.created_at
            session.add(row)
        return instance

    async def update(self, instance: ExecutionInstance) -> ExecutionInstance:
        async with self._transaction() as session:
            await session.execute(
                update(WorkflowExecution)
                .where(WorkflowExecution.id == instance.id)
                .values(
                    status=instance.status.value,
                    context=instance.context,
                    started_at=instance.started_at,
                    completed_at=instance.completed_at,
                    error_message=instance.error_message,
                )
                .execution_options(synchronize_session=False)
            )
        return instance

    async def get_by_id(self, instance_id: str) -> ExecutionInstance | None:
        async with self._transaction() as session:
            row = await self._get_model(session, instance_id)
            return execution_to_entity(row) if row else None

    async def list_by_organization(
        self,
        organization_id: str,
        *,
        workflow_id: str | None = None,
        limit: int = 50,
    ) -> list[ExecutionInstance]:
        q = select(WorkflowExecution).where(
            WorkflowExecution.organization_id == organization_id
        )
        if workflow_id is not None:
            q = q.where(WorkflowExecution.workflow_id == workflow_id)
        q = q.order_by(WorkflowExecution.created_at.desc(), WorkflowExecution.id.desc()).limit(limit)
        async with self._transaction() as session:
            result = await session.execute(q)
            return [execution_to_entity(r) for r in result.scalars().all()]

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        async with self._transaction() as session:
            session.add(
                WorkflowExecutionLog(
                    id=entry.id or generate_cuid(),
                    execution_id=entry.instance_id,
                    sequence=entry.sequence,
                    node_id=entry.node_id,
                    node_type=entry.node_type,
                    status=entry.status.value,
                    branch=entry.branch,
                    attempt=entry.attempt,
                    input_snapshot=entry.input_snapshot,
                    output_snapshot=entry.output_snapshot,
                    error=entry.error,
                    started_at=entry.started_at,
                    completed_at=entry.completed_at,
                )
            )
        return entry

    async def list_logs(self, instance_id: str) -> list[ExecutionLogEntry]:
        async with self._transaction() as session:
            result = await session.execute(
                select(WorkflowExecutionLog)
                .where(WorkflowExecutionLog.execution_id == instance_id)
                .order_by(WorkflowExecutionLog.sequence.asc())
            )
            return [log_to_entity(r) for r in result.scalars().all()]
