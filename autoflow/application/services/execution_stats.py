"""Execution history and statistics for dashboards."""

from __future__ import annotations

from collections.abc import Iterable

from autoflow.application.dtos.execution import ExecutionStats
from autoflow.application.interfaces.repositories import IExecutionRepository
from autoflow.domain.entities.execution import ExecutionInstance, ExecutionLogEntry
from autoflow.domain.exceptions import ResourceNotFoundException, ValidationException
from autoflow.shared.enums import ExecutionStatus


def summarize_executions(instances: Iterable[ExecutionInstance]) -> ExecutionStats:
    """Count instances by status; average duration over finished runs with both timestamps."""
    counts = dict.fromkeys(ExecutionStatus, 0)
    durations: list[int] = []
    total = 0
    for instance in instances:
        total += 1
        counts[instance.status] += 1
        if instance.is_finished and instance.duration_ms is not None:
            durations.append(instance.duration_ms)
    return ExecutionStats(
        total=total,
        completed=counts[ExecutionStatus.COMPLETED],
        failed=counts[ExecutionStatus.FAILED],
        cancelled=counts[ExecutionStatus.CANCELLED],
        running=counts[ExecutionStatus.RUNNING],
        pending=counts[ExecutionStatus.PENDING],
        avg_duration_ms=sum(durations) / len(durations) if durations else None,
    )


class ExecutionStatsService:
    """Read-side queries over execution instances and their logs."""

    def __init__(self, execution_repo: IExecutionRepository) -> None:
        self._repo = execution_repo

    async def list_executions(
        self,
        organization_id: str,
        workflow_id: str | None = None,
        limit: int = 50,
    ) -> list[ExecutionInstance]:
        """Newest first, scoped to one organization."""
        if limit < 1:
            raise ValidationException("limit must be >= 1", field="limit")
        return await self._repo.list_by_organization(
            organization_id, workflow_id=workflow_id, limit=limit
        )

    async def get_stats(
        self,
        organization_id: str,
        workflow_id: str | None = None,
        limit: int = 1000,
    ) -> ExecutionStats:
        """Summary over the most recent `limit` executions."""
        instances = await self.list_executions(organization_id, workflow_id, limit)
        return summarize_executions(instances)

    async def get_execution_log(
        self, organization_id: str, instance_id: str
    ) -> list[ExecutionLogEntry]:
        """Step log of one instance; instances of other organizations are not found."""
        instance = await self._repo.get_by_id(instance_id)
        if instance is None or instance.organization_id != organization_id:
            raise ResourceNotFoundException("execution", instance_id)
        return await self._repo.list_logs(instance_id)
