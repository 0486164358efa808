"""In-process repositories (storage_backend = "memory").

Single process, no durability. Entities are copied on the way in and out so
callers cannot mutate stored state behind the repository's back, matching
what a database round-trip would give them. Each method body runs without
an await, so compare-and-swap operations are atomic under asyncio.
"""

from __future__ import annotations

import copy
from typing import Any

from autoflow.domain.entities.execution import ExecutionInstance, ExecutionLogEntry
from autoflow.domain.entities.workflow import (
    WorkflowEntity,
    WorkflowPermissionEntity,
    WorkflowVersionEntity,
)
from autoflow.domain.enums import WorkflowRole
from autoflow.shared.utils.datetime import utc_now


class InMemoryStore:
    """Tables shared by the in-memory repositories of one runtime."""

    def __init__(self) -> None:
        self.workflows: dict[str, WorkflowEntity] = {}
        self.versions: dict[str, WorkflowVersionEntity] = {}
        self.executions: dict[str, ExecutionInstance] = {}
        self.logs: dict[str, list[ExecutionLogEntry]] = {}
        self.grants: dict[tuple[str, str], WorkflowRole] = {}
        self.organization_roles: dict[tuple[str, str], WorkflowRole] = {}


class InMemoryWorkflowRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def create(
        self, workflow: WorkflowEntity, first_version: WorkflowVersionEntity
    ) -> WorkflowEntity:
        self._store.versions[first_version.id] = copy.deepcopy(first_version)
        self._store.workflows[workflow.id] = copy.deepcopy(workflow)
        return copy.deepcopy(workflow)

    async def get_by_id(self, workflow_id: str) -> WorkflowEntity | None:
        workflow = self._store.workflows.get(workflow_id)
        return copy.deepcopy(workflow) if workflow else None

    async def list_by_organization(
        self, organization_id: str, *, active_only: bool = False
    ) -> list[WorkflowEntity]:
        return [
            copy.deepcopy(w)
            for w in self._store.workflows.values()
            if w.organization_id == organization_id and (w.is_active or not active_only)
        ]

    async def list_triggerable(
        self, organization_id: str, event_type: str
    ) -> list[WorkflowEntity]:
        return [
            copy.deepcopy(w)
            for w in self._store.workflows.values()
            if w.organization_id == organization_id and w.can_trigger_on(event_type)
        ]

    async def append_version(
        self,
        workflow_id: str,
        expected_current_version_id: str | None,
        version: WorkflowVersionEntity,
    ) -> bool:
        workflow = self._store.workflows.get(workflow_id)
        if workflow is None or workflow.current_version_id != expected_current_version_id:
            return False
        self._store.versions[version.id] = copy.deepcopy(version)
        workflow.current_version_id = version.id
        workflow.updated_at = utc_now()
        return True

    async def update_published(
        self,
        workflow_id: str,
        published_version_id: str,
        trigger_type: str,
        trigger_config: dict[str, Any],
        *,
        current_version_id: str | None = None,
    ) -> WorkflowEntity | None:
        workflow = self._store.workflows.get(workflow_id)
        if workflow is None:
            return None
        workflow.published_version_id = published_version_id
        workflow.trigger_type = trigger_type
        workflow.trigger_config = copy.deepcopy(trigger_config)
        if current_version_id is not None:
            workflow.current_version_id = current_version_id
        workflow.updated_at = utc_now()
        return copy.deepcopy(workflow)

    async def set_active(self, workflow_id: str, is_active: bool) -> WorkflowEntity | None:
        workflow = self._store.workflows.get(workflow_id)
        if workflow is None:
            return None
        workflow.is_active = is_active
        workflow.updated_at = utc_now()
        return copy.deepcopy(workflow)


class InMemoryWorkflowVersionRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def get_by_id(self, version_id: str) -> WorkflowVersionEntity | None:
        version = self._store.versions.get(version_id)
        return copy.deepcopy(version) if version else None

    async def list_by_workflow(self, workflow_id: str) -> list[WorkflowVersionEntity]:
        versions = [v for v in self._store.versions.values() if v.workflow_id == workflow_id]
        return [copy.deepcopy(v) for v in sorted(versions, key=lambda v: v.version_number)]

    async def get_latest_number(self, workflow_id: str) -> int:
        return max(
            (v.version_number for v in self._store.versions.values() if v.workflow_id == workflow_id),
            default=0,
        )


class InMemoryExecutionRepository:
    def __init__(self, store: InMemoryStore | None = None) -> None:
        self._store = store or InMemoryStore()

    async def create(self, instance: ExecutionInstance) -> ExecutionInstance:
        self._store.executions[instance.id] = copy.deepcopy(instance)
        self._store.logs.setdefault(instance.id, [])
        return instance

    async def update(self, instance: ExecutionInstance) -> ExecutionInstance:
        self._store.executions[instance.id] = copy.deepcopy(instance)
        return instance

    async def get_by_id(self, instance_id: str) -> ExecutionInstance | None:
        instance = self._store.executions.get(instance_id)
        return copy.deepcopy(instance) if instance else None

    async def list_by_organization(
        self,
        organization_id: str,
        *,
        workflow_id: str | None = None,
        limit: int = 50,
    ) -> list[ExecutionInstance]:
        matching = [
            i
            for i in self._store.executions.values()
            if i.organization_id == organization_id
            and (workflow_id is None or i.workflow_id == workflow_id)
        ]
        # Insertion order breaks ties between equal timestamps.
        newest_first = list(reversed(matching))
        newest_first.sort(key=lambda i: i.created_at or i.started_at or utc_now(), reverse=True)
        return [copy.deepcopy(i) for i in newest_first[:limit]]

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        self._store.logs.setdefault(entry.instance_id, []).append(copy.deepcopy(entry))
        return entry

    async def list_logs(self, instance_id: str) -> list[ExecutionLogEntry]:
        entries = self._store.logs.get(instance_id, [])
        return [copy.deepcopy(e) for e in sorted(entries, key=lambda e: e.sequence)]


class InMemoryPermissionRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def get_grant(self, workflow_id: str, user_id: str) -> WorkflowRole | None:
        return self._store.grants.get((workflow_id, user_id))

    async def upsert_grant(
        self, workflow_id: str, user_id: str, role: WorkflowRole
    ) -> WorkflowPermissionEntity:
        self._store.grants[(workflow_id, user_id)] = role
        return WorkflowPermissionEntity(workflow_id=workflow_id, user_id=user_id, role=role)

    async def delete_grant(self, workflow_id: str, user_id: str) -> bool:
        return self._store.grants.pop((workflow_id, user_id), None) is not None

    async def list_grants(self, workflow_id: str) -> list[WorkflowPermissionEntity]:
        return [
            WorkflowPermissionEntity(workflow_id=wf_id, user_id=user_id, role=role)
            for (wf_id, user_id), role in self._store.grants.items()
            if wf_id == workflow_id
        ]

    async def get_organization_role(
        self, organization_id: str, user_id: str
    ) -> WorkflowRole | None:
        return self._store.organization_roles.get((organization_id, user_id))

    async def set_organization_role(
        self, organization_id: str, user_id: str, role: WorkflowRole
    ) -> None:
        self._store.organization_roles[(organization_id, user_id)] = role

