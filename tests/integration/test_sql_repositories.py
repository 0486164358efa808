"""Integration tests for the SQL repositories (sqlite+aiosqlite in-memory).

Run only these: pytest -m requires_db
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autoflow.application.dtos.trigger_event import TriggerEvent
from autoflow.application.services.graph_validator import GraphValidator
from autoflow.application.services.handler_registry import HandlerRegistry
from autoflow.application.services.permission_service import PermissionService
from autoflow.application.services.version_manager import VersionManager
from autoflow.domain.entities.execution import ExecutionInstance, ExecutionLogEntry
from autoflow.domain.entities.workflow import WorkflowEntity, WorkflowVersionEntity
from autoflow.domain.enums import WorkflowRole
from autoflow.domain.exceptions import StaleVersionException
from autoflow.infrastructure.persistence.repositories import (
    ExecutionRepository,
    PermissionRepository,
    WorkflowRepository,
    WorkflowVersionRepository,
)
from autoflow.infrastructure.services.trigger_dispatcher import TriggerDispatcher
from autoflow.infrastructure.services.worker_pool import OrganizationWorkerPool
from autoflow.infrastructure.services.workflow_engine import WorkflowEngine
from autoflow.shared.enums import ExecutionStatus, StepStatus
from autoflow.shared.utils.datetime import utc_now
from tests.helpers import ORG, OWNER, linear_graph

pytestmark = pytest.mark.requires_db

NODES, EDGES = linear_graph({"id": "email", "type": "action", "data": {"to": "{{lead.email}}"}})


def _workflow(workflow_id: str = "wf-1", version_id: str = "v1", **overrides) -> WorkflowEntity:
    fields = {
        "id": workflow_id,
        "organization_id": ORG,
        "name": "Follow-up",
        "trigger_type": "lead_created",
        "trigger_config": {"channel": "facebook"},
        "current_version_id": version_id,
        "created_by": OWNER,
        "created_at": utc_now(),
    }
    fields.update(overrides)
    return WorkflowEntity(**fields)


def _version(version_id: str, number: int, workflow_id: str = "wf-1") -> WorkflowVersionEntity:
    return WorkflowVersionEntity(
        id=version_id,
        workflow_id=workflow_id,
        version_number=number,
        nodes=NODES,
        edges=EDGES,
        created_by=OWNER,
        created_at=utc_now(),
    )


@pytest.fixture
def workflows(sql_session_factory: async_sessionmaker[AsyncSession]) -> WorkflowRepository:
    return WorkflowRepository(sql_session_factory)


@pytest.fixture
def versions(sql_session_factory: async_sessionmaker[AsyncSession]) -> WorkflowVersionRepository:
    return WorkflowVersionRepository(sql_session_factory)


@pytest.fixture
def executions(sql_session_factory: async_sessionmaker[AsyncSession]) -> ExecutionRepository:
    return ExecutionRepository(sql_session_factory)


@pytest.fixture
def grants(sql_session_factory: async_sessionmaker[AsyncSession]) -> PermissionRepository:
    return PermissionRepository(sql_session_factory)


class TestWorkflowRepository:
    async def test_create_and_get(
        self, workflows: WorkflowRepository, versions: WorkflowVersionRepository
    ) -> None:
        created = await workflows.create(_workflow(), _version("v1", 1))
        assert created.id == "wf-1"
        assert created.created_at is not None and created.created_at.tzinfo is not None

        fetched = await workflows.get_by_id("wf-1")
        assert fetched.trigger_config == {"channel": "facebook"}
        assert fetched.current_version_id == "v1"
        assert fetched.published_version_id is None
        version = await versions.get_by_id("v1")
        assert version.nodes == NODES
        assert await workflows.get_by_id("missing") is None

    async def test_append_version_compare_and_swap(
        self, workflows: WorkflowRepository, versions: WorkflowVersionRepository
    ) -> None:
        await workflows.create(_workflow(), _version("v1", 1))

        assert await workflows.append_version("wf-1", "v1", _version("v2", 2)) is True
        assert await workflows.append_version("wf-1", "v1", _version("v3", 3)) is False

        assert (await workflows.get_by_id("wf-1")).current_version_id == "v2"
        assert [v.id for v in await versions.list_by_workflow("wf-1")] == ["v1", "v2"]
        assert await versions.get_latest_number("wf-1") == 2
        assert await versions.get_latest_number("other") == 0

    async def test_duplicate_version_number_rolls_back(
        self, workflows: WorkflowRepository, versions: WorkflowVersionRepository
    ) -> None:
        await workflows.create(_workflow(), _version("v1", 1))

        assert await workflows.append_version("wf-1", "v1", _version("v1-dup", 1)) is False
        assert (await workflows.get_by_id("wf-1")).current_version_id == "v1"
        assert await versions.get_by_id("v1-dup") is None

    async def test_list_triggerable_needs_active_and_published(
        self, workflows: WorkflowRepository
    ) -> None:
        await workflows.create(_workflow("wf-draft", "d1"), _version("d1", 1, "wf-draft"))
        await workflows.create(
            _workflow("wf-live", "l1", published_version_id="l1"), _version("l1", 1, "wf-live")
        )
        await workflows.create(
            _workflow("wf-off", "o1", published_version_id="o1", is_active=False),
            _version("o1", 1, "wf-off"),
        )

        triggerable = await workflows.list_triggerable(ORG, "lead_created")
        assert [w.id for w in triggerable] == ["wf-live"]
        assert await workflows.list_triggerable(ORG, "new_message") == []
        assert len(await workflows.list_by_organization(ORG)) == 3
        assert len(await workflows.list_by_organization(ORG, active_only=True)) == 2

    async def test_update_published_and_set_active(self, workflows: WorkflowRepository) -> None:
        await workflows.create(_workflow(), _version("v1", 1))

        published = await workflows.update_published("wf-1", "v1", "new_message", {"keyword": "hi"})
        assert published.published_version_id == "v1"
        assert published.trigger_type == "new_message"
        assert published.trigger_config == {"keyword": "hi"}

        disabled = await workflows.set_active("wf-1", False)
        assert disabled.is_active is False
        assert await workflows.set_active("missing", True) is None


class TestExecutionRepository:
    async def _seed_workflow(self, workflows: WorkflowRepository) -> None:
        await workflows.create(_workflow(), _version("v1", 1))

    def _instance(self, instance_id: str, offset_s: int = 0) -> ExecutionInstance:
        return ExecutionInstance(
            id=instance_id,
            organization_id=ORG,
            workflow_id="wf-1",
            version_id="v1",
            event_type="lead_created",
            context={"lead": {"email": "ada@example.com"}},
            entity_id="lead-1",
            created_at=utc_now() + timedelta(seconds=offset_s),
        )

    async def test_create_update_and_list(
        self, workflows: WorkflowRepository, executions: ExecutionRepository
    ) -> None:
        await self._seed_workflow(workflows)
        first = await executions.create(self._instance("e1"))
        await executions.create(self._instance("e2", offset_s=5))

        first.transition_to(ExecutionStatus.RUNNING)
        first.context["x"] = 8
        first.transition_to(ExecutionStatus.COMPLETED)
        await executions.update(first)

        stored = await executions.get_by_id("e1")
        assert stored.status == ExecutionStatus.COMPLETED
        assert stored.context["x"] == 8
        assert stored.entity_id == "lead-1"
        assert stored.duration_ms is not None
        assert [i.id for i in await executions.list_by_organization(ORG)] == ["e2", "e1"]
        assert [i.id for i in await executions.list_by_organization(ORG, limit=1)] == ["e2"]
        assert await executions.list_by_organization("org-2") == []

    async def test_logs_are_ordered_by_sequence(
        self, workflows: WorkflowRepository, executions: ExecutionRepository
    ) -> None:
        await self._seed_workflow(workflows)
        await executions.create(self._instance("e1"))
        now = utc_now()
        for sequence, node_id in [(2, "email"), (1, "trigger")]:
            await executions.append_log(
                ExecutionLogEntry(
                    instance_id="e1",
                    sequence=sequence,
                    node_id=node_id,
                    node_type="action" if node_id == "email" else "trigger",
                    status=StepStatus.COMPLETED,
                    input_snapshot={"n": sequence},
                    output_snapshot={},
                    started_at=now,
                    completed_at=now,
                    branch="true" if sequence == 2 else None,
                )
            )

        logs = await executions.list_logs("e1")
        assert [(e.sequence, e.node_id, e.branch) for e in logs] == [
            (1, "trigger", None),
            (2, "email", "true"),
        ]
        assert logs[0].id is not None
        assert logs[1].input_snapshot == {"n": 2}


class TestPermissionRepository:
    async def test_grants_round_trip(self, grants: PermissionRepository) -> None:
        assert await grants.get_grant("wf-1", "u1") is None
        await grants.upsert_grant("wf-1", "u1", WorkflowRole.EDITOR)
        await grants.upsert_grant("wf-1", "u1", WorkflowRole.APPROVER)
        await grants.upsert_grant("wf-1", "u2", WorkflowRole.VIEWER)

        assert await grants.get_grant("wf-1", "u1") == WorkflowRole.APPROVER
        assert [(g.user_id, g.role) for g in await grants.list_grants("wf-1")] == [
            ("u1", WorkflowRole.APPROVER),
            ("u2", WorkflowRole.VIEWER),
        ]
        assert await grants.delete_grant("wf-1", "u2") is True
        assert await grants.delete_grant("wf-1", "u2") is False

    async def test_organization_roles(self, grants: PermissionRepository) -> None:
        assert await grants.get_organization_role(ORG, "u1") is None
        await grants.set_organization_role(ORG, "u1", WorkflowRole.EDITOR)
        await grants.set_organization_role(ORG, "u1", WorkflowRole.ADMIN)
        assert await grants.get_organization_role(ORG, "u1") == WorkflowRole.ADMIN
        assert await grants.get_organization_role("org-2", "u1") is None


async def test_services_end_to_end_on_sql(
    workflows: WorkflowRepository,
    versions: WorkflowVersionRepository,
    executions: ExecutionRepository,
    grants: PermissionRepository,
    registry: HandlerRegistry,
    action_handler,
) -> None:
    permissions = PermissionService(grants, workflows)
    await permissions.set_organization_role(ORG, OWNER, WorkflowRole.ADMIN)
    manager = VersionManager(workflows, versions, GraphValidator(registry), permissions)
    dispatcher = TriggerDispatcher(
        workflows, versions, executions, WorkflowEngine(registry, executions), OrganizationWorkerPool(1)
    )

    workflow = await manager.create_workflow(ORG, "Welcome", NODES, EDGES, OWNER, publish=True)
    with pytest.raises(StaleVersionException):
        await manager.save_draft(workflow.id, NODES, EDGES, OWNER, base_version_id="not-current")

    [instance] = await dispatcher.dispatch(
        TriggerEvent(
            type="lead_created",
            organization_id=ORG,
            payload={"lead": {"email": "ada@example.com"}},
        )
    )
    await dispatcher.drain()

    finished = await executions.get_by_id(instance.id)
    assert finished.status == ExecutionStatus.COMPLETED
    assert [e.node_id for e in await executions.list_logs(instance.id)] == ["trigger", "email"]
    node, _ = action_handler.calls[0]
    assert node.data == {"to": "ada@example.com"}
