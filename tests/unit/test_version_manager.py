"""Tests for VersionManager: snapshots, optimistic locking, publish and rollback."""

import pytest

from autoflow.application.services.permission_service import PermissionService
from autoflow.application.services.version_manager import VersionManager
from autoflow.domain.entities.workflow import WorkflowVersionEntity
from autoflow.domain.enums import WorkflowRole
from autoflow.domain.exceptions import (
    AuthorizationException,
    GraphValidationException,
    ResourceNotFoundException,
    StaleVersionException,
    ValidationException,
)
from autoflow.infrastructure.memory.repositories import InMemoryWorkflowRepository
from autoflow.shared.utils.datetime import utc_now
from tests.helpers import ORG, OWNER, linear_graph

EMAIL = {"id": "email", "type": "action", "data": {"subject": "Welcome"}}
SMS = {"id": "sms", "type": "action", "data": {"body": "Hi"}}


async def _create(version_manager: VersionManager, **kwargs):
    nodes, edges = linear_graph(EMAIL)
    return await version_manager.create_workflow(ORG, "Welcome flow", nodes, edges, OWNER, **kwargs)


async def test_create_workflow_stores_version_one_and_owner(
    version_manager: VersionManager, permissions: PermissionService
) -> None:
    workflow = await _create(version_manager)

    assert workflow.organization_id == ORG
    assert workflow.trigger_type == "lead_created"
    assert workflow.published_version_id is None
    versions = await version_manager.list_versions(workflow.id, OWNER)
    assert [v.version_number for v in versions] == [1]
    assert versions[0].id == workflow.current_version_id
    assert await permissions.get_effective_role(workflow.id, OWNER) == WorkflowRole.ADMIN


async def test_create_with_publish_points_both_pointers_at_v1(version_manager: VersionManager) -> None:
    workflow = await _create(version_manager, publish=True)
    assert workflow.published_version_id == workflow.current_version_id


async def test_create_rejects_invalid_graph(version_manager: VersionManager) -> None:
    nodes, _ = linear_graph(EMAIL)
    with pytest.raises(GraphValidationException) as exc_info:
        await version_manager.create_workflow(
            ORG, "Broken", nodes, [{"source": "trigger", "target": "ghost"}], OWNER
        )
    assert exc_info.value.errors[0].code == "DANGLING_EDGE"


async def test_create_requires_name(version_manager: VersionManager) -> None:
    nodes, edges = linear_graph(EMAIL)
    with pytest.raises(ValidationException):
        await version_manager.create_workflow(ORG, "  ", nodes, edges, OWNER)


async def test_create_requires_editor_in_organization(
    version_manager: VersionManager, permissions: PermissionService
) -> None:
    await permissions.set_organization_role(ORG, "viewer-1", WorkflowRole.VIEWER)
    nodes, edges = linear_graph(EMAIL)
    with pytest.raises(AuthorizationException):
        await version_manager.create_workflow(ORG, "Nope", nodes, edges, "viewer-1")


async def test_save_draft_appends_version_and_moves_head(version_manager: VersionManager) -> None:
    workflow = await _create(version_manager)
    nodes, edges = linear_graph(EMAIL, SMS)
    v2 = await version_manager.save_draft(
        workflow.id, nodes, edges, OWNER, base_version_id=workflow.current_version_id
    )

    reloaded = await version_manager.get_workflow(workflow.id, OWNER)
    assert reloaded.current_version_id == v2
    versions = await version_manager.list_versions(workflow.id, OWNER)
    assert [v.version_number for v in versions] == [1, 2]
    # Prior snapshots are untouched.
    assert [n["id"] for n in versions[0].nodes] == ["trigger", "email"]


async def test_stale_save_is_rejected(version_manager: VersionManager) -> None:
    workflow = await _create(version_manager)
    base = workflow.current_version_id
    nodes, edges = linear_graph(EMAIL, SMS)
    await version_manager.save_draft(workflow.id, nodes, edges, OWNER, base_version_id=base)

    with pytest.raises(StaleVersionException) as exc_info:
        await version_manager.save_draft(workflow.id, nodes, edges, OWNER, base_version_id=base)
    assert exc_info.value.details["base_version_id"] == base
    assert len(await version_manager.list_versions(workflow.id, OWNER)) == 2


async def test_append_version_compare_and_swap(
    version_manager: VersionManager, workflow_repo: InMemoryWorkflowRepository
) -> None:
    workflow = await _create(version_manager)
    candidate = WorkflowVersionEntity(
        id="v-race",
        workflow_id=workflow.id,
        version_number=2,
        nodes=[],
        edges=[],
        created_by=OWNER,
        created_at=utc_now(),
    )
    assert await workflow_repo.append_version(workflow.id, "someone-else", candidate) is False
    assert await workflow_repo.append_version(workflow.id, workflow.current_version_id, candidate)
    assert (await workflow_repo.get_by_id(workflow.id)).current_version_id == "v-race"


async def test_viewer_cannot_save_but_editor_can(
    version_manager: VersionManager, permissions: PermissionService
) -> None:
    workflow = await _create(version_manager)
    await permissions.set_organization_role(ORG, "viewer-1", WorkflowRole.VIEWER)
    await permissions.grant(workflow.id, OWNER, "editor-1", WorkflowRole.EDITOR)
    nodes, edges = linear_graph(EMAIL, SMS)

    with pytest.raises(AuthorizationException):
        await version_manager.save_draft(
            workflow.id, nodes, edges, "viewer-1", base_version_id=workflow.current_version_id
        )
    version_id = await version_manager.save_draft(
        workflow.id, nodes, edges, "editor-1", base_version_id=workflow.current_version_id
    )
    assert version_id
    with pytest.raises(AuthorizationException):
        await version_manager.publish(workflow.id, version_id, "editor-1")


async def test_drafts_do_not_change_trigger_until_published(version_manager: VersionManager) -> None:
    workflow = await _create(version_manager, publish=True)
    nodes, edges = linear_graph(SMS, trigger_type="new_message")
    v2 = await version_manager.save_draft(
        workflow.id, nodes, edges, OWNER, base_version_id=workflow.current_version_id
    )

    assert (await version_manager.get_workflow(workflow.id, OWNER)).trigger_type == "lead_created"
    published = await version_manager.publish(workflow.id, v2, OWNER)
    assert published.trigger_type == "new_message"
    assert published.published_version_id == v2


async def test_rollback_restores_earlier_graph(version_manager: VersionManager) -> None:
    workflow = await _create(version_manager, publish=True)
    v1 = await version_manager.get_version(workflow.id, workflow.current_version_id, OWNER)
    nodes, edges = linear_graph(SMS, trigger_type="new_message")
    v2 = await version_manager.save_draft(
        workflow.id, nodes, edges, OWNER, base_version_id=v1.id
    )
    await version_manager.publish(workflow.id, v2, OWNER)

    rolled = await version_manager.rollback(workflow.id, v1.id, OWNER)

    assert rolled.current_version_id == v1.id
    assert rolled.published_version_id == v1.id
    assert rolled.trigger_type == "lead_created"
    restored = await version_manager.get_version(workflow.id, rolled.current_version_id, OWNER)
    assert restored.graph.canonical_json() == v1.graph.canonical_json()
    # History is kept and the next save builds on the rolled-back version.
    assert len(await version_manager.list_versions(workflow.id, OWNER)) == 2
    v3 = await version_manager.save_draft(
        workflow.id, nodes, edges, OWNER, base_version_id=v1.id
    )
    assert (await version_manager.get_version(workflow.id, v3, OWNER)).version_number == 3


async def test_rollback_to_foreign_version_is_not_found(version_manager: VersionManager) -> None:
    first = await _create(version_manager)
    second = await _create(version_manager)
    with pytest.raises(ResourceNotFoundException):
        await version_manager.rollback(first.id, second.current_version_id, OWNER)


async def test_set_active_toggles_triggering(version_manager: VersionManager) -> None:
    workflow = await _create(version_manager, publish=True)
    assert workflow.can_trigger_on("lead_created")
    disabled = await version_manager.set_active(workflow.id, False, OWNER)
    assert not disabled.can_trigger_on("lead_created")
