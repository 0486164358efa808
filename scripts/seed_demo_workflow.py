"""Seed a demo workflow and fire one event through it.

Creates a published "Facebook lead follow-up" workflow for organization
demo-org (trigger lead_created on channel facebook, a condition on the lead
score, an email action on the true branch), dispatches a matching event and
prints the execution log.

Usage:
    python -m scripts.seed_demo_workflow [organization_id]

Storage follows AUTOFLOW_STORAGE_BACKEND (memory by default). For sql, run
`alembic upgrade head` first.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

from autoflow.application.dtos.execution import HandlerResult
from autoflow.application.dtos.trigger_event import TriggerEvent
from autoflow.application.services.handler_registry import HandlerRegistry
from autoflow.core.bootstrap import runtime_lifespan
from autoflow.core.config import get_settings
from autoflow.domain.entities.graph import Node
from autoflow.domain.enums import WorkflowRole
from autoflow.shared.cancellation import CancellationToken
from autoflow.shared.telemetry.logging import get_logger, setup_logging

logger = get_logger(__name__)

DEMO_OWNER = "demo-owner"

DEMO_NODES: list[dict[str, Any]] = [
    {
        "id": "trigger",
        "type": "trigger",
        "data": {"trigger_type": "lead_created", "channel": "facebook"},
    },
    {
        "id": "hot_lead",
        "type": "condition",
        "data": {"variable": "lead.score", "operator": "greater_than", "value": 50},
    },
    {
        "id": "send_email",
        "type": "action",
        "data": {
            "action": "send_email",
            "to": "{{lead.email}}",
            "subject": "Thanks for reaching out, {{lead.name}}",
        },
    },
]

DEMO_EDGES: list[dict[str, Any]] = [
    {"source": "trigger", "target": "hot_lead"},
    {"source": "hot_lead", "target": "send_email", "branch": "true"},
]


async def _print_action(
    node: Node, context: dict[str, Any], cancel_token: CancellationToken
) -> HandlerResult:
    print(f"  [action] {node.data.get('action')}: {node.data}")
    return HandlerResult(output_context={f"{node.id}_sent": True})


def _register_demo_handlers(registry: HandlerRegistry) -> None:
    registry.register("action", _print_action)


async def seed(organization_id: str) -> None:
    settings = get_settings()
    async with runtime_lifespan(settings, [_register_demo_handlers]) as runtime:
        await runtime.permissions.set_organization_role(
            organization_id, DEMO_OWNER, WorkflowRole.ADMIN
        )
        workflow = await runtime.versions.create_workflow(
            organization_id,
            "Facebook lead follow-up",
            DEMO_NODES,
            DEMO_EDGES,
            DEMO_OWNER,
            description="Emails hot leads that arrive through Facebook.",
            publish=True,
        )
        print(f"Created workflow {workflow.id} (published {workflow.published_version_id})")

        instances = await runtime.dispatcher.dispatch(
            TriggerEvent(
                type="lead_created",
                organization_id=organization_id,
                payload={
                    "channel": "facebook",
                    "lead": {"name": "Ada", "email": "ada@example.com", "score": 80},
                },
                entity_id="lead-ada",
            )
        )
        await runtime.dispatcher.drain()

        for instance in instances:
            finished = await runtime.execution_repo.get_by_id(instance.id)
            print(f"Execution {instance.id}: {finished.status.value}")
            print(f"  routes: {finished.context.get('_routes', {})}")
            for entry in await runtime.execution_repo.list_logs(instance.id):
                print(
                    f"  #{entry.sequence} {entry.node_id} ({entry.node_type}) "
                    f"{entry.status.value} branch={entry.branch}"
                )


def main() -> None:
    setup_logging()
    organization_id = sys.argv[1] if len(sys.argv) > 1 else "demo-org"
    asyncio.run(seed(organization_id))


if __name__ == "__main__":
    main()
