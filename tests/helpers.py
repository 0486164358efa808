"""Shared test doubles and graph builders."""

from __future__ import annotations

from typing import Any

from autoflow.application.dtos.execution import HandlerResult
from autoflow.domain.entities.graph import Node
from autoflow.shared.cancellation import CancellationToken

ORG = "org-1"
OWNER = "owner-1"


class RecordingHandler:
    """Delegated handler double: records each call and returns a fixed result."""

    def __init__(self, output: dict[str, Any] | None = None) -> None:
        self.calls: list[tuple[Node, dict[str, Any]]] = []
        self.output = output or {}

    async def execute(
        self, node: Node, context: dict[str, Any], cancel_token: CancellationToken
    ) -> HandlerResult:
        self.calls.append((node, context))
        return HandlerResult(output_context=dict(self.output))

    @property
    def node_ids(self) -> list[str]:
        return [node.id for node, _ in self.calls]


def trigger_node(trigger_type: str = "lead_created", **data: Any) -> dict[str, Any]:
    return {"id": "trigger", "type": "trigger", "data": {"trigger_type": trigger_type, **data}}


def linear_graph(
    *middle: dict[str, Any], trigger_type: str = "lead_created"
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """trigger -> middle[0] -> middle[1] ... as (nodes, edges) dicts."""
    nodes = [trigger_node(trigger_type), *middle]
    edges = [
        {"source": nodes[i]["id"], "target": nodes[i + 1]["id"]} for i in range(len(nodes) - 1)
    ]
    return nodes, edges
