"""Workflow graph: typed nodes and optionally branch-tagged edges.

Nodes are a tagged union keyed by `type`; each type's `data` payload has
its own schema (see application.services.node_schemas). The graph is
immutable once built; editing produces a new graph and a new version.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from autoflow.domain.enums import NodeType


@dataclass(frozen=True)
class Node:
    """A typed unit of work within a workflow graph."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "data": self.data}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Node:
        return cls(
            id=str(raw["id"]),
            type=str(raw["type"]),
            data=dict(raw.get("data") or {}),
        )


@dataclass(frozen=True)
class Edge:
    """Directed connection between two nodes.

    branch disambiguates several outgoing edges of one node: 'true'/'false'
    after a condition, the path id after an ab_test, 'error' for an error edge.
    """

    source: str
    target: str
    branch: str | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"source": self.source, "target": self.target}
        if self.branch is not None:
            data["branch"] = self.branch
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Edge:
        branch = raw.get("branch")
        edge_id = raw.get("id")
        return cls(
            source=str(raw["source"]),
            target=str(raw["target"]),
            branch=str(branch) if branch is not None else None,
            id=str(edge_id) if edge_id is not None else None,
        )


def _coerce_nodes(nodes: Iterable[Node | Mapping[str, Any]]) -> tuple[Node, ...]:
    return tuple(n if isinstance(n, Node) else Node.from_dict(n) for n in nodes)


def _coerce_edges(edges: Iterable[Edge | Mapping[str, Any]]) -> tuple[Edge, ...]:
    return tuple(e if isinstance(e, Edge) else Edge.from_dict(e) for e in edges)


@dataclass(frozen=True)
class WorkflowGraph:
    """Nodes and edges of one workflow version."""

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()

    @classmethod
    def build(
        cls,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> WorkflowGraph:
        """Build from entities or raw dicts (as stored in a version row)."""
        return cls(nodes=_coerce_nodes(nodes), edges=_coerce_edges(edges))

    def node_map(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def trigger_nodes(self) -> list[Node]:
        return [n for n in self.nodes if n.type == NodeType.TRIGGER.value]

    def outgoing(self, node_id: str) -> list[Edge]:
        """Outgoing edges of a node in declaration order."""
        return [e for e in self.edges if e.source == node_id]

    def node_dicts(self) -> list[dict[str, Any]]:
        return [n.to_dict() for n in self.nodes]

    def edge_dicts(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self.edges]

    def canonical_json(self) -> str:
        """Deterministic serialization; equal graphs give byte-equal output."""
        return json.dumps(
            {"nodes": self.node_dicts(), "edges": self.edge_dicts()},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
