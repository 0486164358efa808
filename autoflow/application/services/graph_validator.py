"""Structural and schema validation of workflow graphs.

Pure and side-effect free: never persists, never corrects the graph. A graph
may reach the VersionManager only when validate() returns an empty list.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError

from autoflow.application.interfaces.services import INodeTypeCatalog
from autoflow.application.services.cycle_detector import (
    find_nodes_in_cycles,
    has_any_cycle,
)
from autoflow.domain.entities.graph import Edge, Node, WorkflowGraph
from autoflow.domain.enums import BRANCH_ERROR, BRANCH_FALSE, BRANCH_TRUE, NodeType
from autoflow.domain.exceptions import GraphValidationException
from autoflow.domain.value_objects.validation import (
    CycleError,
    DanglingEdgeError,
    SchemaError,
    TriggerCountError,
    UnknownNodeTypeError,
    ValidationError,
    WeightError,
)

_CONDITION_BRANCHES = frozenset({BRANCH_TRUE, BRANCH_FALSE, BRANCH_ERROR})


def _field_of(error: JsonSchemaValidationError) -> str | None:
    """Dotted path of the offending field; for 'required' the missing key itself."""
    path = [str(p) for p in error.absolute_path]
    if error.validator == "required" and isinstance(error.instance, Mapping):
        missing = [k for k in error.validator_value if k not in error.instance]
        if missing:
            path.append(str(missing[0]))
    return ".".join(path) or None


class GraphValidator:
    """Runs checks (a) trigger count, (b) dangling edges, (c) cycles,
    (d) ab_test weights, (e) node types and payload schemas, in that order.
    """

    def __init__(self, catalog: INodeTypeCatalog) -> None:
        self.catalog = catalog
        self._validators: dict[str, Draft202012Validator] = {}

    def validate(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> list[ValidationError]:
        """Return every problem found; an empty list means the graph is valid."""
        graph = WorkflowGraph.build(nodes, edges)
        errors: list[ValidationError] = []
        errors.extend(self._check_trigger_count(graph))
        errors.extend(self._check_dangling_edges(graph))
        errors.extend(self._check_cycles(graph))
        errors.extend(self._check_ab_weights(graph))
        errors.extend(self._check_node_payloads(graph))
        return errors

    def ensure_valid(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> WorkflowGraph:
        """Validate and return the built graph.

        Raises:
            GraphValidationException: If any check fails.
        """
        graph = WorkflowGraph.build(nodes, edges)
        errors = self.validate(graph.nodes, graph.edges)
        if errors:
            raise GraphValidationException(errors)
        return graph

    def _check_trigger_count(self, graph: WorkflowGraph) -> list[ValidationError]:
        triggers = graph.trigger_nodes()
        if len(triggers) == 1:
            return []
        if not triggers:
            return [TriggerCountError("Workflow must have exactly one trigger node; found none")]
        return [
            TriggerCountError(
                f"Workflow must have exactly one trigger node; found {len(triggers)}",
                node_ids=tuple(n.id for n in triggers),
            )
        ]

    def _check_dangling_edges(self, graph: WorkflowGraph) -> list[ValidationError]:
        known = {n.id for n in graph.nodes}
        errors: list[ValidationError] = []
        for edge in graph.edges:
            missing = [end for end in (edge.source, edge.target) if end not in known]
            if missing:
                errors.append(
                    DanglingEdgeError(
                        f"Edge {edge.source} -> {edge.target} references unknown node(s): "
                        f"{', '.join(missing)}",
                        node_ids=tuple(missing),
                    )
                )
        return errors

    def _check_cycles(self, graph: WorkflowGraph) -> list[ValidationError]:
        if not has_any_cycle(graph.nodes, graph.edges):
            return []
        involved = find_nodes_in_cycles(graph.nodes, graph.edges)
        ordered = tuple(n.id for n in graph.nodes if n.id in involved)
        return [
            CycleError(
                f"Workflow contains a cycle through: {', '.join(ordered)}",
                node_ids=ordered,
            )
        ]

    def _check_ab_weights(self, graph: WorkflowGraph) -> list[ValidationError]:
        errors: list[ValidationError] = []
        for node in graph.nodes:
            if node.type != NodeType.AB_TEST.value:
                continue
            paths = node.data.get("paths")
            if not isinstance(paths, list) or not all(isinstance(p, Mapping) for p in paths):
                continue  # malformed payload is reported by the schema check
            try:
                total = sum(float(p.get("percentage", 0)) for p in paths)
            except (TypeError, ValueError):
                continue
            if not math.isclose(total, 100.0):
                errors.append(
                    WeightError(
                        f"ab_test node {node.id} path percentages sum to {total:g}, expected 100",
                        node_ids=(node.id,),
                        field="paths",
                    )
                )
            path_ids = {str(p.get("id")) for p in paths}
            for edge in graph.outgoing(node.id):
                if edge.branch == BRANCH_ERROR:
                    continue
                if edge.branch not in path_ids:
                    errors.append(
                        WeightError(
                            f"ab_test node {node.id} has an edge to {edge.target} "
                            f"with branch {edge.branch!r} that names no declared path",
                            node_ids=(node.id,),
                            field="branch",
                        )
                    )
        return errors

    def _check_node_payloads(self, graph: WorkflowGraph) -> list[ValidationError]:
        errors: list[ValidationError] = []
        counts = Counter(n.id for n in graph.nodes)
        for node_id, count in counts.items():
            if count > 1:
                errors.append(
                    SchemaError(
                        f"Node id {node_id} is used by {count} nodes",
                        node_ids=(node_id,),
                        field="id",
                    )
                )
        for node in graph.nodes:
            if not self.catalog.is_known(node.type):
                errors.append(
                    UnknownNodeTypeError(
                        f"Node {node.id} has unknown type {node.type!r}",
                        node_ids=(node.id,),
                        field="type",
                    )
                )
                continue
            errors.extend(self._schema_errors(node))
            if node.type == NodeType.CONDITION.value:
                errors.extend(self._condition_branch_errors(graph, node))
            elif node.type == NodeType.VARIABLE.value:
                errors.extend(self._variable_branch_errors(graph, node))
        return errors

    def _schema_errors(self, node: Node) -> list[ValidationError]:
        validator = self._validator_for(node.type)
        if validator is None:
            return []
        found = sorted(
            validator.iter_errors(node.data),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        return [
            SchemaError(
                f"Node {node.id} ({node.type}): {e.message}",
                node_ids=(node.id,),
                field=_field_of(e),
            )
            for e in found
        ]

    def _validator_for(self, node_type: str) -> Draft202012Validator | None:
        if node_type in self._validators:
            return self._validators[node_type]
        schema = self.catalog.schema_for(node_type)
        if schema is None:
            return None
        validator = Draft202012Validator(schema)
        self._validators[node_type] = validator
        return validator

    def _condition_branch_errors(self, graph: WorkflowGraph, node: Node) -> list[ValidationError]:
        return [
            SchemaError(
                f"Condition node {node.id} has an edge to {edge.target} with branch "
                f"{edge.branch!r}; expected 'true', 'false' or 'error'",
                node_ids=(node.id,),
                field="branch",
            )
            for edge in graph.outgoing(node.id)
            if edge.branch not in _CONDITION_BRANCHES
        ]

    def _variable_branch_errors(self, graph: WorkflowGraph, node: Node) -> list[ValidationError]:
        ordinary = [e for e in graph.outgoing(node.id) if e.branch != BRANCH_ERROR]
        if len(ordinary) <= 1:
            return []
        return [
            SchemaError(
                f"Variable node {node.id} must have at most one outgoing edge; found {len(ordinary)}",
                node_ids=(node.id,),
                field="edges",
            )
        ]
