"""Tests for GraphValidator: structural checks, payload schemas and check order."""

import pytest

from autoflow.application.services.graph_validator import GraphValidator
from autoflow.domain.exceptions import GraphValidationException
from tests.helpers import linear_graph, trigger_node


def _codes(errors) -> list[str]:
    return [e.code for e in errors]


def test_valid_linear_graph(validator: GraphValidator) -> None:
    nodes, edges = linear_graph({"id": "send_email", "type": "action", "data": {"to": "x"}})
    assert validator.validate(nodes, edges) == []


def test_missing_trigger(validator: GraphValidator) -> None:
    errors = validator.validate([{"id": "a", "type": "action", "data": {}}], [])
    assert _codes(errors) == ["TRIGGER_COUNT"]


def test_two_triggers(validator: GraphValidator) -> None:
    nodes = [trigger_node(), {**trigger_node(), "id": "trigger2"}]
    errors = validator.validate(nodes, [])
    assert _codes(errors) == ["TRIGGER_COUNT"]
    assert errors[0].node_ids == ("trigger", "trigger2")


def test_dangling_edge(validator: GraphValidator) -> None:
    errors = validator.validate([trigger_node()], [{"source": "trigger", "target": "ghost"}])
    assert _codes(errors) == ["DANGLING_EDGE"]
    assert errors[0].node_ids == ("ghost",)


def test_cycle_names_nodes_in_declaration_order(validator: GraphValidator) -> None:
    nodes = [
        trigger_node(),
        {"id": "A", "type": "action", "data": {}},
        {"id": "B", "type": "action", "data": {}},
        {"id": "C", "type": "action", "data": {}},
    ]
    edges = [
        {"source": "trigger", "target": "A"},
        {"source": "A", "target": "B"},
        {"source": "B", "target": "C"},
        {"source": "C", "target": "A"},
    ]
    errors = validator.validate(nodes, edges)
    assert _codes(errors) == ["CYCLE"]
    assert errors[0].node_ids == ("A", "B", "C")


def _ab_graph(percentages: list[float], branches: list[str]):
    paths = [{"id": f"p{i}", "percentage": pct} for i, pct in enumerate(percentages)]
    nodes = [
        trigger_node(),
        {"id": "split", "type": "ab_test", "data": {"paths": paths}},
        {"id": "x", "type": "action", "data": {}},
        {"id": "y", "type": "action", "data": {}},
    ]
    edges = [{"source": "trigger", "target": "split"}]
    edges += [
        {"source": "split", "target": target, "branch": branch}
        for target, branch in zip(["x", "y"], branches)
    ]
    return nodes, edges


def test_ab_weights_must_sum_to_100(validator: GraphValidator) -> None:
    nodes, edges = _ab_graph([60, 30], ["p0", "p1"])
    errors = validator.validate(nodes, edges)
    assert _codes(errors) == ["WEIGHT"]
    assert "90" in errors[0].message


def test_ab_fractional_weights_summing_to_100_are_valid(validator: GraphValidator) -> None:
    nodes, edges = _ab_graph([33.3, 66.7], ["p0", "p1"])
    assert validator.validate(nodes, edges) == []


def test_ab_edge_must_name_declared_path(validator: GraphValidator) -> None:
    nodes, edges = _ab_graph([50, 50], ["p0", "nope"])
    errors = validator.validate(nodes, edges)
    assert _codes(errors) == ["WEIGHT"]
    assert errors[0].field == "branch"


def test_unknown_node_type_is_configuration_error(validator: GraphValidator) -> None:
    nodes, edges = linear_graph({"id": "pay", "type": "billing", "data": {}})
    errors = validator.validate(nodes, edges)
    assert _codes(errors) == ["CONFIGURATION_ERROR"]
    assert errors[0].node_ids == ("pay",)


def test_schema_error_reports_missing_field(validator: GraphValidator) -> None:
    nodes, edges = linear_graph({"id": "v", "type": "variable", "data": {"operation": "set"}})
    errors = validator.validate(nodes, edges)
    assert _codes(errors) == ["SCHEMA"]
    assert errors[0].field == "variable"


def test_trigger_requires_trigger_type(validator: GraphValidator) -> None:
    errors = validator.validate([{"id": "t", "type": "trigger", "data": {}}], [])
    assert _codes(errors) == ["SCHEMA"]
    assert errors[0].field == "trigger_type"


def test_duplicate_node_ids(validator: GraphValidator) -> None:
    nodes = [
        trigger_node(),
        {"id": "a", "type": "action", "data": {}},
        {"id": "a", "type": "action", "data": {}},
    ]
    errors = validator.validate(nodes, [{"source": "trigger", "target": "a"}])
    assert "SCHEMA" in _codes(errors)
    assert any(e.field == "id" for e in errors)


def test_condition_edges_need_true_false_or_error(validator: GraphValidator) -> None:
    nodes = [
        trigger_node(),
        {"id": "c", "type": "condition", "data": {"variable": "x", "operator": "equals", "value": 1}},
        {"id": "a", "type": "action", "data": {}},
    ]
    edges = [
        {"source": "trigger", "target": "c"},
        {"source": "c", "target": "a", "branch": "maybe"},
    ]
    errors = validator.validate(nodes, edges)
    assert _codes(errors) == ["SCHEMA"]
    assert errors[0].field == "branch"


def test_variable_has_at_most_one_ordinary_out_edge(validator: GraphValidator) -> None:
    nodes = [
        trigger_node(),
        {"id": "v", "type": "variable", "data": {"variable": "n", "operation": "set", "value": 1}},
        {"id": "a", "type": "action", "data": {}},
        {"id": "b", "type": "action", "data": {}},
        {"id": "err", "type": "action", "data": {}},
    ]
    edges = [
        {"source": "trigger", "target": "v"},
        {"source": "v", "target": "a"},
        {"source": "v", "target": "err", "branch": "error"},
    ]
    assert validator.validate(nodes, edges) == []
    edges.append({"source": "v", "target": "b"})
    assert _codes(validator.validate(nodes, edges)) == ["SCHEMA"]


def test_errors_come_back_in_check_order(validator: GraphValidator) -> None:
    nodes = [
        {"id": "A", "type": "action", "data": {}},
        {"id": "B", "type": "mystery", "data": {}},
    ]
    edges = [
        {"source": "A", "target": "B"},
        {"source": "B", "target": "A"},
        {"source": "A", "target": "ghost"},
    ]
    assert _codes(validator.validate(nodes, edges)) == [
        "TRIGGER_COUNT",
        "DANGLING_EDGE",
        "CYCLE",
        "CONFIGURATION_ERROR",
    ]


def test_ensure_valid_raises_with_all_errors(validator: GraphValidator) -> None:
    with pytest.raises(GraphValidationException) as exc_info:
        validator.ensure_valid([], [{"source": "a", "target": "b"}])
    exc = exc_info.value
    assert exc.error_code == "GRAPH_VALIDATION_ERROR"
    assert [e["code"] for e in exc.details["errors"]] == ["TRIGGER_COUNT", "DANGLING_EDGE"]


def test_ensure_valid_returns_graph(validator: GraphValidator) -> None:
    nodes, edges = linear_graph({"id": "a", "type": "action", "data": {}})
    graph = validator.ensure_valid(nodes, edges)
    assert [n.id for n in graph.nodes] == ["trigger", "a"]
