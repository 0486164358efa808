"""Tests for cycle detection and topological ordering."""

import pytest

from autoflow.application.services.cycle_detector import (
    find_nodes_in_cycles,
    has_any_cycle,
    topological_order,
    would_create_cycle,
)
from autoflow.domain.entities.graph import Edge, Node


def _nodes(*ids: str) -> list[Node]:
    return [Node(id=i, type="action") for i in ids]


def _edges(*pairs: str) -> list[Edge]:
    return [Edge(source=p[0], target=p[1]) for p in pairs]


def test_acyclic_graph_has_no_cycle() -> None:
    assert has_any_cycle(_nodes("A", "B", "C", "D"), _edges("AB", "AC", "BD", "CD")) is False


def test_back_edge_is_a_cycle() -> None:
    assert has_any_cycle(_nodes("A", "B", "C"), _edges("AB", "BC", "CA")) is True


def test_self_loop_is_a_cycle() -> None:
    nodes = _nodes("A", "B")
    edges = _edges("AB", "BB")
    assert has_any_cycle(nodes, edges) is True
    assert find_nodes_in_cycles(nodes, edges) == {"B"}


def test_empty_graph_has_no_cycle() -> None:
    assert has_any_cycle([], []) is False


def test_edges_to_undeclared_nodes_are_ignored() -> None:
    assert has_any_cycle(_nodes("A"), [Edge("A", "ghost"), Edge("ghost", "A")]) is False


def test_would_create_cycle_matches_has_any_cycle_with_candidate() -> None:
    nodes = _nodes("A", "B", "C", "D")
    edges = _edges("AB", "BC", "CD")
    for source in "ABCD":
        for target in "ABCD":
            candidate = Edge(source, target)
            assert would_create_cycle(nodes, edges, candidate) == has_any_cycle(
                nodes, [*edges, candidate]
            )
    assert would_create_cycle(nodes, edges, Edge("D", "A")) is True
    assert would_create_cycle(nodes, edges, Edge("A", "D")) is False


def test_find_nodes_in_triangle() -> None:
    assert find_nodes_in_cycles(_nodes("A", "B", "C"), _edges("AB", "BC", "CA")) == {"A", "B", "C"}


def test_find_nodes_excludes_nodes_only_feeding_a_cycle() -> None:
    nodes = _nodes("T", "A", "B", "X")
    edges = _edges("TA", "AB", "BA", "BX")
    assert find_nodes_in_cycles(nodes, edges) == {"A", "B"}


def test_find_nodes_reports_disjoint_cycles() -> None:
    nodes = _nodes("A", "B", "C", "D")
    edges = _edges("AB", "BA", "CD", "DC")
    assert find_nodes_in_cycles(nodes, edges) == {"A", "B", "C", "D"}


def test_find_nodes_on_acyclic_graph_is_empty() -> None:
    assert find_nodes_in_cycles(_nodes("A", "B"), _edges("AB")) == set()


def test_topological_order_respects_edges_and_declaration_order() -> None:
    nodes = _nodes("T", "B", "A", "C")
    edges = _edges("TA", "TB", "AC", "BC")
    order = topological_order(nodes, edges)
    assert order == ["T", "B", "A", "C"]


def test_topological_order_rejects_cycles() -> None:
    with pytest.raises(ValueError):
        topological_order(_nodes("A", "B"), _edges("AB", "BA"))


def test_deep_chain_does_not_hit_recursion_limit() -> None:
    ids = [f"n{i}" for i in range(5000)]
    nodes = _nodes(*ids)
    edges = [Edge(ids[i], ids[i + 1]) for i in range(len(ids) - 1)]
    assert has_any_cycle(nodes, edges) is False
    assert would_create_cycle(nodes, edges, Edge(ids[-1], ids[0])) is True
