"""Cycle detection over workflow graphs.

Pure functions, no I/O. The editor calls would_create_cycle before adding
an edge; the validator calls has_any_cycle and find_nodes_in_cycles on
every save; the engine walks topological_order.

Edges whose endpoints are not declared nodes are ignored here; dangling
edges are reported separately by the validator.
"""

from collections import deque
from collections.abc import Iterable

from autoflow.domain.entities.graph import Edge, Node

_WHITE, _GRAY, _BLACK = 0, 1, 2


def _node_ids(nodes: Iterable[Node]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for node in nodes:
        if node.id not in seen:
            seen.add(node.id)
            ordered.append(node.id)
    return ordered


def build_adjacency(
    nodes: Iterable[Node], edges: Iterable[Edge]
) -> dict[str, list[str]]:
    """Return node id -> successor ids, in node and edge declaration order."""
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in _node_ids(nodes)}
    for edge in edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append(edge.target)
    return adjacency


def _has_cycle(adjacency: dict[str, list[str]], excluded: str | None = None) -> bool:
    """Three-color DFS, iterative so deep graphs do not hit the recursion limit."""
    color = {node_id: _WHITE for node_id in adjacency if node_id != excluded}
    for root in color:
        if color[root] != _WHITE:
            continue
        color[root] = _GRAY
        stack = [(root, iter(adjacency[root]))]
        while stack:
            node_id, successors = stack[-1]
            advanced = False
            for succ in successors:
                if succ == excluded:
                    continue
                state = color[succ]
                if state == _GRAY:
                    return True
                if state == _WHITE:
                    color[succ] = _GRAY
                    stack.append((succ, iter(adjacency[succ])))
                    advanced = True
                    break
            if not advanced:
                color[node_id] = _BLACK
                stack.pop()
    return False


def has_any_cycle(nodes: Iterable[Node], edges: Iterable[Edge]) -> bool:
    """Return True if the graph contains a directed cycle (self-loops included). O(V+E)."""
    return _has_cycle(build_adjacency(nodes, edges))


def would_create_cycle(
    nodes: Iterable[Node], edges: Iterable[Edge], candidate: Edge
) -> bool:
    """Return True if adding candidate to edges would make the graph cyclic.

    Equivalent to has_any_cycle(nodes, edges + [candidate]).
    """
    return has_any_cycle(nodes, [*edges, candidate])


def find_nodes_in_cycles(nodes: Iterable[Node], edges: Iterable[Edge]) -> set[str]:
    """Return the ids of every node that lies on some cycle.

    Node n is reported when it has a self-loop or one of its successors can
    reach it again. Used to name the offending nodes in a CycleError.
    O(V * (V + E)).
    """
    adjacency = build_adjacency(nodes, edges)
    if not _has_cycle(adjacency):
        return set()
    in_cycle: set[str] = set()
    for node_id, successors in adjacency.items():
        if node_id in successors or _reaches(adjacency, successors, node_id):
            in_cycle.add(node_id)
    return in_cycle


def _reaches(adjacency: dict[str, list[str]], starts: list[str], target: str) -> bool:
    seen: set[str] = set()
    stack = list(starts)
    while stack:
        current = stack.pop()
        if current == target:
            return True
        if current in seen:
            continue
        seen.add(current)
        stack.extend(adjacency[current])
    return False


def topological_order(nodes: Iterable[Node], edges: Iterable[Edge]) -> list[str]:
    """Kahn's algorithm; ties resolved by node declaration order.

    Raises:
        ValueError: If the graph is cyclic.
    """
    adjacency = build_adjacency(nodes, edges)
    position = {node_id: i for i, node_id in enumerate(adjacency)}
    indegree = dict.fromkeys(adjacency, 0)
    for successors in adjacency.values():
        for succ in successors:
            indegree[succ] += 1
    ready = deque(node_id for node_id in adjacency if indegree[node_id] == 0)
    order: list[str] = []
    while ready:
        node_id = ready.popleft()
        order.append(node_id)
        released = []
        for succ in adjacency[node_id]:
            indegree[succ] -= 1
            if indegree[succ] == 0:
                released.append(succ)
        ready.extend(sorted(released, key=position.__getitem__))
    if len(order) != len(adjacency):
        raise ValueError("graph contains a cycle; no topological order exists")
    return order
