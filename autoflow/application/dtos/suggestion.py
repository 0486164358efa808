"""DTOs for advisory next-node suggestions."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SuggestionContext:
    """What the editor knows when asking for the next node."""

    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]
    last_node: dict[str, Any] | None = None
    variables: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Suggestion:
    """A proposed node to append. confidence is in [0, 1]; never auto-applied."""

    node_type: str
    confidence: float
    reasoning: str
    suggested_config: dict[str, Any] = field(default_factory=dict)
