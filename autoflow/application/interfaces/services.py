"""Service interfaces (ports) for the application layer.

Protocols define contracts for pluggable services (DIP): action handlers
registered by collaborating modules, the node-type catalog the validator
consults, and advisory suggestion providers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from autoflow.application.dtos.execution import HandlerResult
    from autoflow.application.dtos.suggestion import Suggestion, SuggestionContext
    from autoflow.domain.entities.graph import Node
    from autoflow.shared.cancellation import CancellationToken


# Action handler interface
class IActionHandler(Protocol):
    """Protocol for node handlers (built-in or registered by a collaborator).

    Handlers must respect cancel_token; the engine stops waiting once it is
    set or the node timeout elapses but cannot force-stop a handler.
    Raising any exception fails the step.
    """

    async def execute(
        self,
        node: Node,
        context: dict[str, Any],
        cancel_token: CancellationToken,
    ) -> HandlerResult:
        """Run the node against the context and return output and branch."""


# Node type catalog interface (implemented by HandlerRegistry)
class INodeTypeCatalog(Protocol):
    """Protocol for looking up which node types exist and their data schemas."""

    def is_known(self, node_type: str) -> bool:
        """Return True if a handler is registered for node_type."""

    def schema_for(self, node_type: str) -> dict[str, Any] | None:
        """Return the JSON schema of node_type's data, or None if unconstrained."""


# Suggestion provider interface
class ISuggestionProvider(Protocol):
    """Protocol for advisory next-node suggestions."""

    async def get_suggestions(self, context: SuggestionContext) -> list[Suggestion]:
        """Return suggestions sorted by confidence, highest first."""
