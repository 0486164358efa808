"""Handler registry: node type -> handler, payload schema and interpolation flag.

Populated during runtime startup (built-ins first, then each collaborating
module's registration hook), then frozen and passed explicitly to the
validator, engine and dispatcher. Never a module-level global.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError as JsonSchemaDefinitionError

from autoflow.application.dtos.execution import HandlerResult
from autoflow.application.interfaces.services import IActionHandler
from autoflow.application.services.node_schemas import DELEGATED_SCHEMA
from autoflow.domain.entities.graph import Node
from autoflow.domain.exceptions import ConfigurationException
from autoflow.shared.cancellation import CancellationToken
from autoflow.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

HandlerFunc = Callable[[Node, dict[str, Any], CancellationToken], Awaitable[HandlerResult]]


class _FunctionHandler:
    """Adapts a bare async function to IActionHandler."""

    def __init__(self, func: HandlerFunc) -> None:
        self._func = func

    async def execute(
        self, node: Node, context: dict[str, Any], cancel_token: CancellationToken
    ) -> HandlerResult:
        return await self._func(node, context, cancel_token)


@dataclass(frozen=True)
class HandlerRegistration:
    """One registry entry.

    interpolate: True renders `{{path}}` placeholders in every string of the
    node data before the call; a frozenset renders only those top-level
    fields; False passes the data through raw.
    control: built-in control node, run for real even in dry runs.
    routing: the node only picks a branch. A completed step is recorded in
    the context routes instead of the execution log.
    """

    node_type: str
    handler: IActionHandler
    schema: dict[str, Any] | None
    interpolate: bool | frozenset[str] = True
    control: bool = False
    routing: bool = False


class HandlerRegistry:
    """Explicit dispatch table keyed by node type (implements INodeTypeCatalog)."""

    def __init__(self) -> None:
        self._entries: dict[str, HandlerRegistration] = {}
        self._frozen = False

    def register(
        self,
        node_type: str,
        handler: IActionHandler | HandlerFunc,
        *,
        schema: dict[str, Any] | None = None,
        interpolate: bool | Collection[str] = True,
        control: bool = False,
        routing: bool = False,
    ) -> None:
        """Register the handler for a node type.

        Args:
            node_type: Node type string (e.g. 'action', 'billing').
            handler: Object with async execute(node, context, cancel_token), or
                an async function with the same signature.
            schema: JSON schema for the node's data; defaults to any object.
            interpolate: Render `{{path}}` placeholders before the call: True
                for every field, or the names of the top-level fields to render.
            control: Built-in control node (not skipped by dry runs).
            routing: Pure branch selection; completed steps are not logged.

        Raises:
            ConfigurationException: If the registry is frozen, the type is
                already registered, or the schema is not a valid JSON schema.
        """
        if self._frozen:
            raise ConfigurationException(
                f"Cannot register handler for {node_type!r}: registry is frozen",
                node_type=node_type,
            )
        if not node_type:
            raise ConfigurationException("Node type must be a non-empty string")
        if node_type in self._entries:
            raise ConfigurationException(
                f"Handler for node type {node_type!r} is already registered",
                node_type=node_type,
            )
        effective_schema = DELEGATED_SCHEMA if schema is None else schema
        try:
            Draft202012Validator.check_schema(effective_schema)
        except JsonSchemaDefinitionError as e:
            raise ConfigurationException(
                f"Invalid data schema for node type {node_type!r}: {e.message}",
                node_type=node_type,
            ) from e
        if not hasattr(handler, "execute"):
            handler = _FunctionHandler(handler)
        self._entries[node_type] = HandlerRegistration(
            node_type=node_type,
            handler=handler,
            schema=effective_schema,
            interpolate=interpolate if isinstance(interpolate, bool) else frozenset(interpolate),
            control=control,
            routing=routing,
        )
        logger.debug("Registered handler for node type %s", node_type)

    def freeze(self) -> None:
        """Reject further registrations. Called once startup completes."""
        self._frozen = True
        logger.info("Handler registry frozen with node types: %s", ", ".join(self.node_types()))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, node_type: str) -> HandlerRegistration:
        """Return the registration for a node type.

        Raises:
            ConfigurationException: If no handler is registered for node_type.
        """
        entry = self._entries.get(node_type)
        if entry is None:
            raise ConfigurationException(
                f"No handler registered for node type {node_type!r}",
                node_type=node_type,
            )
        return entry

    def is_known(self, node_type: str) -> bool:
        return node_type in self._entries

    def is_routing(self, node_type: str) -> bool:
        entry = self._entries.get(node_type)
        return entry is not None and entry.routing

    def schema_for(self, node_type: str) -> dict[str, Any] | None:
        entry = self._entries.get(node_type)
        return entry.schema if entry else None

    def node_types(self) -> list[str]:
        return sorted(self._entries)
