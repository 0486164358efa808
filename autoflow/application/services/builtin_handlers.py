"""Built-in handlers for control nodes: trigger, condition, ab_test, variable.

Registered by the runtime before any collaborator hook. They never perform
I/O. Only the variable node's `value` is rendered against the context; the
other control nodes read their data raw.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping, Sequence
from typing import Any

from autoflow.application.dtos.execution import HandlerResult
from autoflow.application.services.handler_registry import HandlerRegistry
from autoflow.application.services.node_schemas import BUILTIN_SCHEMAS
from autoflow.domain.entities.graph import Node
from autoflow.domain.enums import BRANCH_FALSE, BRANCH_TRUE, NodeType
from autoflow.domain.exceptions import HandlerException
from autoflow.shared.cancellation import CancellationToken
from autoflow.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

# Reserved context keys seeded by the dispatcher/engine.
CTX_EVENT_TYPE = "_event_type"
CTX_ORGANIZATION_ID = "_organization_id"
CTX_ENTITY_ID = "_entity_id"
CTX_EXECUTION_ID = "_execution_id"
CTX_LAST_ERROR = "_last_error"
CTX_ROUTES = "_routes"

_MISSING = object()


def resolve_path(context: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Look up a dotted path ('lead.source') in nested mappings and lists."""
    current: Any = context
    for part in path.strip().split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return default
    return current


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (Mapping, Sequence)):
        return len(value) == 0
    return False


def _equals(left: Any, right: Any) -> bool:
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num
    return _as_text(left) == _as_text(right)


def _compare(left: Any, right: Any, op: str) -> bool:
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is None or right_num is None:
        return False
    if op == "gt":
        return left_num > right_num
    if op == "lt":
        return left_num < right_num
    if op == "ge":
        return left_num >= right_num
    return left_num <= right_num


def evaluate_clause(context: Mapping[str, Any], clause: Mapping[str, Any]) -> bool:
    """Evaluate one {variable, operator, value} clause against the context."""
    actual = resolve_path(context, str(clause.get("variable", "")))
    operator = clause.get("operator", "equals")
    expected = clause.get("value")
    match operator:
        case "equals" | "==":
            return _equals(actual, expected)
        case "not_equals" | "!=":
            return not _equals(actual, expected)
        case "greater_than" | ">":
            return _compare(actual, expected, "gt")
        case "less_than" | "<":
            return _compare(actual, expected, "lt")
        case "greater_equal" | ">=":
            return _compare(actual, expected, "ge")
        case "less_equal" | "<=":
            return _compare(actual, expected, "le")
        case "contains":
            if isinstance(actual, (list, tuple, set)):
                return any(_equals(item, expected) for item in actual)
            return _as_text(expected) in _as_text(actual)
        case "starts_with":
            return _as_text(actual).startswith(_as_text(expected))
        case "ends_with":
            return _as_text(actual).endswith(_as_text(expected))
        case "is_empty":
            return _is_empty(actual)
        case "is_not_empty":
            return not _is_empty(actual)
        case _:
            return False


class TriggerHandler:
    """Entry point of every graph; the event payload is already in the context."""

    async def execute(
        self, node: Node, context: dict[str, Any], cancel_token: CancellationToken
    ) -> HandlerResult:
        return HandlerResult()


class ConditionHandler:
    """Combines clauses with ALL (default) or ANY; follows 'true' or 'false'."""

    async def execute(
        self, node: Node, context: dict[str, Any], cancel_token: CancellationToken
    ) -> HandlerResult:
        data = node.data
        clauses = data.get("conditions") or [
            {
                "variable": data.get("variable", ""),
                "operator": data.get("operator", "equals"),
                "value": data.get("value"),
            }
        ]
        results = [evaluate_clause(context, clause) for clause in clauses]
        logic = data.get("logic", "ALL")
        outcome = any(results) if logic == "ANY" else all(results)
        logger.debug("Condition %s (%s) -> %s", node.id, logic, outcome)
        return HandlerResult(next_branch=BRANCH_TRUE if outcome else BRANCH_FALSE)


def ab_bucket(entity_id: str, node_id: str) -> int:
    """Stable bucket in [0, 100) for an entity at one ab_test node.

    First 8 bytes of sha256("{entity_id}:{node_id}") as a big-endian
    integer, modulo 100. Independent of process and hash seed.
    """
    digest = hashlib.sha256(f"{entity_id}:{node_id}".encode()).digest()
    return int.from_bytes(digest[:8], "big") % 100


def select_path(paths: Sequence[Mapping[str, Any]], bucket: int) -> str:
    """Walk cumulative percentages; the last path absorbs rounding gaps."""
    cumulative = 0.0
    for path in paths:
        cumulative += float(path.get("percentage", 0))
        if bucket < cumulative:
            return str(path["id"])
    return str(paths[-1]["id"])


def entity_id_for(context: Mapping[str, Any]) -> str:
    """Identifier an ab_test buckets on: event entity, else lead/contact/user id, else execution id."""
    explicit = context.get(CTX_ENTITY_ID)
    if explicit:
        return str(explicit)
    for path in ("lead.id", "contact.id", "user.id"):
        value = resolve_path(context, path)
        if value not in (None, ""):
            return str(value)
    return str(context.get(CTX_EXECUTION_ID, ""))


class ABTestHandler:
    """Deterministic weighted split; the same entity always takes the same path."""

    async def execute(
        self, node: Node, context: dict[str, Any], cancel_token: CancellationToken
    ) -> HandlerResult:
        paths = node.data.get("paths") or []
        if not paths:
            raise HandlerException(f"ab_test node {node.id} declares no paths", node_id=node.id)
        entity_id = entity_id_for(context)
        bucket = ab_bucket(entity_id, node.id)
        path_id = select_path(paths, bucket)
        logger.debug("AB test %s: entity bucket %d -> path %s", node.id, bucket, path_id)
        return HandlerResult(next_branch=path_id)


def _numeric(value: Any, node_id: str, role: str) -> int | float:
    if isinstance(value, bool):
        raise HandlerException(
            f"Variable node {node_id}: {role} {value!r} is not a number", node_id=node_id
        )
    if isinstance(value, (int, float)):
        return value
    try:
        text = str(value).strip()
        return int(text) if text.lstrip("-").isdigit() else float(text)
    except (TypeError, ValueError) as e:
        raise HandlerException(
            f"Variable node {node_id}: {role} {value!r} is not a number", node_id=node_id
        ) from e


class VariableHandler:
    """Mutates one top-level context key: set, add, subtract, multiply, divide, append."""

    async def execute(
        self, node: Node, context: dict[str, Any], cancel_token: CancellationToken
    ) -> HandlerResult:
        name = str(node.data["variable"])
        operation = node.data.get("operation", "set")
        value = node.data.get("value")
        current = context.get(name)

        if operation == "set":
            result: Any = value
        elif operation == "append":
            if current is None:
                result = [value]
            elif isinstance(current, list):
                result = [*current, value]
            else:
                result = _as_text(current) + _as_text(value)
        else:
            left = _numeric(0 if current is None else current, node.id, "current value")
            right = _numeric(value, node.id, "operand")
            if operation == "add":
                result = left + right
            elif operation == "subtract":
                result = left - right
            elif operation == "multiply":
                result = left * right
            elif operation == "divide":
                if right == 0:
                    raise HandlerException(
                        f"Variable node {node.id}: division by zero", node_id=node.id
                    )
                if isinstance(left, int) and isinstance(right, int) and left % right == 0:
                    result = left // right
                else:
                    result = left / right
            else:
                raise HandlerException(
                    f"Variable node {node.id}: unknown operation {operation!r}",
                    node_id=node.id,
                )
        return HandlerResult(output_context={name: result})


def register_builtin_handlers(registry: HandlerRegistry) -> None:
    """Register trigger, condition, ab_test and variable with their schemas."""
    registry.register(
        NodeType.TRIGGER.value,
        TriggerHandler(),
        schema=BUILTIN_SCHEMAS[NodeType.TRIGGER.value],
        interpolate=False,
        control=True,
    )
    for node_type, handler in (
        (NodeType.CONDITION.value, ConditionHandler()),
        (NodeType.AB_TEST.value, ABTestHandler()),
    ):
        registry.register(
            node_type,
            handler,
            schema=BUILTIN_SCHEMAS[node_type],
            interpolate=False,
            control=True,
            routing=True,
        )
    registry.register(
        NodeType.VARIABLE.value,
        VariableHandler(),
        schema=BUILTIN_SCHEMAS[NodeType.VARIABLE.value],
        interpolate=("value",),
        control=True,
    )
