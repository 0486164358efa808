"""JSON schemas for the data payload of built-in node types.

Validated with jsonschema by the GraphValidator. Delegated kinds (action,
billing, notification, tag, ai_agent) get a permissive object schema
unless the registering collaborator supplies its own.
"""

from typing import Any

from autoflow.domain.enums import NodeType

CONDITION_OPERATORS = (
    "equals",
    "==",
    "not_equals",
    "!=",
    "greater_than",
    ">",
    "less_than",
    "<",
    "greater_equal",
    ">=",
    "less_equal",
    "<=",
    "contains",
    "starts_with",
    "ends_with",
    "is_empty",
    "is_not_empty",
)

VARIABLE_OPERATIONS = ("set", "add", "subtract", "multiply", "divide", "append")

_SCALAR = {"type": ["string", "number", "boolean", "null"]}

_CONDITION_CLAUSE = {
    "type": "object",
    "properties": {
        "variable": {"type": "string", "minLength": 1},
        "operator": {"enum": list(CONDITION_OPERATORS)},
        "value": _SCALAR,
    },
    "required": ["variable", "operator"],
}

TRIGGER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "label": {"type": "string"},
        "trigger_type": {"type": "string", "minLength": 1},
        "channel": {"type": "string"},
        "keyword": {"type": "string"},
        "match_type": {"enum": ["exact", "contains"]},
        "filters": {"type": "object", "additionalProperties": _SCALAR},
    },
    "required": ["trigger_type"],
}

CONDITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "label": {"type": "string"},
        "logic": {"enum": ["ALL", "ANY"]},
        "conditions": {"type": "array", "items": _CONDITION_CLAUSE, "minItems": 1},
        "variable": {"type": "string", "minLength": 1},
        "operator": {"enum": list(CONDITION_OPERATORS)},
        "value": _SCALAR,
    },
    "anyOf": [
        {"required": ["conditions"]},
        {"required": ["variable", "operator"]},
    ],
}

AB_TEST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "label": {"type": "string"},
        "paths": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "label": {"type": "string"},
                    "percentage": {"type": "number", "minimum": 0, "maximum": 100},
                },
                "required": ["id", "percentage"],
            },
        },
    },
    "required": ["paths"],
}

VARIABLE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "label": {"type": "string"},
        "variable": {"type": "string", "minLength": 1},
        "operation": {"enum": list(VARIABLE_OPERATIONS)},
        "value": {},
    },
    "required": ["variable", "operation"],
}

DELEGATED_SCHEMA: dict[str, Any] = {"type": "object"}

BUILTIN_SCHEMAS: dict[str, dict[str, Any]] = {
    NodeType.TRIGGER.value: TRIGGER_SCHEMA,
    NodeType.CONDITION.value: CONDITION_SCHEMA,
    NodeType.AB_TEST.value: AB_TEST_SCHEMA,
    NodeType.VARIABLE.value: VARIABLE_SCHEMA,
}
