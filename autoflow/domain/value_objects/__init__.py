"""Domain value objects: graph validation errors."""

from autoflow.domain.value_objects.validation import (
    CycleError,
    DanglingEdgeError,
    SchemaError,
    TriggerCountError,
    UnknownNodeTypeError,
    ValidationError,
    WeightError,
)

__all__ = [
    "ValidationError",
    "TriggerCountError",
    "DanglingEdgeError",
    "CycleError",
    "WeightError",
    "SchemaError",
    "UnknownNodeTypeError",
]
