"""Graph validation errors (value objects).

The validator returns a list of these instead of raising, so an editor
can show every problem at once. Each carries a machine-readable code,
the node ids involved, and the offending data field when there is one.
"""

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class ValidationError:
    """One structural or schema problem found in a workflow graph."""

    code: ClassVar[str] = "VALIDATION_ERROR"

    message: str
    node_ids: tuple[str, ...] = ()
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for exception details and API payloads."""
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "node_ids": list(self.node_ids),
        }
        if self.field is not None:
            data["field"] = self.field
        return data


@dataclass(frozen=True)
class TriggerCountError(ValidationError):
    """Graph does not contain exactly one trigger node."""

    code: ClassVar[str] = "TRIGGER_COUNT"


@dataclass(frozen=True)
class DanglingEdgeError(ValidationError):
    """Edge source or target does not reference an existing node."""

    code: ClassVar[str] = "DANGLING_EDGE"


@dataclass(frozen=True)
class CycleError(ValidationError):
    """Graph contains a directed cycle; node_ids lists the nodes on cycles."""

    code: ClassVar[str] = "CYCLE"


@dataclass(frozen=True)
class WeightError(ValidationError):
    """ab_test path weights do not sum to 100, or an edge names an undeclared path."""

    code: ClassVar[str] = "WEIGHT"


@dataclass(frozen=True)
class SchemaError(ValidationError):
    """Node data payload does not match its type's schema."""

    code: ClassVar[str] = "SCHEMA"


@dataclass(frozen=True)
class UnknownNodeTypeError(ValidationError):
    """Node type has no registered handler (a configuration error)."""

    code: ClassVar[str] = "CONFIGURATION_ERROR"
