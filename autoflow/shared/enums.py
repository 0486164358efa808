"""Shared enumerations for the automation engine.

Cross-cutting enums used by application and infrastructure (execution
lifecycle, step outcome). Domain-specific enums (roles, node kinds) live
in autoflow.domain.enums.
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class ExecutionStatus(_ValuesMixin, str, Enum):
    """Execution instance lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further transition is allowed from this status."""
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)


class StepStatus(_ValuesMixin, str, Enum):
    """Outcome of a single node visit recorded in the execution log."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
