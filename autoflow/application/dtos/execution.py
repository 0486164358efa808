"""DTOs for node execution results and execution statistics."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class HandlerResult:
    """What a handler returns for one node.

    output_context is merged into the running context. next_branch selects
    the outgoing edge with that branch label; None follows unlabelled edges.
    """

    output_context: dict[str, Any] = field(default_factory=dict)
    next_branch: str | None = None


@dataclass(frozen=True)
class ExecutionStats:
    """Aggregate over a set of execution instances."""

    total: int
    completed: int
    failed: int
    cancelled: int
    running: int
    pending: int
    avg_duration_ms: float | None

    @property
    def success_rate(self) -> float:
        """Completed share of finished runs, 0.0 when none finished."""
        finished = self.completed + self.failed + self.cancelled
        if finished == 0:
            return 0.0
        return self.completed / finished
