"""Execution domain entities: running instances and their step log."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from autoflow.domain.exceptions import InvalidStateTransitionException
from autoflow.shared.enums import ExecutionStatus, StepStatus
from autoflow.shared.utils.datetime import utc_now

_ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset(
        {ExecutionStatus.RUNNING, ExecutionStatus.CANCELLED}
    ),
    ExecutionStatus.RUNNING: frozenset(
        {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
    ),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.CANCELLED: frozenset(),
}


@dataclass
class ExecutionInstance:
    """One run of a workflow version against one trigger event.

    Bound to the version it was created with; later saves or publishes do
    not affect a running instance.
    """

    id: str
    organization_id: str
    workflow_id: str
    version_id: str
    event_type: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    context: dict[str, Any] = field(default_factory=dict)
    entity_id: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def can_transition_to(self, target: ExecutionStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: ExecutionStatus, error_message: str | None = None) -> None:
        """Move along the state machine, stamping start/end times.

        Raises:
            InvalidStateTransitionException: If target is not reachable from the current status.
        """
        if not self.can_transition_to(target):
            raise InvalidStateTransitionException(
                self.id, self.status.value, target.value
            )
        now = utc_now()
        if target == ExecutionStatus.RUNNING:
            self.started_at = now
        if target.is_terminal:
            self.completed_at = now
        if error_message is not None:
            self.error_message = error_message
        self.status = target

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_ms(self) -> int | None:
        """Wall time between start and completion, if both are known."""
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


@dataclass(frozen=True)
class ExecutionLogEntry:
    """One node visit within an execution instance. Append-only."""

    instance_id: str
    sequence: int
    node_id: str
    node_type: str
    status: StepStatus
    input_snapshot: dict[str, Any]
    output_snapshot: dict[str, Any]
    started_at: datetime
    completed_at: datetime
    branch: str | None = None
    error: str | None = None
    attempt: int = 1
    id: str | None = None
