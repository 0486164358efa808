"""DTO for events emitted into the engine by collaborating modules."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TriggerEvent:
    """A domain event that may start workflow executions.

    type is the event name (e.g. 'lead_created', 'new_message'); payload is
    seeded into the execution context. entity_id identifies the subject
    (lead, contact, conversation) and drives ab_test bucketing.
    """

    type: str
    organization_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    entity_id: str | None = None
