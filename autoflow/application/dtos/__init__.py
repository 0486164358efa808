"""Application DTOs (no dependency on ORM)."""

from autoflow.application.dtos.execution import ExecutionStats, HandlerResult
from autoflow.application.dtos.suggestion import Suggestion, SuggestionContext
from autoflow.application.dtos.trigger_event import TriggerEvent

__all__ = [
    "ExecutionStats",
    "HandlerResult",
    "Suggestion",
    "SuggestionContext",
    "TriggerEvent",
]
