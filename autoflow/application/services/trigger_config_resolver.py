"""Trigger configuration: derived from the trigger node, matched against events.

Framework-free and pure; the dispatcher calls matches() for every candidate
workflow. Channel and filter checks fail closed: an event that does not
carry what the trigger asks for never starts the workflow.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from autoflow.application.dtos.trigger_event import TriggerEvent
from autoflow.application.services.builtin_handlers import evaluate_clause, resolve_path
from autoflow.domain.entities.graph import Node
from autoflow.domain.entities.workflow import WorkflowEntity
from autoflow.domain.enums import NodeType
from autoflow.domain.exceptions import ValidationException
from autoflow.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

_CONFIG_KEYS = ("channel", "keyword", "match_type", "filters")
_MESSAGE_PATHS = ("message.content", "message", "content", "text")
_CHANNEL_PATHS = ("channel", "conversation.channel")
_ABSENT = object()


def resolve_trigger_config(nodes: Iterable[Node]) -> tuple[str, dict[str, Any]]:
    """Return (trigger_type, trigger_config) from the graph's trigger node.

    Raises:
        ValidationException: If there is no trigger node or it has no trigger_type.
    """
    trigger = next((n for n in nodes if n.type == NodeType.TRIGGER.value), None)
    if trigger is None:
        raise ValidationException("Workflow has no trigger node", field="nodes")
    trigger_type = trigger.data.get("trigger_type")
    if not trigger_type:
        raise ValidationException(
            f"Trigger node {trigger.id} has no trigger_type", field="trigger_type"
        )
    config = {
        key: trigger.data[key]
        for key in _CONFIG_KEYS
        if trigger.data.get(key) not in (None, "", {})
    }
    return str(trigger_type), config


def _first_text(payload: Mapping[str, Any], paths: Iterable[str]) -> str | None:
    for path in paths:
        value = resolve_path(payload, path)
        if isinstance(value, str):
            return value
    return None


class TriggerConfigResolver:
    """Decides whether a workflow's trigger config matches an event."""

    def matches(self, workflow: WorkflowEntity, event: TriggerEvent) -> bool:
        if not workflow.belongs_to_organization(event.organization_id):
            return False
        if not workflow.can_trigger_on(event.type):
            return False
        config = workflow.trigger_config or {}
        return (
            self._channel_matches(config, event)
            and self._keyword_matches(config, event)
            and self._filters_match(workflow, config, event)
        )

    def _channel_matches(self, config: Mapping[str, Any], event: TriggerEvent) -> bool:
        expected = config.get("channel")
        if not expected:
            return True
        actual = _first_text(event.payload, _CHANNEL_PATHS)
        if actual is None:
            return False
        return actual.lower() == str(expected).lower()

    def _keyword_matches(self, config: Mapping[str, Any], event: TriggerEvent) -> bool:
        keyword = config.get("keyword")
        if not keyword:
            return True
        text = _first_text(event.payload, _MESSAGE_PATHS)
        if text is None:
            return False
        keyword_l, text_l = str(keyword).lower().strip(), text.lower().strip()
        if config.get("match_type") == "exact":
            return text_l == keyword_l
        return keyword_l in text_l

    def _filters_match(
        self, workflow: WorkflowEntity, config: Mapping[str, Any], event: TriggerEvent
    ) -> bool:
        filters = config.get("filters") or {}
        for key, expected in filters.items():
            path = key.removeprefix("payload.")
            if resolve_path(event.payload, path, _ABSENT) is _ABSENT:
                logger.warning(
                    "Workflow %s filters on %r, which event %s does not carry; not triggering",
                    workflow.id,
                    key,
                    event.type,
                )
                return False
            clause = {"variable": path, "operator": "equals", "value": expected}
            if not evaluate_clause(event.payload, clause):
                return False
        return True
