"""Advisory next-node suggestions for the workflow editor.

Suggestions are never applied automatically; the editor shows them and the
user decides. The rule table is the fallback for every remote provider.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from autoflow.application.dtos.suggestion import Suggestion, SuggestionContext
from autoflow.application.interfaces.services import ISuggestionProvider
from autoflow.domain.enums import NodeType

_VARIABLE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def _strings_in(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _strings_in(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _strings_in(item)


def extract_variables(nodes: Iterable[Mapping[str, Any]]) -> list[str]:
    """Return `{{path}}` references used in node data, first-seen order."""
    found: dict[str, None] = {}
    for node in nodes:
        for text in _strings_in(node.get("data") or {}):
            for match in _VARIABLE_PATTERN.finditer(text):
                found.setdefault(match.group(1), None)
    return list(found)


def build_suggestion_context(
    nodes: list[dict[str, Any]], edges: list[dict[str, Any]]
) -> SuggestionContext:
    """Context for the editor's current graph; the last declared node is the one being extended."""
    return SuggestionContext(
        nodes=nodes,
        edges=edges,
        last_node=nodes[-1] if nodes else None,
        variables=extract_variables(nodes),
    )


def _s(node_type: str, confidence: float, reasoning: str, **config: Any) -> Suggestion:
    return Suggestion(
        node_type=node_type, confidence=confidence, reasoning=reasoning, suggested_config=config
    )


_T = NodeType

_RULES: dict[str, list[Suggestion]] = {
    _T.TRIGGER.value: [
        _s(_T.ACTION.value, 0.85, "Create a new lead in the CRM", action_type="create_lead"),
        _s(_T.ACTION.value, 0.8, "Fetch data from an external API", action_type="http_request", method="GET"),
        _s(_T.CONDITION.value, 0.7, "Validate the incoming data before continuing"),
    ],
    _T.ACTION.value: [
        _s(
            _T.NOTIFICATION.value,
            0.9,
            "Send a welcome email to the new lead",
            channel="email",
            to="{{lead.email}}",
            subject="Welcome",
        ),
        _s(_T.NOTIFICATION.value, 0.8, "Send a confirmation SMS", channel="sms", to="{{lead.phone}}"),
        _s(_T.CONDITION.value, 0.75, "Check whether the action succeeded"),
    ],
    _T.NOTIFICATION.value: [
        _s(_T.CONDITION.value, 0.8, "Check whether the message was delivered"),
        _s(_T.TAG.value, 0.75, "Update the lead's status after contacting them"),
        _s(_T.ACTION.value, 0.7, "Record the interaction in an external system", action_type="http_request"),
    ],
    _T.CONDITION.value: [
        _s(_T.ACTION.value, 0.8, "Act on the branch that matched"),
        _s(_T.NOTIFICATION.value, 0.75, "Notify the team about the result"),
        _s(_T.VARIABLE.value, 0.6, "Record the outcome in a variable"),
    ],
}

_DEFAULT_RULES = [
    _s(_T.NOTIFICATION.value, 0.7, "Send an email notification", channel="email"),
    _s(_T.ACTION.value, 0.7, "Update data in the CRM", action_type="update_lead"),
    _s(_T.ACTION.value, 0.6, "Integrate with an external service", action_type="http_request"),
]

_START_RULES = [
    _s(_T.TRIGGER.value, 1.0, "Start the workflow with a trigger that decides when it runs"),
]


def rank(suggestions: Iterable[Suggestion]) -> list[Suggestion]:
    """Highest confidence first; ties keep provider order."""
    return sorted(suggestions, key=lambda s: s.confidence, reverse=True)


class RuleBasedSuggestionProvider:
    """Static table keyed by the type of the last node."""

    async def get_suggestions(self, context: SuggestionContext) -> list[Suggestion]:
        if not context.nodes:
            return list(_START_RULES)
        last_type = (context.last_node or {}).get("type")
        return rank(_RULES.get(str(last_type), _DEFAULT_RULES))


class SuggestionService:
    """Entry point for the editor: builds the context and ranks provider output."""

    def __init__(self, provider: ISuggestionProvider) -> None:
        self.provider = provider

    async def suggest_next_nodes(
        self, nodes: list[dict[str, Any]], edges: list[dict[str, Any]]
    ) -> list[Suggestion]:
        context = build_suggestion_context(nodes, edges)
        return rank(await self.provider.get_suggestions(context))
