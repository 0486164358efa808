"""Next-node suggestions from an OpenAI-compatible chat completions endpoint.

Any transport, HTTP or parse problem falls back to the rule table, so the
editor always gets an answer.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from autoflow.application.dtos.suggestion import Suggestion, SuggestionContext
from autoflow.application.interfaces.services import ISuggestionProvider
from autoflow.application.services.suggestion_service import rank
from autoflow.domain.enums import NodeType
from autoflow.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

MAX_SUGGESTIONS = 3

_SYSTEM_PROMPT = "You are an expert in workflow automation. Always answer with valid JSON."


class SuggestionParseError(ValueError):
    """The model answered with something that is not the expected JSON."""


def build_prompt(context: SuggestionContext) -> str:
    described = "\n".join(
        f"{i}. {node.get('type')} ({(node.get('data') or {}).get('label') or 'unnamed'})"
        for i, node in enumerate(context.nodes, start=1)
    )
    if context.last_node:
        label = (context.last_node.get("data") or {}).get("label") or "unnamed"
        last = f"Last node added: {context.last_node.get('type')} ({label})"
    else:
        last = "Empty workflow"
    variables = (
        f"Variables in context: {', '.join(context.variables)}"
        if context.variables
        else "No variables in context yet"
    )
    return "\n\n".join(
        [
            "You help users build automations for a CRM and marketing platform.",
            f"Current workflow:\n{described or 'Empty (no nodes)'}",
            last,
            variables,
            f"Available node types: {', '.join(NodeType.values())}",
            (
                f"Suggest the {MAX_SUGGESTIONS} most logical next nodes. For each give nodeType, "
                "confidence (0-100), reasoning and an optional suggestedConfig object. "
                'Answer as {"suggestions": [{"nodeType": ..., "confidence": ..., '
                '"reasoning": ..., "suggestedConfig": {...}}]}'
            ),
        ]
    )


def parse_suggestions(content: str) -> list[Suggestion]:
    """Parse the model's JSON answer; confidence arrives as 0-100 and is scaled to 0-1."""
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise SuggestionParseError(f"Model answer is not JSON: {e}") from e
    raw = parsed.get("suggestions") if isinstance(parsed, dict) else None
    if not isinstance(raw, list):
        raise SuggestionParseError("Model answer has no 'suggestions' list")
    suggestions: list[Suggestion] = []
    for item in raw[:MAX_SUGGESTIONS]:
        if not isinstance(item, dict) or not item.get("nodeType"):
            continue
        try:
            confidence = float(item.get("confidence", 0)) / 100
        except (TypeError, ValueError):
            confidence = 0.0
        config = item.get("suggestedConfig")
        suggestions.append(
            Suggestion(
                node_type=str(item["nodeType"]),
                confidence=min(max(confidence, 0.0), 1.0),
                reasoning=str(item.get("reasoning", "")),
                suggested_config=config if isinstance(config, dict) else {},
            )
        )
    return suggestions


class LLMSuggestionProvider:
    """Calls the configured model; returns the fallback provider's answer on any error."""

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str | None,
        model: str,
        fallback: ISuggestionProvider,
        timeout_seconds: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.fallback = fallback
        self.timeout_seconds = timeout_seconds
        self._shared_http = http_client

    @asynccontextmanager
    async def _http_cm(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield shared HTTP client or a short-lived one."""
        if self._shared_http is not None:
            yield self._shared_http
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            yield client

    async def get_suggestions(self, context: SuggestionContext) -> list[Suggestion]:
        if not self.api_key:
            logger.debug("No suggestion API key configured; using rule-based suggestions")
            return await self.fallback.get_suggestions(context)
        try:
            content = await self._complete(build_prompt(context))
            suggestions = parse_suggestions(content)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Suggestion request failed, using fallback: %s", e)
            return await self.fallback.get_suggestions(context)
        if not suggestions:
            return await self.fallback.get_suggestions(context)
        return rank(suggestions)

    async def _complete(self, prompt: str) -> str:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.7,
            "max_tokens": 800,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with self._http_cm() as client:
            response = await client.post(
                self.api_url, json=body, headers=headers, timeout=self.timeout_seconds
            )
            response.raise_for_status()
            data = response.json()
        return data["choices"][0]["message"]["content"]
