"""Node data interpolation: `{{path}}` placeholders rendered against the execution context (Jinja)."""

from __future__ import annotations

import re
from typing import Any

from jinja2 import ChainableUndefined, Template, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from autoflow.application.services.builtin_handlers import resolve_path
from autoflow.domain.exceptions import HandlerException

# A value that is exactly one placeholder keeps the context value's type.
_SINGLE_PLACEHOLDER = re.compile(r"^\{\{\s*([A-Za-z_][\w]*(?:\.[\w]+)*)\s*\}\}$")


class WorkflowTemplateRenderer:
    """Renders string fields of node data immediately before a handler call.

    Node data is tenant-authored, so templates run in Jinja's sandbox.
    Missing variables render as the empty string, including attributes of
    a missing parent (`{{ lead.name }}` with no `lead`).
    """

    def __init__(self) -> None:
        self._env = SandboxedEnvironment(autoescape=False, undefined=ChainableUndefined)
        self._compiled: dict[str, Template] = {}

    def render_string(self, source: str, context: dict[str, Any]) -> Any:
        """Render one string. Returns the raw context value for a lone placeholder."""
        if "{{" not in source and "{%" not in source:
            return source
        single = _SINGLE_PLACEHOLDER.match(source)
        if single:
            return resolve_path(context, single.group(1), "")
        template = self._compiled.get(source)
        try:
            if template is None:
                template = self._env.from_string(source)
                self._compiled[source] = template
            return template.render(**context)
        except TemplateError as e:
            raise HandlerException(f"Cannot render template {source!r}: {e}") from e

    def render_data(self, data: Any, context: dict[str, Any]) -> Any:
        """Render every string inside data (dicts and lists are walked recursively)."""
        if isinstance(data, str):
            return self.render_string(data, context)
        if isinstance(data, dict):
            return {key: self.render_data(value, context) for key, value in data.items()}
        if isinstance(data, list):
            return [self.render_data(item, context) for item in data]
        return data
