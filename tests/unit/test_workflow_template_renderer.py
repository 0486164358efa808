"""Tests for node data interpolation."""

import pytest

from autoflow.domain.exceptions import HandlerException
from autoflow.infrastructure.services.workflow_template_renderer import WorkflowTemplateRenderer

CONTEXT = {"lead": {"name": "Ada", "score": 80, "tags": ["vip"]}, "count": 3}


def test_plain_strings_untouched() -> None:
    assert WorkflowTemplateRenderer().render_string("hello", CONTEXT) == "hello"


def test_lone_placeholder_keeps_type() -> None:
    renderer = WorkflowTemplateRenderer()
    assert renderer.render_string("{{lead.score}}", CONTEXT) == 80
    assert renderer.render_string("{{ lead.tags }}", CONTEXT) == ["vip"]
    assert renderer.render_string("{{missing.path}}", CONTEXT) == ""


def test_mixed_template_renders_text() -> None:
    renderer = WorkflowTemplateRenderer()
    assert renderer.render_string("Hi {{lead.name}}, score {{lead.score}}", CONTEXT) == "Hi Ada, score 80"
    assert renderer.render_string("Hi {{nobody}}!", CONTEXT) == "Hi !"


def test_missing_parent_renders_empty_in_mixed_template() -> None:
    renderer = WorkflowTemplateRenderer()
    assert renderer.render_string("Hi {{ lead.name }}!", {}) == "Hi !"
    assert renderer.render_string("{{ lead.owner.email }} / {{ count }}", CONTEXT) == " / 3"
    # Same result as a lone placeholder for the same path.
    assert renderer.render_string("{{ lead.name }}", {}) == ""


def test_render_data_walks_nested_structures() -> None:
    data = {"to": "{{lead.name}}", "meta": {"n": "{{count}}", "list": ["{{lead.name}}", 1]}, "flag": True}
    rendered = WorkflowTemplateRenderer().render_data(data, CONTEXT)
    assert rendered == {"to": "Ada", "meta": {"n": 3, "list": ["Ada", 1]}, "flag": True}


def test_sandbox_hides_private_attributes() -> None:
    assert WorkflowTemplateRenderer().render_string("{{ lead.__class__ }}!", CONTEXT) == "!"


def test_syntax_error_becomes_handler_exception() -> None:
    with pytest.raises(HandlerException, match="Cannot render template"):
        WorkflowTemplateRenderer().render_string("{{ lead.name ", CONTEXT)
