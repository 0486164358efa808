"""Tests for the built-in control node handlers."""

from collections import Counter

import pytest

from autoflow.application.services.builtin_handlers import (
    ABTestHandler,
    ConditionHandler,
    VariableHandler,
    ab_bucket,
    entity_id_for,
    evaluate_clause,
    resolve_path,
    select_path,
)
from autoflow.domain.entities.graph import Node
from autoflow.domain.exceptions import HandlerException
from autoflow.shared.cancellation import CancellationToken

SPLIT = [{"id": "A", "percentage": 50}, {"id": "B", "percentage": 50}]


def test_resolve_path_walks_mappings_and_lists() -> None:
    context = {"lead": {"tags": ["vip", "new"], "source": "facebook"}}
    assert resolve_path(context, "lead.source") == "facebook"
    assert resolve_path(context, "lead.tags.1") == "new"
    assert resolve_path(context, "lead.tags.9") is None
    assert resolve_path(context, "lead.missing", "dflt") == "dflt"


@pytest.mark.parametrize(
    ("operator", "value", "expected"),
    [
        ("equals", "facebook", True),
        ("not_equals", "facebook", False),
        ("contains", "book", True),
        ("starts_with", "face", True),
        ("ends_with", "gram", False),
        ("is_not_empty", None, True),
    ],
)
def test_text_operators(operator: str, value, expected: bool) -> None:
    clause = {"variable": "source", "operator": operator, "value": value}
    assert evaluate_clause({"source": "facebook"}, clause) is expected


def test_numeric_comparison_coerces_strings() -> None:
    assert evaluate_clause({"score": "80"}, {"variable": "score", "operator": ">", "value": 50})
    assert not evaluate_clause({"score": "abc"}, {"variable": "score", "operator": ">", "value": 50})
    assert evaluate_clause({"n": 5}, {"variable": "n", "operator": "equals", "value": "5.0"})


def test_missing_variable_is_empty() -> None:
    assert evaluate_clause({}, {"variable": "x", "operator": "is_empty"})


async def test_condition_all_and_any() -> None:
    handler = ConditionHandler()
    data = {
        "conditions": [
            {"variable": "lead.score", "operator": "greater_than", "value": 50},
            {"variable": "lead.source", "operator": "equals", "value": "web"},
        ]
    }
    context = {"lead": {"score": 80, "source": "facebook"}}
    token = CancellationToken()

    result = await handler.execute(Node("c", "condition", data), context, token)
    assert result.next_branch == "false"

    result = await handler.execute(Node("c", "condition", {**data, "logic": "ANY"}), context, token)
    assert result.next_branch == "true"


async def test_condition_single_clause_form() -> None:
    node = Node("c", "condition", {"variable": "channel", "operator": "equals", "value": "sms"})
    result = await ConditionHandler().execute(node, {"channel": "sms"}, CancellationToken())
    assert result.next_branch == "true"
    assert result.output_context == {}


def test_ab_bucket_is_deterministic_and_in_range() -> None:
    assert ab_bucket("lead-42", "split") == ab_bucket("lead-42", "split")
    assert all(0 <= ab_bucket(f"lead-{i}", "split") < 100 for i in range(200))


def test_ab_bucket_depends_on_node() -> None:
    differs = [ab_bucket(f"lead-{i}", "split-1") != ab_bucket(f"lead-{i}", "split-2") for i in range(50)]
    assert any(differs)


def test_select_path_walks_cumulative_percentages() -> None:
    paths = [{"id": "A", "percentage": 20}, {"id": "B", "percentage": 30}, {"id": "C", "percentage": 50}]
    assert select_path(paths, 0) == "A"
    assert select_path(paths, 19) == "A"
    assert select_path(paths, 20) == "B"
    assert select_path(paths, 49) == "B"
    assert select_path(paths, 50) == "C"
    assert select_path(paths, 99) == "C"


async def test_ab_test_same_entity_same_path() -> None:
    handler = ABTestHandler()
    node = Node("split", "ab_test", {"paths": SPLIT})
    context = {"_entity_id": "lead-7"}
    first = await handler.execute(node, context, CancellationToken())
    for _ in range(20):
        again = await handler.execute(node, dict(context), CancellationToken())
        assert again.next_branch == first.next_branch


async def test_ab_test_split_is_roughly_even() -> None:
    handler = ABTestHandler()
    node = Node("split", "ab_test", {"paths": SPLIT})
    counts = Counter()
    for i in range(1000):
        result = await handler.execute(node, {"_entity_id": f"lead-{i}"}, CancellationToken())
        counts[result.next_branch] += 1
    assert set(counts) == {"A", "B"}
    assert 400 < counts["A"] < 600


def test_entity_id_fallbacks() -> None:
    assert entity_id_for({"_entity_id": "e1", "lead": {"id": "l1"}}) == "e1"
    assert entity_id_for({"lead": {"id": "l1"}}) == "l1"
    assert entity_id_for({"contact": {"id": "c1"}}) == "c1"
    assert entity_id_for({"_execution_id": "x1"}) == "x1"


async def _run_variable(context: dict, **data) -> dict:
    result = await VariableHandler().execute(Node("v", "variable", data), context, CancellationToken())
    return result.output_context


async def test_set_then_add() -> None:
    context: dict = {}
    context.update(await _run_variable(context, variable="x", operation="set", value=5))
    context.update(await _run_variable(context, variable="x", operation="add", value=3))
    assert context["x"] == 8
    assert isinstance(context["x"], int)


async def test_arithmetic_operations() -> None:
    assert await _run_variable({"x": 10}, variable="x", operation="subtract", value=4) == {"x": 6}
    assert await _run_variable({"x": 10}, variable="x", operation="multiply", value=2.5) == {"x": 25.0}
    assert await _run_variable({"x": 10}, variable="x", operation="divide", value=4) == {"x": 2.5}
    assert await _run_variable({"x": 10}, variable="x", operation="divide", value=5) == {"x": 2}
    assert await _run_variable({}, variable="x", operation="add", value=2) == {"x": 2}


async def test_append_to_list_and_string() -> None:
    assert await _run_variable({}, variable="tags", operation="append", value="vip") == {"tags": ["vip"]}
    assert await _run_variable({"tags": ["a"]}, variable="tags", operation="append", value="b") == {
        "tags": ["a", "b"]
    }
    assert await _run_variable({"s": "ab"}, variable="s", operation="append", value="c") == {"s": "abc"}


async def test_divide_by_zero_fails() -> None:
    with pytest.raises(HandlerException, match="division by zero"):
        await _run_variable({"x": 1}, variable="x", operation="divide", value=0)


async def test_non_numeric_operand_fails() -> None:
    with pytest.raises(HandlerException, match="not a number"):
        await _run_variable({"x": "abc"}, variable="x", operation="add", value=1)
