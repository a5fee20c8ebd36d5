"""Tests for the tool planner."""

import json

import pytest
from conftest import (
    FakeModelClient,
    plan_json,
)

from joi.agent.tool_planner import ToolPlanner
from joi.core.errors import PlanParseError
from joi.core.schema import IntentAnalysis
from joi.tools import ToolName

SEARCH_INTENT = IntentAnalysis(intent="SEARCH", explanation="ticket search")


async def test_bare_array_and_wrapped_steps_both_decode(registry, config) -> None:
    steps = [{"tool": "searchTickets", "input": {"priority": "high"}, "reasoning": "filter"}]

    bare = await ToolPlanner(FakeModelClient(plan_json(steps)), registry, config).plan("q", [], SEARCH_INTENT)
    wrapped = await ToolPlanner(FakeModelClient(json.dumps({"steps": steps})), registry, config).plan(
        "q", [], SEARCH_INTENT
    )

    assert bare == wrapped
    assert bare[0].tool == "searchTickets"
    assert bare[0].input == {"priority": "high"}


async def test_empty_plan_is_valid(registry, config) -> None:
    plan = await ToolPlanner(FakeModelClient("[]"), registry, config).plan("q", [], SEARCH_INTENT)

    assert plan == []


async def test_catalogue_lists_every_tool_but_not_injected_keys(registry, config) -> None:
    client = FakeModelClient("[]")
    await ToolPlanner(client, registry, config).plan("q", [], SEARCH_INTENT)
    prompt = client.prompts[0]

    for name in ToolName:
        assert f"- {name.value}(" in prompt
    assert "callerRole:" not in prompt
    assert "ticketId: str" in prompt
    assert '"intent":"SEARCH"' in prompt.replace(" ", "")


async def test_garbage_is_a_parse_error(registry, config) -> None:
    with pytest.raises(PlanParseError):
        await ToolPlanner(FakeModelClient("Step 1: search tickets"), registry, config).plan("q", [], SEARCH_INTENT)


async def test_step_without_tool_name_is_a_parse_error(registry, config) -> None:
    with pytest.raises(PlanParseError):
        await ToolPlanner(FakeModelClient('[{"tool": "", "input": {}}]'), registry, config).plan(
            "q", [], SEARCH_INTENT
        )
