"""Tests for LLM output cleanup and strict decoding."""

import pytest

from joi.core.errors import (
    IntentParseError,
    PlanParseError,
)
from joi.core.json_output import (
    clean_llm_output,
    decode_model_output,
)
from joi.core.schema import (
    IntentAnalysis,
    ToolPlan,
)


def test_strips_code_fences() -> None:
    assert clean_llm_output('```json\n{"intent": "SEARCH"}\n```') == '{"intent": "SEARCH"}'


def test_extracts_object_from_surrounding_prose() -> None:
    content = 'Sure! Here is the analysis:\n{"intent": "SYSTEM", "explanation": "asks about {me}"}\nHope it helps.'

    assert clean_llm_output(content) == '{"intent": "SYSTEM", "explanation": "asks about {me}"}'


def test_extracts_array_with_nested_objects() -> None:
    content = 'Plan: [{"tool": "findUsers", "input": {"email": "a@b.c"}}] done'

    assert clean_llm_output(content) == '[{"tool": "findUsers", "input": {"email": "a@b.c"}}]'


def test_text_without_json_is_returned_trimmed() -> None:
    assert clean_llm_output("  I am not JSON  ") == "I am not JSON"


def test_decode_raises_requested_error_without_raw_output() -> None:
    with pytest.raises(IntentParseError) as excinfo:
        decode_model_output("secret raw text {not json", IntentAnalysis, IntentParseError)

    assert "secret raw text" not in str(excinfo.value)


def test_decode_rejects_schema_violations() -> None:
    with pytest.raises(IntentParseError):
        decode_model_output('{"intent": "DANCE"}', IntentAnalysis, IntentParseError)


def test_decode_rejects_empty_output() -> None:
    with pytest.raises(PlanParseError):
        decode_model_output("   ", ToolPlan, PlanParseError)


def test_decode_accepts_fenced_bare_array_plan() -> None:
    plan = decode_model_output('```\n[{"tool": "getSystemInfo", "input": {}}]\n```', ToolPlan, PlanParseError)

    assert [step.tool for step in plan.steps] == ["getSystemInfo"]
