"""Tests for the intent analyzer."""

import json

import pytest
from conftest import (
    FakeModelClient,
    intent_json,
)

from joi.agent.intent_analyzer import IntentAnalyzer
from joi.core.errors import (
    IntentParseError,
    ModelCallError,
    ModelTimeoutError,
)
from joi.core.schema import (
    ConversationMessage,
    Intent,
)
from joi.config import Settings


async def test_decodes_fenced_reply_and_normalizes_intent(config) -> None:
    client = FakeModelClient("```json\n" + intent_json("search", filters={"priority": "high"}) + "\n```")
    analysis = await IntentAnalyzer(client, config).analyze("Show high priority tickets")

    assert analysis.intent == Intent.SEARCH
    assert analysis.parameters.filters.priority == "high"
    assert not analysis.needs_clarification


async def test_prompt_carries_numbered_history(config) -> None:
    client = FakeModelClient(intent_json("GREETING"))
    history = [
        ConversationMessage(role="user", content="hello"),
        ConversationMessage(role="assistant", content="Hi, I'm Joi"),
    ]
    await IntentAnalyzer(client, config).analyze("thanks", history)

    assert "[1] user: hello" in client.prompts[0]
    assert "[2] assistant: Hi, I'm Joi" in client.prompts[0]
    assert "Current Query: thanks" in client.prompts[0]


async def test_missing_fields_force_clarification(config) -> None:
    reply = intent_json(
        "ADMIN_ACTION",
        action={
            "type": "create",
            "resource": "ticket",
            "missingFields": ["title"],
            "needsClarification": False,
            "clarificationQuestion": "What should the title be?",
        },
    )
    analysis = await IntentAnalyzer(FakeModelClient(reply), config).analyze("Create a ticket")

    assert analysis.parameters.action.needs_clarification is True
    assert analysis.parameters.action.missing_fields == ["title"]


async def test_clarification_without_question_is_a_parse_error(config) -> None:
    reply = intent_json("DETAILS", messageContext={"type": "unclear", "needsClarification": True})

    with pytest.raises(IntentParseError):
        await IntentAnalyzer(FakeModelClient(reply), config).analyze("Summarize the conversation")


async def test_non_json_reply_is_a_parse_error(config) -> None:
    with pytest.raises(IntentParseError):
        await IntentAnalyzer(FakeModelClient("I think this is a search."), config).analyze("tickets?")


async def test_unknown_intent_is_a_parse_error(config) -> None:
    reply = json.dumps({"intent": "CHITCHAT", "parameters": {}})

    with pytest.raises(IntentParseError):
        await IntentAnalyzer(FakeModelClient(reply), config).analyze("yo")


async def test_model_failure_and_timeout(config) -> None:
    with pytest.raises(ModelCallError):
        await IntentAnalyzer(FakeModelClient(RuntimeError("503")), config).analyze("hi")

    slow = FakeModelClient(intent_json("GREETING"), delay=1.0)
    with pytest.raises(ModelTimeoutError):
        await IntentAnalyzer(slow, Settings(LLM_TIMEOUT_SECONDS=0.05)).analyze("hi")
