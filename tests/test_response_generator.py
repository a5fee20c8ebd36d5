"""Tests for situation classification and response prompts."""

import pytest
from conftest import FakeModelClient

from joi.agent.response_generator import (
    ResponseGenerator,
    Situation,
    classify,
)
from joi.core.schema import (
    AgentAction,
    AgentContext,
    IntentAnalysis,
    StepOutcome,
    ToolResult,
)

CREATE_TICKET_INTENT = IntentAnalysis.model_validate(
    {
        "intent": "ADMIN_ACTION",
        "parameters": {
            "action": {
                "type": "create",
                "resource": "ticket",
                "missingFields": ["title", "description", "customerId", "title"],
                "clarificationQuestion": "What should the ticket say?",
            }
        },
    }
)
SEARCH_INTENT = IntentAnalysis(intent="SEARCH")
UPDATE_INTENT = IntentAnalysis.model_validate(
    {"intent": "ADMIN_ACTION", "parameters": {"action": {"type": "update", "resource": "ticket"}}}
)


def outcome(tool: str, result: ToolResult) -> StepOutcome:
    return StepOutcome(step=AgentAction(tool=tool), result=result)


NOT_FOUND = outcome("findUsers", ToolResult.fail("No user found with email: x@y.z", "not_found"))
DENIED = outcome(
    "updateOrganization",
    ToolResult.fail("You don't have permission to update the organization. This requires the admin role.", "permission"),
)
UNRESOLVED = outcome("createTicket", ToolResult.fail("Step 0 failed, so its result can't be used.", "unresolved_reference"))
MISSING = outcome("createTicket", ToolResult.fail("Missing required fields: title.", "validation"))
MISSING_REPORTED = outcome(
    "createTicket",
    ToolResult.fail(
        "Missing required fields: description, customerId.", "validation", ["description", "customerId"]
    ),
)
BAD_VALUE = outcome("searchTickets", ToolResult.fail("Invalid priority level 'meh'.", "validation"))
OK = outcome("updateTicket", ToolResult.ok({"id": "ticket-1", "status": "closed"}))


@pytest.mark.parametrize(
    "intent, results, expected",
    [
        (CREATE_TICKET_INTENT, [], Situation.MISSING_FIELDS),
        (CREATE_TICKET_INTENT, [DENIED], Situation.MISSING_FIELDS),
        (SEARCH_INTENT, [NOT_FOUND, DENIED], Situation.PERMISSION_DENIED),
        (SEARCH_INTENT, [NOT_FOUND, UNRESOLVED], Situation.LOOKUP_REQUIRED),
        (SEARCH_INTENT, [NOT_FOUND, MISSING], Situation.MISSING_FIELDS),
        (SEARCH_INTENT, [MISSING_REPORTED], Situation.MISSING_FIELDS),
        (SEARCH_INTENT, [NOT_FOUND], Situation.NOT_FOUND),
        (SEARCH_INTENT, [BAD_VALUE], Situation.TOOL_ERROR),
        (UPDATE_INTENT, [OK], Situation.COMPLETED),
        (SEARCH_INTENT, [OK], Situation.ANSWER),
        (None, [], Situation.ANSWER),
    ],
)
def test_classify(intent, results, expected) -> None:
    assert classify(intent, results) == expected


def test_missing_fields_are_numbered_once_each() -> None:
    prompt = ResponseGenerator(FakeModelClient()).build_prompt("Create a ticket", [], CREATE_TICKET_INTENT, [])

    assert "Situation: MISSING_FIELDS" in prompt
    assert "1. A title for the ticket" in prompt
    assert "2. A description of the issue or request" in prompt
    assert "3. The customer the ticket is for (their customer ID or email address)" in prompt
    assert "4." not in prompt
    assert prompt.count("A title for the ticket") == 1
    assert "Priority level (optional: low, medium, high, urgent)" in prompt
    assert "Who the ticket should be assigned to (optional)" in prompt


def test_fields_reported_by_a_failed_tool_are_listed() -> None:
    intent = IntentAnalysis(intent="ADMIN_ACTION")
    prompt = ResponseGenerator(FakeModelClient()).build_prompt("Open a ticket", [], intent, [MISSING_REPORTED])

    assert "Situation: MISSING_FIELDS" in prompt
    assert "Missing information:" in prompt
    assert "1. A description of the issue or request" in prompt
    assert "2. The customer the ticket is for (their customer ID or email address)" in prompt
    assert "3." not in prompt
    assert "Priority level (optional: low, medium, high, urgent)" in prompt
    assert '"missingFields"' in prompt


def test_fields_from_intent_and_results_are_listed_once() -> None:
    prompt = ResponseGenerator(FakeModelClient()).build_prompt(
        "Create a ticket", [], CREATE_TICKET_INTENT, [MISSING_REPORTED]
    )

    assert "1. A title for the ticket" in prompt
    assert "3. The customer the ticket is for (their customer ID or email address)" in prompt
    assert "4." not in prompt
    assert prompt.count("A description of the issue or request") == 1


def test_permission_prompt_carries_error_text() -> None:
    prompt = ResponseGenerator(FakeModelClient()).build_prompt("Rename us", [], UPDATE_INTENT, [DENIED])

    assert "Situation: PERMISSION_DENIED" in prompt
    assert "This requires the admin role." in prompt
    assert '"errorKind": "permission"' in prompt
    assert "Missing information:" not in prompt


def test_prompt_carries_identity_and_context() -> None:
    context = AgentContext(system_info={"name": "Joi", "capabilities": ["Search tickets"]})
    prompt = ResponseGenerator(FakeModelClient()).build_prompt("Who are you?", [], IntentAnalysis(intent="SYSTEM"), [], context)

    assert prompt.startswith("You are Joi, AI Support Assistant.")
    assert '"systemInfo"' in prompt
    assert "Search tickets" in prompt


async def test_generate_returns_stripped_reply(config) -> None:
    client = FakeModelClient("\n  I'll help you with that.  \n")
    reply = await ResponseGenerator(client, config).generate("Create a ticket", [], CREATE_TICKET_INTENT, [])

    assert reply == "I'll help you with that."
    assert client.calls == 1
