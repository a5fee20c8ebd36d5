"""Tests for findUsers and getCurrentUserContext."""

from conftest import (
    ACME_ID,
    ADMIN_ID,
    AGENT_ID,
    BOB_ID,
)

from joi.core.schema import AgentAction
from joi.services.identity import AnonymousIdentityProvider


async def test_find_user_by_email_is_case_insensitive(run_tool) -> None:
    result = await run_tool(AGENT_ID, "findUsers", email="BOB@Example.COM")

    assert result.success
    assert [u["id"] for u in result.data] == [BOB_ID]
    assert result.data[0]["name"] == "Bob Builder"


async def test_find_user_email_must_match_exactly(run_tool) -> None:
    result = await run_tool(AGENT_ID, "findUsers", email="bob@example")

    assert not result.success
    assert result.error_kind == "not_found"


async def test_find_user_by_name_substring(run_tool) -> None:
    result = await run_tool(ADMIN_ID, "findUsers", name="BUILD")

    assert [u["id"] for u in result.data] == [BOB_ID]


async def test_find_users_by_role(run_tool) -> None:
    result = await run_tool(AGENT_ID, "findUsers", role="customer")

    # Dave is a customer of another organization
    assert sorted(u["email"] for u in result.data) == ["bob@example.com", "carol@example.com"]


async def test_no_criteria_and_no_results_are_different_errors(run_tool) -> None:
    """An empty search is a validation error; a search with no hits is not_found."""
    empty = await run_tool(AGENT_ID, "findUsers")
    missing = await run_tool(AGENT_ID, "findUsers", email="nobody@example.com")

    assert empty.error_kind == "validation"
    assert missing.error_kind == "not_found"
    assert missing.error == "No user found with email: nobody@example.com"


async def test_find_users_rejects_unknown_role(run_tool) -> None:
    result = await run_tool(AGENT_ID, "findUsers", role="wizard")

    assert result.error_kind == "validation"
    assert "admin, agent, customer" in result.error


async def test_customers_cannot_look_up_users(run_tool) -> None:
    result = await run_tool(BOB_ID, "findUsers", email="carol@example.com")

    assert not result.success
    assert result.error_kind == "permission"
    assert "admin or agent" in result.error


async def test_current_user_context(run_tool) -> None:
    result = await run_tool(BOB_ID, "getCurrentUserContext")

    assert result.success
    assert result.data["id"] == BOB_ID
    assert result.data["role"] == "customer"
    assert result.data["organization"]["id"] == ACME_ID
    assert result.data["organization"]["name"] == "Acme"
    assert [m["organizationId"] for m in result.data["organizationMembers"]] == [ACME_ID]


async def test_current_user_context_requires_identity(executor) -> None:
    result = await executor.execute(AgentAction(tool="getCurrentUserContext"), AnonymousIdentityProvider())

    assert not result.success
    assert result.error_kind == "permission"
