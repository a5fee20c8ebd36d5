"""Tests for searchTickets, getTicketDetails and createTicket."""

from conftest import (
    ACME_ID,
    ADMIN_ID,
    AGENT_ID,
    BOB_ID,
    CAROL_ID,
    DAVE_ID,
)

from joi.store.base import TicketQuery


# ---------------------------------------------------------------------------
# searchTickets
# ---------------------------------------------------------------------------
async def test_customer_only_sees_own_tickets(run_tool) -> None:
    """Customers should be scoped to their own tickets even if they ask for someone else's."""
    result = await run_tool(BOB_ID, "searchTickets", customerId=CAROL_ID)

    assert result.success
    assert {t["id"] for t in result.data} == {"ticket-1"}


async def test_agent_search_is_scoped_to_organization(run_tool) -> None:
    result = await run_tool(AGENT_ID, "searchTickets")

    assert result.success
    # Newest first; the Globex ticket belongs to another organization
    assert [t["id"] for t in result.data] == ["ticket-2", "ticket-1"]


async def test_search_filters_compose(run_tool) -> None:
    result = await run_tool(AGENT_ID, "searchTickets", priority="HIGH", status="open")
    assert [t["id"] for t in result.data] == ["ticket-1"]

    result = await run_tool(AGENT_ID, "searchTickets", isUnassigned=True)
    assert [t["id"] for t in result.data] == ["ticket-1"]

    result = await run_tool(
        AGENT_ID,
        "searchTickets",
        createdAt={"start": "2024-03-04T00:00:00", "end": "2024-03-31T23:59:59"},
    )
    assert [t["id"] for t in result.data] == ["ticket-2"]


async def test_search_result_includes_people(run_tool) -> None:
    result = await run_tool(AGENT_ID, "searchTickets", assignedTo=AGENT_ID)

    ticket = result.data[0]
    assert ticket["customer"]["email"] == "carol@example.com"
    assert ticket["assignee"]["name"] == "Alice Agent"
    assert "deletedAt" not in ticket


async def test_search_rejects_invalid_priority(run_tool) -> None:
    result = await run_tool(AGENT_ID, "searchTickets", priority="critical")

    assert not result.success
    assert result.error_kind == "validation"
    assert "low, medium, high, urgent" in result.error


# ---------------------------------------------------------------------------
# getTicketDetails
# ---------------------------------------------------------------------------
async def test_ticket_details_include_messages(run_tool) -> None:
    result = await run_tool(AGENT_ID, "getTicketDetails", ticketId="ticket-1")

    assert result.success
    assert result.data["title"] == "Cannot log in"
    assert [m["id"] for m in result.data["messages"]] == ["msg-1"]


async def test_ticket_details_not_found(run_tool) -> None:
    result = await run_tool(AGENT_ID, "getTicketDetails", ticketId="ticket-404")

    assert not result.success
    assert result.error_kind == "not_found"
    assert "ticket-404" not in result.error


async def test_customer_cannot_read_other_customers_ticket(run_tool) -> None:
    result = await run_tool(BOB_ID, "getTicketDetails", ticketId="ticket-2")

    assert not result.success
    assert result.error_kind == "permission"


async def test_agent_cannot_read_another_organizations_ticket(run_tool) -> None:
    result = await run_tool(AGENT_ID, "getTicketDetails", ticketId="ticket-3")

    assert not result.success
    assert result.error_kind == "permission"
    assert "another organization" in result.error
    assert "Globex outage" not in result.error


# ---------------------------------------------------------------------------
# createTicket
# ---------------------------------------------------------------------------
async def test_create_ticket_lists_every_missing_field(run_tool) -> None:
    """All missing required fields should be reported together, not just the first."""
    result = await run_tool(AGENT_ID, "createTicket", title="Printer on fire")

    assert not result.success
    assert result.error_kind == "validation"
    assert result.error.startswith("Missing required fields: description, customerId.")
    assert result.missing_fields == ["description", "customerId"]


async def test_create_ticket_with_nothing_lists_all_three(run_tool) -> None:
    result = await run_tool(AGENT_ID, "createTicket")

    assert result.error.startswith("Missing required fields: title, description, customerId.")


async def test_create_ticket_requires_a_customer(run_tool) -> None:
    """The customer id must resolve to a user whose role is customer."""
    result = await run_tool(
        AGENT_ID, "createTicket", title="Broken", description="It broke", customerId=ADMIN_ID
    )

    assert not result.success
    assert result.error_kind == "validation"
    assert "not a customer" in result.error


async def test_create_ticket_unknown_customer_is_not_found(run_tool) -> None:
    result = await run_tool(
        AGENT_ID, "createTicket", title="Broken", description="It broke", customerId="user-ghost"
    )

    assert not result.success
    assert result.error_kind == "not_found"


async def test_create_ticket_assignee_must_be_agent(run_tool) -> None:
    result = await run_tool(
        AGENT_ID,
        "createTicket",
        title="Broken",
        description="It broke",
        customerId=BOB_ID,
        assigneeId=CAROL_ID,
    )

    assert not result.success
    assert "must be an agent" in result.error


async def test_create_ticket_rejects_invalid_status(run_tool) -> None:
    result = await run_tool(
        AGENT_ID, "createTicket", title="Broken", description="It broke", customerId=BOB_ID, status="done"
    )

    assert not result.success
    assert "open, in_progress, resolved, closed" in result.error


async def test_agent_creates_ticket(run_tool, store) -> None:
    result = await run_tool(
        AGENT_ID,
        "createTicket",
        title="Printer on fire",
        description="Smoke everywhere",
        customerId=BOB_ID,
        priority="urgent",
        assigneeId=AGENT_ID,
    )

    assert result.success
    created = await store.get_ticket(result.data["id"])
    assert created is not None
    assert created.customer_id == BOB_ID
    assert created.created_by == AGENT_ID
    assert created.priority_level.value == "urgent"
    assert created.status.value == "open"
    assert result.data["customer"]["email"] == "bob@example.com"

    bobs = await store.query_tickets(TicketQuery(customer_id=BOB_ID))
    assert len(bobs) == 2


async def test_customer_cannot_create_ticket_for_someone_else(run_tool) -> None:
    result = await run_tool(BOB_ID, "createTicket", title="Hi", description="Help", customerId=CAROL_ID)

    assert not result.success
    assert result.error_kind == "permission"
    assert "agent or admin" in result.error


async def test_customer_creates_own_ticket(run_tool) -> None:
    result = await run_tool(BOB_ID, "createTicket", title="Hi", description="Help", customerId=BOB_ID)

    assert result.success
    assert result.data["priorityLevel"] == "medium"


async def test_agent_cannot_create_ticket_for_another_organizations_customer(run_tool, store) -> None:
    result = await run_tool(AGENT_ID, "createTicket", title="Hi", description="Help", customerId=DAVE_ID)

    assert not result.success
    assert result.error_kind == "permission"
    assert "another organization" in result.error
    assert [t.id for t in await store.query_tickets(TicketQuery(customer_id=DAVE_ID))] == ["ticket-3"]


async def test_created_ticket_belongs_to_callers_organization(run_tool, store) -> None:
    result = await run_tool(AGENT_ID, "createTicket", title="Hi", description="Help", customerId=CAROL_ID)

    assert result.success
    assert (await store.get_ticket(result.data["id"])).organization_id == ACME_ID
