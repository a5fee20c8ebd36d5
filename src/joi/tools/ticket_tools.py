"""Ticket tools: search, details and creation."""

import logging
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Type,
    TypeVar,
)

from pydantic import Field

from joi.core.errors import (
    InputValidationError,
    NotFoundError,
    PermissionDeniedError,
)
from joi.core.schema import DateRange
from joi.store.base import (
    DataStore,
    TicketQuery,
)
from joi.store.models import (
    Ticket,
    TicketPriority,
    TicketStatus,
    UserRole,
)
from joi.tools import (
    ToolContext,
    ToolInput,
    ToolName,
    tool,
)
from joi.tools.permissions import (
    has_permission,
    require,
    require_organization,
)
from joi.tools.user_tools import user_summary

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def parse_enum(value: Optional[str], enum_cls: Type[E], label: str) -> Optional[E]:
    """Map *value* onto *enum_cls*, naming the allowed set when it does not fit."""
    if value is None or value == "":
        return None
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InputValidationError(f"Invalid {label} '{value}'. Must be one of: {allowed}") from exc


async def ticket_view(store: DataStore, ticket: Ticket) -> Dict[str, Any]:
    """Serialize *ticket* with its customer and assignee resolved."""
    view = ticket.model_dump(mode="json", by_alias=True, exclude={"deleted_at"})
    view["customer"] = await user_summary(store, ticket.customer_id)
    view["assignee"] = await user_summary(store, ticket.assigned_to) if ticket.assigned_to else None
    return view


# ---------------------------------------------------------------------------
# searchTickets
# ---------------------------------------------------------------------------
class SearchTicketsInput(ToolInput):
    priority: Optional[str] = Field(None, description="low, medium, high or urgent")
    status: Optional[str] = Field(None, description="open, in_progress, resolved or closed")
    assigned_to: Optional[str] = Field(None, description="Assignee user id")
    customer_id: Optional[str] = Field(None, description="Customer user id")
    is_unassigned: bool = Field(False, description="Only tickets without an assignee")
    created_at: Optional[DateRange] = Field(None, description="{start, end} ISO dates")
    updated_at: Optional[DateRange] = Field(None, description="{start, end} ISO dates")


@tool(ToolName.SEARCH_TICKETS, SearchTicketsInput)
async def search_tickets(ctx: ToolContext, payload: SearchTicketsInput) -> List[Dict[str, Any]]:
    """Search and filter tickets by priority, status, assignee, customer or date range."""
    caller = await ctx.caller(payload)

    query = TicketQuery(
        priority=parse_enum(payload.priority, TicketPriority, "priority level"),
        status=parse_enum(payload.status, TicketStatus, "status"),
        assigned_to=payload.assigned_to,
        customer_id=payload.customer_id,
        is_unassigned=payload.is_unassigned,
        created_from=payload.created_at.start if payload.created_at else None,
        created_to=payload.created_at.end if payload.created_at else None,
        updated_from=payload.updated_at.start if payload.updated_at else None,
        updated_to=payload.updated_at.end if payload.updated_at else None,
    )

    if has_permission(caller.role, "view", "all_tickets"):
        if caller.organization_id:
            query = query.model_copy(update={"organization_id": caller.organization_id})
    else:
        # Customers only ever see their own tickets
        query = query.model_copy(update={"customer_id": caller.user_id})

    tickets = await ctx.store.query_tickets(query)
    logger.info("searchTickets matched %d ticket(s) for role=%s", len(tickets), caller.role.value)
    return [await ticket_view(ctx.store, t) for t in tickets]


# ---------------------------------------------------------------------------
# getTicketDetails
# ---------------------------------------------------------------------------
class GetTicketDetailsInput(ToolInput):
    ticket_id: str = Field(..., min_length=1, description="Ticket id")


@tool(ToolName.GET_TICKET_DETAILS, GetTicketDetailsInput)
async def get_ticket_details(ctx: ToolContext, payload: GetTicketDetailsInput) -> Dict[str, Any]:
    """Get a ticket's full details, including its message thread."""
    caller = await ctx.caller(payload)
    ticket = await ctx.store.get_ticket(payload.ticket_id)
    if ticket is None:
        raise NotFoundError("I couldn't find a ticket with that ID.")

    if has_permission(caller.role, "view", "all_tickets"):
        await require_organization(
            ctx.store, caller, ticket.organization_id, "view", "all_tickets", "view tickets"
        )
    elif ticket.customer_id != caller.user_id:
        raise PermissionDeniedError(
            "You don't have permission to view this ticket. This requires the admin or agent role.",
            required_role="admin or agent",
        )

    view = await ticket_view(ctx.store, ticket)
    messages = await ctx.store.list_ticket_messages(ticket.id)
    view["messages"] = [m.model_dump(mode="json", by_alias=True, exclude={"deleted_at"}) for m in messages]
    return view


# ---------------------------------------------------------------------------
# createTicket
# ---------------------------------------------------------------------------
class CreateTicketInput(ToolInput):
    title: Optional[str] = Field(None, description="Specific title for the issue (required)")
    description: Optional[str] = Field(None, description="Detailed description (required)")
    customer_id: Optional[str] = Field(
        None, description="Id of an existing customer (required; resolve emails with findUsers)"
    )
    priority: Optional[str] = Field(None, description="low, medium, high or urgent")
    assignee_id: Optional[str] = Field(None, description="Id of an existing agent")
    status: Optional[str] = Field(None, description="open, in_progress, resolved or closed")


REQUIRED_TICKET_FIELDS = (("title", "title"), ("description", "description"), ("customer_id", "customerId"))


@tool(ToolName.CREATE_TICKET, CreateTicketInput)
async def create_ticket(ctx: ToolContext, payload: CreateTicketInput) -> Dict[str, Any]:
    """Create a new ticket for an existing customer."""
    missing = [
        label for attr, label in REQUIRED_TICKET_FIELDS if not (getattr(payload, attr) or "").strip()
    ]
    if missing:
        raise InputValidationError(
            f"Missing required fields: {', '.join(missing)}. "
            "Please provide the actual information for each field.",
            missing,
        )

    priority = parse_enum(payload.priority, TicketPriority, "priority level")
    status = parse_enum(payload.status, TicketStatus, "status")

    caller = await ctx.caller(payload)
    require(caller, "create", "tickets", "create tickets")

    customer = await ctx.store.get_user(payload.customer_id)
    if customer is None:
        raise NotFoundError(
            "I couldn't find that customer. Please look the customer up first, "
            "for example by their email address."
        )
    if customer.role != UserRole.CUSTOMER:
        raise InputValidationError("The referenced user is not a customer.")

    if caller.role == UserRole.CUSTOMER and customer.id != caller.user_id:
        raise PermissionDeniedError(
            "You don't have permission to create tickets for other customers. "
            "This requires the agent or admin role.",
            required_role="agent or admin",
        )

    # The ticket belongs to the caller's organization, so its customer must too
    customer_orgs = [m.organization_id for m in await ctx.store.list_memberships(customer.id)]
    organization_id = caller.organization_id or next(iter(customer_orgs), None)
    if organization_id is not None and organization_id not in customer_orgs:
        raise PermissionDeniedError(
            "You don't have permission to create tickets for customers of another organization. "
            "This requires the agent or admin role in the customer's organization.",
            required_role="agent or admin",
        )

    if payload.assignee_id:
        assignee = await ctx.store.get_user(payload.assignee_id)
        if assignee is None:
            raise NotFoundError("I couldn't find that assignee. Please provide a valid agent.")
        if assignee.role != UserRole.AGENT:
            raise InputValidationError("The assignee must be an agent.")

    ticket = Ticket(
        title=payload.title.strip(),
        description=payload.description.strip(),
        customer_id=customer.id,
        created_by=caller.user_id,
        priority_level=priority or TicketPriority.MEDIUM,
        status=status or TicketStatus.OPEN,
        assigned_to=payload.assignee_id or None,
        organization_id=organization_id,
    )
    created = await ctx.store.create_ticket(ticket)
    logger.info("Created ticket %s (priority=%s)", created.id, created.priority_level.value)
    return await ticket_view(ctx.store, created)


TOOLS = (search_tickets, get_ticket_details, create_ticket)
