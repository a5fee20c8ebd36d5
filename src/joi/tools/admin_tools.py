"""
Administrative tools: organization settings, user management and ticket updates.

Every tool here changes data, so each re-checks the caller against the permission table before
touching the store and reports the exact role required when the check fails.
"""

import logging
from typing import (
    Any,
    Dict,
    Literal,
    Optional,
)

from pydantic import (
    Field,
    ValidationError,
)

from joi.core.errors import (
    InputValidationError,
    NotFoundError,
    PermissionDeniedError,
)
from joi.core.schema import CamelModel
from joi.store.models import (
    ORGANIZATION_UPDATABLE_FIELDS,
    OrganizationMember,
    TicketPriority,
    TicketStatus,
    User,
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
from joi.tools.ticket_tools import (
    parse_enum,
    ticket_view,
)
from joi.tools.user_tools import user_view

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# updateOrganization
# ---------------------------------------------------------------------------
class UpdateOrganizationInput(ToolInput):
    target_organization_id: Optional[str] = Field(
        None,
        alias="targetOrganizationId",
        description="Organization to update (defaults to the caller's organization)",
    )
    updates: Dict[str, Any] = Field(
        default_factory=dict, description="Any of: name, description, website, settings"
    )


@tool(ToolName.UPDATE_ORGANIZATION, UpdateOrganizationInput)
async def update_organization(ctx: ToolContext, payload: UpdateOrganizationInput) -> Dict[str, Any]:
    """Update an organization's name, description, website or settings. Organization admins only."""
    caller = await ctx.caller(payload)
    require(caller, "manage", "organization", "update organization settings")

    organization_id = payload.target_organization_id or caller.organization_id
    if not organization_id:
        raise InputValidationError("Missing required field: organizationId.", ["organizationId"])
    if not payload.updates:
        raise InputValidationError("Please tell me what to change about the organization.")

    unknown = sorted(set(payload.updates) - set(ORGANIZATION_UPDATABLE_FIELDS))
    if unknown:
        raise InputValidationError(
            f"Cannot update {', '.join(unknown)}. "
            f"Updatable fields: {', '.join(ORGANIZATION_UPDATABLE_FIELDS)}"
        )

    organization = await ctx.store.get_organization(organization_id)
    if organization is None:
        raise NotFoundError("I couldn't find that organization.")
    if organization.admin_id != caller.user_id:
        raise PermissionDeniedError(
            "You don't have permission to update this organization. "
            "Only the organization's admin can change it.",
            required_role="admin",
        )

    try:
        updated = await ctx.store.update_organization(organization_id, payload.updates)
    except ValidationError as exc:
        raise InputValidationError("One or more organization values are not valid.") from exc
    logger.info("Updated organization %s fields=%s", organization_id, sorted(payload.updates))
    return updated.model_dump(mode="json", by_alias=True, exclude={"deleted_at"})


# ---------------------------------------------------------------------------
# manageUsers
# ---------------------------------------------------------------------------
class UserData(CamelModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None


class ManageUsersInput(ToolInput):
    action: Literal["create", "update", "delete"] = Field(..., description="create, update or delete")
    user_id: Optional[str] = Field(None, description="Required for update and delete")
    user_data: UserData = Field(
        default_factory=UserData, description="email, firstName, lastName, role"
    )


@tool(ToolName.MANAGE_USERS, ManageUsersInput)
async def manage_users(ctx: ToolContext, payload: ManageUsersInput) -> Dict[str, Any]:
    """Create, update or delete (deactivate) users. Admins only."""
    caller = await ctx.caller(payload)
    require(caller, "manage", "users", "manage users")

    data = payload.user_data.model_dump(exclude_none=True)
    if "role" in data:
        data["role"] = parse_enum(data["role"], UserRole, "role")

    if payload.action == "create":
        missing = [label for key, label in (("email", "email"), ("first_name", "firstName")) if not data.get(key)]
        if missing:
            raise InputValidationError(f"Missing required fields: {', '.join(missing)}.", missing)
        if await ctx.store.find_users(email=data["email"]):
            raise InputValidationError(f"A user with email {data['email']} already exists.")
        created = await ctx.store.create_user(User(**data))
        if caller.organization_id:
            await ctx.store.add_member(
                OrganizationMember(
                    organization_id=caller.organization_id, user_id=created.id, role=created.role.value
                )
            )
        logger.info("Created user %s role=%s", created.id, created.role.value)
        return {"action": "create", "user": user_view(created)}

    if not payload.user_id:
        raise InputValidationError(
            f"Missing required field: userId (needed to {payload.action} a user).", ["userId"]
        )

    target = await ctx.store.get_user(payload.user_id)
    if target is None:
        raise NotFoundError("I couldn't find that user.")
    if caller.organization_id:
        target_orgs = {m.organization_id for m in await ctx.store.list_memberships(target.id)}
        if caller.organization_id not in target_orgs:
            raise PermissionDeniedError(
                "You don't have permission to manage users of another organization. "
                "This requires the admin role in that organization.",
                required_role="admin",
            )

    if payload.action == "update":
        if not data:
            raise InputValidationError("Please tell me what to change about the user.")
        if "email" in data:
            taken = await ctx.store.find_users(email=data["email"])
            if any(user.id != target.id for user in taken):
                raise InputValidationError(f"A user with email {data['email']} already exists.")
        updated = await ctx.store.update_user(payload.user_id, data)
        if updated is None:
            raise NotFoundError("I couldn't find that user.")
        logger.info("Updated user %s fields=%s", updated.id, sorted(data))
        return {"action": "update", "user": user_view(updated)}

    if payload.user_id == caller.user_id:
        raise InputValidationError("You can't delete your own account.")
    deleted = await ctx.store.soft_delete_user(payload.user_id)
    if deleted is None:
        raise NotFoundError("I couldn't find that user.")
    logger.info("Soft-deleted user %s", deleted.id)
    return {"action": "delete", "user": user_view(deleted), "deletedAt": deleted.deleted_at.isoformat()}


# ---------------------------------------------------------------------------
# updateTicket
# ---------------------------------------------------------------------------
class TicketUpdates(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    priority_level: Optional[str] = None
    assignee_id: Optional[str] = None
    assigned_to: Optional[str] = None


class UpdateTicketInput(ToolInput):
    ticket_id: str = Field(..., min_length=1, description="Ticket id")
    updates: Dict[str, Any] = Field(
        default_factory=dict,
        description="Any of: title, description, status, priority, assigneeId",
    )


TICKET_UPDATE_KEYS = frozenset(
    {"title", "description", "status", "priority", "priorityLevel", "assigneeId", "assignedTo"}
)


@tool(ToolName.UPDATE_TICKET, UpdateTicketInput)
async def update_ticket(ctx: ToolContext, payload: UpdateTicketInput) -> Dict[str, Any]:
    """Update a ticket's title, description, status, priority or assignee."""
    caller = await ctx.caller(payload)

    unknown = sorted(set(payload.updates) - TICKET_UPDATE_KEYS)
    if unknown:
        raise InputValidationError(
            f"Cannot update {', '.join(unknown)}. "
            "Updatable fields: title, description, status, priority, assigneeId"
        )
    if not payload.updates:
        raise InputValidationError("Please tell me what to change about the ticket.")
    requested = TicketUpdates.model_validate(payload.updates)

    ticket = await ctx.store.get_ticket(payload.ticket_id)
    if ticket is None:
        raise NotFoundError("I couldn't find a ticket with that ID.")

    if has_permission(caller.role, "update", "tickets"):
        await require_organization(
            ctx.store, caller, ticket.organization_id, "update", "tickets", "update tickets"
        )
    else:
        owns = ticket.customer_id == caller.user_id
        if not (owns and has_permission(caller.role, "update", "own_tickets")):
            raise PermissionDeniedError(
                "You don't have permission to update this ticket. This requires the admin or agent role.",
                required_role="admin or agent",
            )

    changes: Dict[str, Any] = {}
    for field in ("title", "description"):
        value = getattr(requested, field)
        if value is not None:
            if not value.strip():
                raise InputValidationError(f"The ticket {field} cannot be empty.")
            changes[field] = value.strip()

    status = parse_enum(requested.status, TicketStatus, "status")
    if status is not None:
        changes["status"] = status
    priority = parse_enum(requested.priority or requested.priority_level, TicketPriority, "priority level")
    if priority is not None:
        changes["priority_level"] = priority

    assignee_id = requested.assignee_id or requested.assigned_to
    if assignee_id:
        if caller.role == UserRole.CUSTOMER:
            raise PermissionDeniedError(
                "You don't have permission to assign tickets. This requires the admin or agent role.",
                required_role="admin or agent",
            )
        assignee = await ctx.store.get_user(assignee_id)
        if assignee is None:
            raise NotFoundError("I couldn't find that assignee. Please provide a valid agent.")
        if assignee.role != UserRole.AGENT:
            raise InputValidationError("The assignee must be an agent.")
        changes["assigned_to"] = assignee.id

    updated = await ctx.store.update_ticket(ticket.id, changes)
    logger.info("Updated ticket %s fields=%s", ticket.id, sorted(changes))
    return await ticket_view(ctx.store, updated)


TOOLS = (update_organization, manage_users, update_ticket)
