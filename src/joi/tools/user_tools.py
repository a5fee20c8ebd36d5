"""User lookup tools."""

import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import Field

from joi.core.errors import (
    InputValidationError,
    NotFoundError,
)
from joi.store.base import DataStore
from joi.store.models import (
    User,
    UserRole,
)
from joi.tools import (
    ToolContext,
    ToolInput,
    ToolName,
    tool,
)
from joi.tools.permissions import require

logger = logging.getLogger(__name__)


def user_view(user: User) -> Dict[str, Any]:
    """Public fields of *user*; bookkeeping columns are left out."""
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "name": user.full_name,
        "role": user.role.value,
    }


async def user_summary(store: DataStore, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
    """Short ``{id, email, name, role}`` block for embedding in other records."""
    if not user_id:
        return None
    user = await store.get_user(user_id)
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "name": user.full_name, "role": user.role.value}


# ---------------------------------------------------------------------------
# findUsers
# ---------------------------------------------------------------------------
class FindUsersInput(ToolInput):
    name: Optional[str] = Field(None, description="Part of the user's full name")
    email: Optional[str] = Field(None, description="Exact email address (case-insensitive)")
    role: Optional[str] = Field(None, description="admin, agent or customer")


@tool(ToolName.FIND_USERS, FindUsersInput)
async def find_users(ctx: ToolContext, payload: FindUsersInput) -> List[Dict[str, Any]]:
    """
    Find users by email, name or role. Use this to resolve a customer's email into the id
    that createTicket needs.
    """
    name = (payload.name or "").strip()
    email = (payload.email or "").strip()
    role_value = (payload.role or "").strip().lower()
    if not (name or email or role_value):
        raise InputValidationError("Please provide a name, email or role to search for users.")

    role = None
    if role_value:
        try:
            role = UserRole(role_value)
        except ValueError as exc:
            allowed = ", ".join(r.value for r in UserRole)
            raise InputValidationError(f"Invalid role '{payload.role}'. Must be one of: {allowed}") from exc

    caller = await ctx.caller(payload)
    require(caller, "view", "users", "look up users")

    users = await ctx.store.find_users(
        email=email or None,
        role=role,
        organization_id=payload.organization_id,
    )
    if name:
        needle = name.lower()
        users = [u for u in users if needle in u.full_name.lower()]

    if not users:
        if email:
            raise NotFoundError(f"No user found with email: {email}")
        raise NotFoundError("No users matched those criteria.")

    logger.info("findUsers matched %d user(s)", len(users))
    return [user_view(u) for u in users]


# ---------------------------------------------------------------------------
# getCurrentUserContext
# ---------------------------------------------------------------------------
@tool(ToolName.GET_CURRENT_USER_CONTEXT, ToolInput)
async def get_current_user_context(ctx: ToolContext, payload: ToolInput) -> Dict[str, Any]:
    """Get the signed-in user's profile, organization memberships and primary organization."""
    caller = await ctx.caller(payload)
    user = await ctx.store.get_user(caller.user_id)
    if user is None:
        raise NotFoundError("I couldn't find your user profile.")

    memberships = await ctx.store.list_memberships(user.id)
    organization = None
    if memberships:
        org = await ctx.store.get_organization(memberships[0].organization_id)
        if org is not None:
            organization = org.model_dump(mode="json", by_alias=True, exclude={"deleted_at"})

    context = user_view(user)
    context["organizationMembers"] = [m.model_dump(mode="json", by_alias=True) for m in memberships]
    context["organization"] = organization
    return context


TOOLS = (find_users, get_current_user_context)
