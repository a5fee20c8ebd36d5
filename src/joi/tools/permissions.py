"""Role-based permission table shared by all tools."""

from typing import (
    Dict,
    List,
    NamedTuple,
    Optional,
)

from joi.core.errors import PermissionDeniedError
from joi.services.identity import CallerIdentity
from joi.store.base import DataStore
from joi.store.models import UserRole


class Permission(NamedTuple):
    action: str
    resource: str


ROLE_PERMISSIONS: Dict[UserRole, List[Permission]] = {
    UserRole.ADMIN: [
        Permission("manage", "organization"),
        Permission("manage", "users"),
        Permission("manage", "settings"),
        Permission("manage", "tickets"),
        Permission("view", "all_tickets"),
        Permission("delete", "tickets"),
    ],
    UserRole.AGENT: [
        Permission("view", "all_tickets"),
        Permission("update", "tickets"),
        Permission("create", "tickets"),
        Permission("manage", "assigned_tickets"),
        Permission("view", "users"),
    ],
    UserRole.CUSTOMER: [
        Permission("view", "own_tickets"),
        Permission("create", "tickets"),
        Permission("update", "own_tickets"),
        Permission("view", "own_profile"),
    ],
}


def has_permission(role: UserRole, action: str, resource: str) -> bool:
    """``manage`` on a resource implies every action on it."""
    return any(
        perm.resource == resource and perm.action in (action, "manage")
        for perm in ROLE_PERMISSIONS.get(role, [])
    )


def roles_with(action: str, resource: str) -> List[UserRole]:
    return [role for role in UserRole if has_permission(role, action, resource)]


def require(caller: CallerIdentity, action: str, resource: str, what: str) -> None:
    """
    Raise :class:`PermissionDeniedError` unless *caller* may *action* the *resource*.

    *what* completes the sentence "You don't have permission to ...".
    """
    if has_permission(caller.role, action, resource):
        return
    allowed = roles_with(action, resource)
    needed = " or ".join(role.value for role in allowed) or "a higher"
    raise PermissionDeniedError(
        f"You don't have permission to {what}. This requires the {needed} role.",
        required_role=needed,
    )


async def require_organization(
    store: DataStore,
    caller: CallerIdentity,
    organization_id: Optional[str],
    action: str,
    resource: str,
    what: str,
) -> None:
    """
    Raise :class:`PermissionDeniedError` unless *caller* is a member of *organization_id*.

    Role permissions only ever apply inside the caller's own organizations.  Records without an
    organization are not scoped.
    """
    if organization_id is None:
        return
    memberships = await store.list_memberships(caller.user_id)
    if any(m.organization_id == organization_id for m in memberships):
        return
    needed = " or ".join(role.value for role in roles_with(action, resource)) or "a higher"
    raise PermissionDeniedError(
        f"You don't have permission to {what} in another organization. "
        f"This requires the {needed} role in that organization.",
        required_role=needed,
    )
