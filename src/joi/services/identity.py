"""
Identity collaborator.

How a caller authenticates is outside the agent; by the time a request reaches it, some upstream
layer has established *who* is calling.  :class:`IdentityProvider` exposes that fact and is treated
as ground truth for every permission check.  Nothing the model outputs can change it.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import Optional

from joi.core.errors import PermissionDeniedError
from joi.core.schema import CamelModel
from joi.store.base import DataStore
from joi.store.models import UserRole

logger = logging.getLogger(__name__)


class CallerIdentity(CamelModel):
    """The authenticated caller."""

    user_id: str
    role: UserRole
    organization_id: Optional[str] = None


class IdentityProvider(ABC):
    @abstractmethod
    async def current_caller(self) -> CallerIdentity:
        """
        Return the authenticated caller.

        Raises
        ------
        PermissionDeniedError
            If there is no authenticated caller.
        """


class StoreIdentityProvider(IdentityProvider):
    """Resolves a trusted user id (e.g. from an auth proxy header) against the data store."""

    def __init__(self, store: DataStore, user_id: str | None) -> None:
        self._store = store
        self._user_id = user_id
        self._cached: CallerIdentity | None = None

    async def current_caller(self) -> CallerIdentity:
        if self._cached is not None:
            return self._cached
        if not self._user_id:
            raise PermissionDeniedError("You need to be signed in to do that.")

        user = await self._store.get_user(self._user_id)
        if user is None:
            logger.warning("Identity lookup failed: unknown or deleted user")
            raise PermissionDeniedError("You need to be signed in to do that.")

        memberships = await self._store.list_memberships(user.id)
        self._cached = CallerIdentity(
            user_id=user.id,
            role=user.role,
            organization_id=memberships[0].organization_id if memberships else None,
        )
        return self._cached


class AnonymousIdentityProvider(IdentityProvider):
    """Used when no caller is known; every identity-dependent tool is denied."""

    async def current_caller(self) -> CallerIdentity:
        raise PermissionDeniedError("You need to be signed in to do that.")
