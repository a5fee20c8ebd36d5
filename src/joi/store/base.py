"""
Data store interface.

The agent never talks to a database directly; every tool goes through :class:`DataStore`.  All reads
exclude soft-deleted rows (``deleted_at`` set) unless stated otherwise.
"""

from abc import (
    ABC,
    abstractmethod,
)
from datetime import datetime
from typing import (
    Any,
    List,
    Mapping,
    Optional,
    Sequence,
)

from joi.core.schema import CamelModel
from joi.store.models import (
    MessageMatch,
    Organization,
    OrganizationMember,
    Ticket,
    TicketMessage,
    TicketPriority,
    TicketStatus,
    User,
    UserRole,
)


class TicketQuery(CamelModel):
    """Equality and range predicates for ticket search; unset fields do not filter."""

    priority: Optional[TicketPriority] = None
    status: Optional[TicketStatus] = None
    assigned_to: Optional[str] = None
    organization_id: Optional[str] = None
    customer_id: Optional[str] = None
    is_unassigned: bool = False
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    updated_from: Optional[datetime] = None
    updated_to: Optional[datetime] = None

    def matches(self, ticket: Ticket) -> bool:
        checks = (
            self.priority is None or ticket.priority_level == self.priority,
            self.status is None or ticket.status == self.status,
            self.assigned_to is None or ticket.assigned_to == self.assigned_to,
            self.organization_id is None or ticket.organization_id == self.organization_id,
            self.customer_id is None or ticket.customer_id == self.customer_id,
            not self.is_unassigned or ticket.assigned_to is None,
            _in_range(ticket.created_at, self.created_from, self.created_to),
            _in_range(ticket.updated_at, self.updated_from, self.updated_to),
        )
        return all(checks)


def _in_range(value: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


class DataStore(ABC):
    """Async CRUD and query operations over the support-desk records."""

    # -- users ------------------------------------------------------------ #
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Return the live user with *user_id*, or ``None``."""

    @abstractmethod
    async def find_users(
        self,
        *,
        email: Optional[str] = None,
        role: Optional[UserRole] = None,
        organization_id: Optional[str] = None,
    ) -> List[User]:
        """Filter users; *email* is matched exactly but case-insensitively."""

    @abstractmethod
    async def create_user(self, user: User) -> User: ...

    @abstractmethod
    async def update_user(self, user_id: str, updates: Mapping[str, Any]) -> Optional[User]: ...

    @abstractmethod
    async def soft_delete_user(self, user_id: str) -> Optional[User]: ...

    # -- organizations ---------------------------------------------------- #
    @abstractmethod
    async def get_organization(self, organization_id: str) -> Optional[Organization]: ...

    @abstractmethod
    async def create_organization(self, organization: Organization) -> Organization: ...

    @abstractmethod
    async def update_organization(
        self, organization_id: str, updates: Mapping[str, Any]
    ) -> Optional[Organization]: ...

    @abstractmethod
    async def add_member(self, member: OrganizationMember) -> OrganizationMember: ...

    @abstractmethod
    async def list_memberships(self, user_id: str) -> List[OrganizationMember]: ...

    # -- tickets ---------------------------------------------------------- #
    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]: ...

    @abstractmethod
    async def query_tickets(self, query: TicketQuery) -> List[Ticket]: ...

    @abstractmethod
    async def create_ticket(self, ticket: Ticket) -> Ticket: ...

    @abstractmethod
    async def update_ticket(self, ticket_id: str, updates: Mapping[str, Any]) -> Optional[Ticket]: ...

    # -- messages --------------------------------------------------------- #
    @abstractmethod
    async def list_ticket_messages(self, ticket_id: str) -> List[TicketMessage]: ...

    @abstractmethod
    async def add_message(
        self, message: TicketMessage, embedding: Optional[Sequence[float]] = None
    ) -> TicketMessage: ...

    @abstractmethod
    async def match_messages(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[MessageMatch]:
        """Return up to *limit* live messages whose similarity is at least *threshold*."""
