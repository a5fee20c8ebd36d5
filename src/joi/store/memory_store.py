"""
In-process implementation of :class:`~joi.store.base.DataStore`.

Rows live in dictionaries keyed by id; every read hands out a copy so callers cannot mutate stored
state.  Writes are serialized with an :class:`asyncio.Lock`.  The store can be seeded from a JSON
file shaped like::

    {"organizations": [...], "users": [...], "organization_members": [...],
     "tickets": [...], "messages": [...]}
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
)

from pydantic.alias_generators import to_snake

from joi.store.base import (
    DataStore,
    TicketQuery,
)
from joi.store.models import (
    MessageMatch,
    Organization,
    OrganizationMember,
    Ticket,
    TicketMessage,
    User,
    UserRole,
    utc_now,
)
from joi.store.vector_memory import (
    MessageIndex,
    NumpyMessageIndex,
)

logger = logging.getLogger(__name__)


class InMemoryDataStore(DataStore):
    """Dictionary-backed data store with a pluggable message vector index."""

    def __init__(self, message_index: MessageIndex | None = None) -> None:
        self._users: Dict[str, User] = {}
        self._organizations: Dict[str, Organization] = {}
        self._members: List[OrganizationMember] = []
        self._tickets: Dict[str, Ticket] = {}
        self._messages: Dict[str, TicketMessage] = {}
        self._index = message_index or NumpyMessageIndex()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Seeding
    # ------------------------------------------------------------------ #
    @classmethod
    def from_json(cls, path: str | Path, message_index: MessageIndex | None = None) -> "InMemoryDataStore":
        """Build a store from a JSON seed file (camelCase or snake_case keys)."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        store = cls(message_index=message_index)
        for row in data.get("organizations", []):
            org = Organization.model_validate(row)
            store._organizations[org.id] = org
        for row in data.get("users", []):
            user = User.model_validate(row)
            store._users[user.id] = user
        for row in data.get("organization_members", data.get("organizationMembers", [])):
            store._members.append(OrganizationMember.model_validate(row))
        for row in data.get("tickets", []):
            ticket = Ticket.model_validate(row)
            store._tickets[ticket.id] = ticket
        for row in data.get("messages", []):
            message = TicketMessage.model_validate(row)
            store._messages[message.id] = message
        logger.info(
            "Seeded data store from %s: %d users, %d organizations, %d tickets, %d messages",
            path,
            len(store._users),
            len(store._organizations),
            len(store._tickets),
            len(store._messages),
        )
        return store

    async def index_messages(self, embed: Any) -> int:
        """
        Embed and index every live message not yet in the vector index.

        *embed* is an :class:`~joi.services.embeddings.EmbeddingService`.  Returns the number of
        messages indexed.
        """
        indexed = 0
        for message in list(self._messages.values()):
            if message.is_deleted:
                continue
            vector = await embed.embed(message.content)
            self._index.add(message.id, vector, message.content)
            indexed += 1
        logger.info("Indexed %d ticket messages", indexed)
        return indexed

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #
    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None or user.is_deleted:
            return None
        return user.model_copy(deep=True)

    async def find_users(
        self,
        *,
        email: Optional[str] = None,
        role: Optional[UserRole] = None,
        organization_id: Optional[str] = None,
    ) -> List[User]:
        members: set[str] | None = None
        if organization_id is not None:
            members = {m.user_id for m in self._members if m.organization_id == organization_id}

        normalized_email = email.strip().lower() if email else None
        found = []
        for user in self._users.values():
            if user.is_deleted:
                continue
            if role is not None and user.role != role:
                continue
            if normalized_email is not None and user.email.lower() != normalized_email:
                continue
            if members is not None and user.id not in members:
                continue
            found.append(user.model_copy(deep=True))
        return found

    async def create_user(self, user: User) -> User:
        async with self._lock:
            if user.id in self._users:
                raise ValueError(f"User {user.id} already exists")
            self._users[user.id] = user.model_copy(deep=True)
        return user.model_copy(deep=True)

    async def update_user(self, user_id: str, updates: Mapping[str, Any]) -> Optional[User]:
        async with self._lock:
            current = self._users.get(user_id)
            if current is None or current.is_deleted:
                return None
            updated = _apply(current, updates)
            self._users[user_id] = updated
        return updated.model_copy(deep=True)

    async def soft_delete_user(self, user_id: str) -> Optional[User]:
        return await self.update_user(user_id, {"deleted_at": utc_now()})

    # ------------------------------------------------------------------ #
    # Organizations
    # ------------------------------------------------------------------ #
    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        org = self._organizations.get(organization_id)
        if org is None or org.is_deleted:
            return None
        return org.model_copy(deep=True)

    async def create_organization(self, organization: Organization) -> Organization:
        async with self._lock:
            self._organizations[organization.id] = organization.model_copy(deep=True)
        return organization.model_copy(deep=True)

    async def update_organization(
        self, organization_id: str, updates: Mapping[str, Any]
    ) -> Optional[Organization]:
        async with self._lock:
            current = self._organizations.get(organization_id)
            if current is None or current.is_deleted:
                return None
            updated = _apply(current, updates)
            self._organizations[organization_id] = updated
        return updated.model_copy(deep=True)

    async def add_member(self, member: OrganizationMember) -> OrganizationMember:
        async with self._lock:
            self._members.append(member.model_copy(deep=True))
        return member

    async def list_memberships(self, user_id: str) -> List[OrganizationMember]:
        return [
            m.model_copy(deep=True)
            for m in self._members
            if m.user_id == user_id and self._organization_is_live(m.organization_id)
        ]

    def _organization_is_live(self, organization_id: str) -> bool:
        org = self._organizations.get(organization_id)
        return org is not None and not org.is_deleted

    # ------------------------------------------------------------------ #
    # Tickets
    # ------------------------------------------------------------------ #
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self._tickets.get(ticket_id)
        if ticket is None or ticket.is_deleted:
            return None
        return ticket.model_copy(deep=True)

    async def query_tickets(self, query: TicketQuery) -> List[Ticket]:
        found = [
            t.model_copy(deep=True)
            for t in self._tickets.values()
            if not t.is_deleted and query.matches(t)
        ]
        return sorted(found, key=lambda t: t.created_at, reverse=True)

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        async with self._lock:
            if ticket.id in self._tickets:
                raise ValueError(f"Ticket {ticket.id} already exists")
            self._tickets[ticket.id] = ticket.model_copy(deep=True)
        return ticket.model_copy(deep=True)

    async def update_ticket(self, ticket_id: str, updates: Mapping[str, Any]) -> Optional[Ticket]:
        async with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None or current.is_deleted:
                return None
            updated = _apply(current, updates)
            self._tickets[ticket_id] = updated
        return updated.model_copy(deep=True)

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #
    async def list_ticket_messages(self, ticket_id: str) -> List[TicketMessage]:
        found = [
            m.model_copy(deep=True)
            for m in self._messages.values()
            if m.ticket_id == ticket_id and not m.is_deleted
        ]
        return sorted(found, key=lambda m: m.created_at)

    async def add_message(
        self, message: TicketMessage, embedding: Optional[Sequence[float]] = None
    ) -> TicketMessage:
        async with self._lock:
            self._messages[message.id] = message.model_copy(deep=True)
            if embedding is not None:
                self._index.add(message.id, embedding, message.content)
        return message.model_copy(deep=True)

    async def match_messages(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[MessageMatch]:
        matches = []
        for message_id, similarity in self._index.match(embedding, threshold, limit):
            message = self._messages.get(message_id)
            if message is None or message.is_deleted:
                continue
            matches.append(MessageMatch(message=message.model_copy(deep=True), similarity=similarity))
        return matches


def _apply(record: Any, updates: Mapping[str, Any]) -> Any:
    """Return a validated copy of *record* with *updates* applied and ``updated_at`` bumped."""
    merged = record.model_dump()
    merged.update({to_snake(key): value for key, value in updates.items()})
    merged["updated_at"] = utc_now()
    return type(record).model_validate(merged)
