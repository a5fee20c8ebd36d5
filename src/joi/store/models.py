"""Records kept by the data store: users, organizations, memberships, tickets and messages."""

import uuid
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Dict,
    Optional,
)

from pydantic import (
    Field,
    field_validator,
)

from joi.core.schema import CamelModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, Enum):
    ADMIN = "admin"
    AGENT = "agent"
    CUSTOMER = "customer"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Record(CamelModel):
    """Common bookkeeping columns; ``deleted_at`` marks a soft delete."""

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", "deleted_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class User(Record):
    email: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.CUSTOMER

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Organization(Record):
    name: str
    admin_id: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)


ORGANIZATION_UPDATABLE_FIELDS = ("name", "description", "website", "settings")


class OrganizationMember(CamelModel):
    organization_id: str
    user_id: str
    role: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Ticket(Record):
    title: str
    description: str
    status: TicketStatus = TicketStatus.OPEN
    priority_level: TicketPriority = TicketPriority.MEDIUM
    customer_id: str
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None
    organization_id: Optional[str] = None


class TicketMessage(Record):
    ticket_id: str
    sender_id: Optional[str] = None
    content: str


class MessageMatch(CamelModel):
    """A ticket message returned by similarity search."""

    message: TicketMessage
    similarity: float
