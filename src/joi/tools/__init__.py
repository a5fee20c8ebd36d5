"""
Tool registry for Joi.

A tool is an async function ``handler(ctx, payload) -> data`` paired with a pydantic input model.
The :func:`tool` decorator wraps such a function into a :class:`ToolSpec`; each tool module exports
its specs in a ``TOOLS`` tuple, and :func:`build_tool_registry` freezes them into an immutable
:class:`ToolRegistry` once at process start.  Only the names in :class:`ToolName` can ever be
registered, so only those tools can ever run.

Handlers report failures by raising :class:`~joi.core.errors.ToolError` subclasses; the executor
turns them into ``ToolResult`` envelopes.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    Mapping,
    Optional,
    Type,
    TypedDict,
)

from pydantic import (
    ConfigDict,
    Field,
)

from joi.config import Settings
from joi.core.errors import UnknownToolError
from joi.core.schema import CamelModel
from joi.services.embeddings import EmbeddingService
from joi.services.identity import (
    CallerIdentity,
    IdentityProvider,
)
from joi.store.base import DataStore

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    """The fixed set of tools the planner may use."""

    SEARCH_TICKETS = "searchTickets"
    GET_TICKET_DETAILS = "getTicketDetails"
    CREATE_TICKET = "createTicket"
    FIND_USERS = "findUsers"
    GET_CURRENT_USER_CONTEXT = "getCurrentUserContext"
    FIND_SIMILAR_MESSAGES = "findSimilarMessages"
    GET_SYSTEM_INFO = "getSystemInfo"
    UPDATE_ORGANIZATION = "updateOrganization"
    MANAGE_USERS = "manageUsers"
    UPDATE_TICKET = "updateTicket"


# Keys the executor adds to every tool input; the planner never supplies them
INJECTED_KEYS = ("callerRole", "callerId", "organizationId")


class ToolInput(CamelModel):
    """Base input model; carries the caller context injected by the executor."""

    model_config = ConfigDict(extra="ignore")

    caller_role: Optional[str] = Field(None, description="Injected caller role")
    caller_id: Optional[str] = Field(None, description="Injected caller id")
    organization_id: Optional[str] = Field(None, description="Injected caller organization")


@dataclass(frozen=True)
class ToolContext:
    """Collaborators available to a tool for one call."""

    store: DataStore
    embedder: EmbeddingService
    identity: IdentityProvider
    config: Settings

    async def caller(self, payload: ToolInput | None = None) -> CallerIdentity:
        """
        Return the authenticated caller from the identity collaborator.

        The injected ``callerRole`` is only context; if it disagrees with the identity collaborator
        the collaborator wins.
        """
        identity = await self.identity.current_caller()
        if payload is not None and payload.caller_role and payload.caller_role != identity.role.value:
            logger.warning(
                "Injected caller role %r does not match authenticated role %r; using the latter",
                payload.caller_role,
                identity.role.value,
            )
        return identity


Handler = Callable[[ToolContext, Any], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    handler: Handler
    input_model: Type[ToolInput]
    description: str


def tool(name: ToolName, input_model: Type[ToolInput]) -> Callable[[Handler], ToolSpec]:
    """
    Wrap an async handler into a :class:`ToolSpec`.

    The handler's docstring becomes the description the planner sees, so keep its first paragraph
    user-facing.
    """

    def wrapper(fn: Handler) -> ToolSpec:
        doc = (fn.__doc__ or "").strip().split("\n\n")[0]
        return ToolSpec(name=name, handler=fn, input_model=input_model, description=" ".join(doc.split()))

    return wrapper


class ParameterInfo(TypedDict):
    """
    Information about a tool parameter.
    """

    type: str
    required: bool
    description: str


class ToolSchema(TypedDict):
    """
    Schema for a tool function
    """

    description: str
    parameters: Mapping[str, ParameterInfo]


class ToolRegistry(Mapping[ToolName, ToolSpec]):
    """Immutable name -> tool mapping."""

    def __init__(self, specs: Mapping[ToolName, ToolSpec]) -> None:
        self._specs: Mapping[ToolName, ToolSpec] = MappingProxyType(dict(specs))

    def __getitem__(self, name: ToolName) -> ToolSpec:
        return self._specs[name]

    def __iter__(self) -> Iterator[ToolName]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def resolve(self, name: str) -> ToolSpec:
        """Look up a tool by its wire name; raise :class:`UnknownToolError` if absent."""
        try:
            return self._specs[ToolName(name)]
        except (ValueError, KeyError) as exc:
            raise UnknownToolError(name) from exc

    def schemas(self) -> Mapping[str, ToolSchema]:
        """Describe every tool's planner-visible parameters."""
        schemas: Dict[str, ToolSchema] = {}
        for name, spec in self._specs.items():
            params: Dict[str, ParameterInfo] = {}
            for field_name, info in spec.input_model.model_fields.items():
                key = info.alias or field_name
                if key in INJECTED_KEYS:
                    continue
                params[key] = ParameterInfo(
                    type=_type_name(info.annotation),
                    required=info.is_required(),
                    description=info.description or "",
                )
            schemas[name.value] = {"description": spec.description, "parameters": params}
        return schemas


def _type_name(annotation: Any) -> str:
    name = getattr(annotation, "__name__", None)
    if name and not getattr(annotation, "__args__", None):
        return name
    return str(annotation).replace("typing.", "")


def build_tool_registry() -> ToolRegistry:
    """Build the registry holding every tool in :class:`ToolName`."""
    # pylint: disable=import-outside-toplevel
    from joi.tools.admin_tools import TOOLS as ADMIN_TOOLS
    from joi.tools.message_tools import TOOLS as MESSAGE_TOOLS
    from joi.tools.system_tools import TOOLS as SYSTEM_TOOLS
    from joi.tools.ticket_tools import TOOLS as TICKET_TOOLS
    from joi.tools.user_tools import TOOLS as USER_TOOLS

    specs: Dict[ToolName, ToolSpec] = {}
    for spec in (*TICKET_TOOLS, *USER_TOOLS, *MESSAGE_TOOLS, *SYSTEM_TOOLS, *ADMIN_TOOLS):
        if spec.name in specs:
            raise ValueError(f"Tool '{spec.name.value}' is already registered.")
        logger.debug("Registering tool '%s'", spec.name.value)
        specs[spec.name] = spec

    missing = set(ToolName) - set(specs)
    if missing:
        raise ValueError(f"Tools without a handler: {sorted(m.value for m in missing)}")
    return ToolRegistry(specs)
