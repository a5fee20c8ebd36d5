"""
Schema definitions for analyzer <-> planner <-> orchestrator <-> tool messages.

These data models serve as the contract between the three LLM-backed components, the orchestration
pipeline, and individual tools.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.

Field names are snake_case in Python and camelCase on the wire (the shape the model is prompted
with and the shape API callers send), so every model accepts either spelling on input.
"""

from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Sequence,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
class ConversationMessage(CamelModel):
    """One message of the caller-supplied conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Intent analysis
# ---------------------------------------------------------------------------
class Intent(str, Enum):
    """Classified purpose of a user query."""

    SEARCH = "SEARCH"
    DETAILS = "DETAILS"
    SIMILAR = "SIMILAR"
    SYSTEM = "SYSTEM"
    GREETING = "GREETING"
    USER_QUERY = "USER_QUERY"
    ADMIN_ACTION = "ADMIN_ACTION"


class DateRange(CamelModel):
    """Inclusive time window; ``end`` open when omitted."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: Optional[datetime] = None

    @field_validator("start", "end")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Stored timestamps are aware; naive model output is taken as UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TimeRanges(CamelModel):
    model_config = ConfigDict(frozen=True)

    created: Optional[DateRange] = None
    updated: Optional[DateRange] = None


class PersonRef(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None


class IntentFilters(CamelModel):
    model_config = ConfigDict(frozen=True)

    priority: Optional[str] = None
    status: Optional[str] = None
    assignee: Optional[PersonRef] = None
    customer: Optional[PersonRef] = None


class MessageContextClarification(CamelModel):
    """Whether "the conversation" means this chat or a ticket's messages."""

    model_config = ConfigDict(frozen=True)

    type: Literal["chat", "ticket", "unclear"]
    reference_index: Optional[int] = None
    needs_clarification: bool = False
    clarification_question: Optional[str] = None

    @model_validator(mode="after")
    def _question_required(self) -> "MessageContextClarification":
        if self.needs_clarification and not (self.clarification_question or "").strip():
            raise ValueError("needsClarification is set but clarificationQuestion is empty")
        return self


class ActionRequest(CamelModel):
    """A create/update/delete/manage request extracted from the query."""

    model_config = ConfigDict(frozen=True)

    type: Literal["create", "update", "delete", "manage"]
    resource: Literal["organization", "user", "ticket", "settings"]
    parameters: Dict[str, Any] = Field(default_factory=dict)
    missing_fields: List[str] = Field(default_factory=list)
    needs_clarification: bool = False
    clarification_question: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _missing_fields_need_clarification(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        missing = data.get("missingFields", data.get("missing_fields"))
        if missing:
            data = {k: v for k, v in data.items() if k not in ("needs_clarification",)}
            data["needsClarification"] = True
        return data


class ParameterBlock(CamelModel):
    """Structured parameters extracted alongside the intent."""

    model_config = ConfigDict(frozen=True)

    time_ranges: Optional[TimeRanges] = None
    filters: Optional[IntentFilters] = None
    ticket_id: Optional[str] = None
    search_terms: List[str] = Field(default_factory=list)
    message_context: Optional[MessageContextClarification] = None
    action: Optional[ActionRequest] = None


class IntentAnalysis(CamelModel):
    """Output of the intent analyzer; read-only downstream."""

    model_config = ConfigDict(frozen=True)

    intent: Intent
    explanation: str = ""
    parameters: ParameterBlock = Field(default_factory=ParameterBlock)

    @field_validator("intent", mode="before")
    @classmethod
    def _normalize_intent(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def needs_clarification(self) -> bool:
        ctx = self.parameters.message_context
        return bool(ctx and ctx.needs_clarification)


# ---------------------------------------------------------------------------
# Planning / execution
# ---------------------------------------------------------------------------
class AgentAction(CamelModel):
    """A single planned tool invocation."""

    model_config = ConfigDict(frozen=True)

    tool: str = Field(..., min_length=1, description="Registered tool name")
    input: Dict[str, Any] = Field(default_factory=dict, description="Tool input, camelCase keys")
    reasoning: str = ""


class ToolPlan(CamelModel):
    """Ordered steps emitted by the planner (a bare JSON array is accepted too)."""

    model_config = ConfigDict(frozen=True)

    steps: List[AgentAction] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"steps": data}
        return data


class ToolResult(CamelModel):
    """Uniform envelope returned by every tool."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    missing_fields: List[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, kind: str = "internal", missing_fields: Sequence[str] = ()) -> "ToolResult":
        return cls(success=False, error=error, error_kind=kind, missing_fields=list(missing_fields))


class StepOutcome(CamelModel):
    """A planned step together with what happened when it ran."""

    step: AgentAction
    result: ToolResult


# ---------------------------------------------------------------------------
# Per-request state
# ---------------------------------------------------------------------------
class AgentStatus(str, Enum):
    """States of the request pipeline."""

    START = "START"
    INTENT_ANALYZED = "INTENT_ANALYZED"
    CLARIFICATION_EXIT = "CLARIFICATION_EXIT"
    CONTEXT_LOADING = "CONTEXT_LOADING"
    PLANNED = "PLANNED"
    EXECUTING = "EXECUTING"
    RESPONDING = "RESPONDING"
    DONE = "DONE"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({AgentStatus.CLARIFICATION_EXIT, AgentStatus.DONE, AgentStatus.FAILED})


class AgentContext(CamelModel):
    current_user: Optional[Dict[str, Any]] = None
    organization: Optional[Dict[str, Any]] = None
    parameters: Optional[ParameterBlock] = None
    system_info: Optional[Dict[str, Any]] = None
    conversation_history: List[ConversationMessage] = Field(default_factory=list)


class AgentState(CamelModel):
    """Scratch state for one ``process()`` call; never shared between requests."""

    query: str
    status: AgentStatus = AgentStatus.START
    transitions: List[AgentStatus] = Field(default_factory=lambda: [AgentStatus.START])
    context: AgentContext = Field(default_factory=AgentContext)
    intent: Optional[IntentAnalysis] = None
    plan: Optional[List[AgentAction]] = None
    result: Optional[List[StepOutcome]] = None
    failure: Optional[str] = None  # error class name, never shown to the user

    def advance(self, status: AgentStatus) -> None:
        self.status = status
        self.transitions.append(status)


class AgentReply(CamelModel):
    """What ``TicketAgent.process`` hands back to the caller."""

    response: str
    state: AgentState
