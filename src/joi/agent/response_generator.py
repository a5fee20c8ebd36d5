"""
Narrates the outcome of a request in the assistant's own voice.

The generator never calls tools.  Before calling the model it classifies what happened into a
:class:`Situation` so the prompt can carry guidance that fits: a numbered list of missing fields,
the role a permission check required, a confirmation of what changed, and so on.
"""

import logging
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
)

from joi.agent.prompting import (
    compile_template,
    format_history,
)
from joi.config import (
    Settings,
    settings,
)
from joi.core.llm import (
    BaseModelClient,
    call_model,
)
from joi.core.schema import (
    AgentContext,
    ConversationMessage,
    IntentAnalysis,
    StepOutcome,
    ToolResult,
)
from joi.tools.system_tools import SYSTEM_INFO

logger = logging.getLogger(__name__)


class Situation(str, Enum):
    MISSING_FIELDS = "MISSING_FIELDS"
    LOOKUP_REQUIRED = "LOOKUP_REQUIRED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    TOOL_ERROR = "TOOL_ERROR"
    COMPLETED = "COMPLETED"
    ANSWER = "ANSWER"


# Human wording for fields the analyzer may list as missing
FIELD_LABELS: Dict[str, str] = {
    "title": "A title for the ticket",
    "description": "A description of the issue or request",
    "customerId": "The customer the ticket is for (their customer ID or email address)",
    "ticketId": "The ID of the ticket",
    "updates": "What should be changed, with the new values",
    "email": "The user's email address",
    "firstName": "The user's first name",
    "userId": "The ID of the user",
    "organizationId": "The organization",
}

OPTIONAL_FIELDS: Dict[tuple, List[str]] = {
    ("create", "ticket"): [
        "Priority level (optional: low, medium, high, urgent)",
        "Who the ticket should be assigned to (optional)",
    ],
}

# Tool -> the (action, resource) it performs, for tools that report missing fields
TOOL_ACTIONS: Dict[str, tuple] = {
    "createTicket": ("create", "ticket"),
    "updateTicket": ("update", "ticket"),
    "manageUsers": ("manage", "user"),
    "updateOrganization": ("update", "organization"),
}

_FAILURE_ORDER = (
    ("permission", Situation.PERMISSION_DENIED),
    ("unresolved_reference", Situation.LOOKUP_REQUIRED),
    ("validation", Situation.MISSING_FIELDS),
    ("not_found", Situation.NOT_FOUND),
)


def classify(intent: Optional[IntentAnalysis], results: Sequence[StepOutcome]) -> Situation:
    """Pick the one situation the reply should address, most actionable first."""
    action = intent.parameters.action if intent else None
    if action is not None and action.missing_fields:
        return Situation.MISSING_FIELDS

    failures = [o.result for o in results if not o.result.success]
    for kind, situation in _FAILURE_ORDER:
        for failure in failures:
            if failure.error_kind != kind:
                continue
            if kind == "validation" and not _reports_missing_fields(failure):
                continue
            return situation
    if failures:
        return Situation.TOOL_ERROR

    if action is not None and results:
        return Situation.COMPLETED
    return Situation.ANSWER


def _reports_missing_fields(result: ToolResult) -> bool:
    return bool(result.missing_fields) or "missing required field" in (result.error or "").lower()


def missing_field_labels(
    intent: Optional[IntentAnalysis], results: Sequence[StepOutcome] = ()
) -> List[str]:
    """
    Each missing field once: first those the analyzer listed, then those failed tools reported.
    """
    action = intent.parameters.action if intent else None
    fields = list(action.missing_fields) if action is not None else []
    for outcome in results:
        if not outcome.result.success:
            fields.extend(outcome.result.missing_fields)

    labels: List[str] = []
    for field in fields:
        label = FIELD_LABELS.get(field, field)
        if label not in labels:
            labels.append(label)
    return labels


def optional_field_labels(
    intent: Optional[IntentAnalysis], results: Sequence[StepOutcome] = ()
) -> List[str]:
    action = intent.parameters.action if intent else None
    if action is not None:
        return OPTIONAL_FIELDS.get((action.type, action.resource), [])
    for outcome in results:
        if not outcome.result.success and outcome.result.missing_fields:
            key = TOOL_ACTIONS.get(outcome.step.tool)
            if key in OPTIONAL_FIELDS:
                return OPTIONAL_FIELDS[key]
    return []


GUIDANCE = {
    Situation.MISSING_FIELDS: (
        'Start with "I\'ll help you with that". Ask for exactly the items listed under Missing '
        "information, as a numbered list in that order, each item once. Then mention the optional "
        "items, if any. Do not claim that anything was done."
    ),
    Situation.LOOKUP_REQUIRED: (
        "An earlier lookup did not produce the identifier a later step needed, so the action was "
        "not carried out. Explain which information is needed and offer alternative ways to "
        "identify the record (for example the ID directly, or the person's full name)."
    ),
    Situation.PERMISSION_DENIED: (
        "The action was refused by a permission check. Say so plainly, name the role that is "
        "required exactly as given in the error, and suggest asking someone with that role."
    ),
    Situation.NOT_FOUND: (
        "Something the user referred to does not exist. Repeat the error's wording about what "
        "was not found (for example which email had no user) and suggest how to check it. Do not "
        "call it a system error."
    ),
    Situation.TOOL_ERROR: (
        "A step failed. Explain what went wrong in plain words using the error text and suggest "
        "an alternative. Never mention internal ids, stack traces or tool names."
    ),
    Situation.COMPLETED: (
        "The requested action was carried out. Confirm concretely what was created or changed, "
        "with its key details."
    ),
    Situation.ANSWER: (
        "Answer the query directly from the results and context. For questions about yourself, "
        'introduce yourself using the identity block; for capability questions start with "I can '
        'help you with" and list the capabilities.'
    ),
}

RESPONSE_TEMPLATE = compile_template(
    """\
You are {{ identity.name }}, {{ identity.role }}. {{ identity.description }}
Always answer in the first person, warmly and directly. Use markdown where it helps.
Only state facts that appear in the results or context below; never invent data.

Chat History:
{{ history }}

Current Query: {{ query }}
Intent: {{ intent }}

Situation: {{ situation }}
{{ guidance }}
{% if missing %}

Missing information:
{% for label in missing %}
{{ loop.index }}. {{ label }}
{% endfor %}
{% endif %}
{% if optional %}

Optional information:
{% for label in optional %}
- {{ label }}
{% endfor %}
{% endif %}

Results:
{{ results | tojson }}

Context:
{{ context | tojson }}

Response:"""
)


class ResponseGenerator:
    """``generate(query, history, intent, results, context) -> text``"""

    def __init__(self, client: BaseModelClient, config: Settings | None = None) -> None:
        self.client = client
        self.config = config or settings

    def build_prompt(
        self,
        query: str,
        history: Sequence[ConversationMessage],
        intent: Optional[IntentAnalysis],
        results: Sequence[StepOutcome],
        context: Optional[AgentContext] = None,
    ) -> str:
        situation = classify(intent, results)
        logger.debug("Response situation: %s", situation.value)
        return RESPONSE_TEMPLATE.render(
            identity=SYSTEM_INFO,
            history=format_history(history),
            query=query,
            intent=intent.intent.value if intent else "UNKNOWN",
            situation=situation.value,
            guidance=GUIDANCE[situation],
            missing=missing_field_labels(intent, results) if situation == Situation.MISSING_FIELDS else [],
            optional=optional_field_labels(intent, results) if situation == Situation.MISSING_FIELDS else [],
            results=[_result_view(o) for o in results],
            context=_context_view(context),
        )

    async def generate(
        self,
        query: str,
        history: Sequence[ConversationMessage],
        intent: Optional[IntentAnalysis],
        results: Sequence[StepOutcome],
        context: Optional[AgentContext] = None,
    ) -> str:
        """
        Produce the reply text.

        Raises
        ------
        ModelCallError
            If the model call fails or times out.
        """
        prompt = self.build_prompt(query, history, intent, results, context)
        content = await call_model(self.client, prompt, self.config.LLM_TIMEOUT_SECONDS)
        return content.strip()


def _result_view(outcome: StepOutcome) -> Dict[str, Any]:
    view: Dict[str, Any] = {"tool": outcome.step.tool, "success": outcome.result.success}
    if outcome.result.success:
        view["data"] = outcome.result.data
    else:
        view["error"] = outcome.result.error
        view["errorKind"] = outcome.result.error_kind
        if outcome.result.missing_fields:
            view["missingFields"] = outcome.result.missing_fields
    return view


def _context_view(context: Optional[AgentContext]) -> Dict[str, Any]:
    if context is None:
        return {}
    return context.model_dump(
        mode="json",
        by_alias=True,
        exclude_none=True,
        exclude={"conversation_history", "parameters"},
    )
