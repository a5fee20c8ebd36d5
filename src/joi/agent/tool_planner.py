"""Turns an analyzed query into an ordered list of tool calls with one model call."""

import logging
from typing import (
    List,
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
from joi.core.errors import PlanParseError
from joi.core.json_output import decode_model_output
from joi.core.llm import (
    BaseModelClient,
    call_model,
)
from joi.core.schema import (
    AgentAction,
    ConversationMessage,
    IntentAnalysis,
    ToolPlan,
)
from joi.tools import ToolRegistry

logger = logging.getLogger(__name__)

PLAN_TEMPLATE = compile_template(
    """\
Plan the tool calls needed to handle this support-desk request.

Chat History:
{{ history }}

Current Query: {{ query }}
Intent Analysis: {{ intent | tojson(None) }}

Tools available (you may ONLY use these names):
{% for name, schema in tools.items() %}
- {{ name }}({% for param, info in schema.parameters.items() %}{{ param }}{% if not info.required %}?{% endif %}: {{ info.type }}{% if not loop.last %}, {% endif %}{% endfor %}): {{ schema.description }}
{% endfor %}

Rules:
1. NEVER use placeholder, example or guessed values. Every id must come from the user or from
   an earlier step.
2. If any required information is missing, return an empty array: [].
3. The caller's role, id and organization are added to every call automatically. Do not add
   callerRole, callerId or organizationId yourself, and do not call getCurrentUserContext just
   to find them.
4. When a value has to be looked up first (for example a customer email where createTicket needs
   a customerId), put the lookup step BEFORE the step that needs it and reference its output with
   "$steps.<index>.<path>", where <index> is the 0-based position of the earlier step and <path>
   walks its result {"success", "data", "error"}. Example: "$steps.0.data.0.id" is the id of the
   first user found by step 0.
5. For SYSTEM or GREETING intents use getSystemInfo only.
6. Ticket searches: start with searchTickets. Use findSimilarMessages only for content matching.

Return ONLY a JSON array of steps:
[
  {"tool": "toolName", "input": {"param": "value"}, "reasoning": "why this step is needed"}
]

Example, "Create a high priority ticket 'Login fails' for bob@example.com: he cannot sign in":
[
  {"tool": "findUsers", "input": {"email": "bob@example.com"}, "reasoning": "Resolve the customer id"},
  {"tool": "createTicket", "input": {"title": "Login fails", "description": "He cannot sign in",
   "priority": "high", "customerId": "$steps.0.data.0.id"}, "reasoning": "Create the ticket"}
]
"""
)


class ToolPlanner:
    """``plan(query, history, intent) -> AgentAction[]``"""

    def __init__(
        self,
        client: BaseModelClient,
        registry: ToolRegistry,
        config: Settings | None = None,
    ) -> None:
        self.client = client
        self.registry = registry
        self.config = config or settings

    async def plan(
        self,
        query: str,
        history: Sequence[ConversationMessage],
        intent: IntentAnalysis,
    ) -> List[AgentAction]:
        """
        Ask the model for a plan.

        An empty list is a valid plan: it means required information is missing and the response
        generator should ask for it.

        Raises
        ------
        PlanParseError
            If the model's reply cannot be decoded into a list of steps.
        ModelCallError
            If the model call fails or times out.
        """
        prompt = PLAN_TEMPLATE.render(
            query=query,
            history=format_history(history),
            intent=intent,
            tools=self.registry.schemas(),
        )
        content = await call_model(self.client, prompt, self.config.LLM_TIMEOUT_SECONDS)
        plan = decode_model_output(content, ToolPlan, PlanParseError)
        logger.info("Planned %d step(s): %s", len(plan.steps), [step.tool for step in plan.steps])
        return list(plan.steps)
