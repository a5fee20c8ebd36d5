"""Classifies a query and extracts its parameters with one model call."""

import logging
from typing import Sequence

from joi.agent.prompting import (
    compile_template,
    format_history,
)
from joi.config import (
    Settings,
    settings,
)
from joi.core.errors import IntentParseError
from joi.core.json_output import decode_model_output
from joi.core.llm import (
    BaseModelClient,
    call_model,
)
from joi.core.schema import (
    ConversationMessage,
    IntentAnalysis,
)

logger = logging.getLogger(__name__)

INTENT_TEMPLATE = compile_template(
    """\
Analyze the user's query for a support-ticket assistant and extract the relevant information.

Chat History:
{{ history }}

Current Query: {{ query }}

Strict rules:
1. NEVER invent identifiers (ticket ids, user ids, organization ids).
2. NEVER use placeholder or example data.
3. When information is missing or unclear, set needsClarification instead of guessing.
4. A value that a lookup can resolve is not missing. A customer email given for a ticket is
   enough to find the customer id: put it in action.parameters (e.g. "customerEmail") and do NOT
   list customerId in missingFields.

Required information by action:
- Creating a ticket: title, description, and a customer identifier (id or email).
  Priority and assignee are optional.
- Updating a ticket: ticketId and the fields to change with their new values.
- Finding users: at least one of email, name or role.

If ANY required information is missing, list ALL of it in action.missingFields and write one
clarificationQuestion that asks for every missing item.

When the query mentions "the conversation", "the chat" or "the messages", decide whether it
means this chat (the history above) or the messages of a support ticket:
- this chat: messageContext.type = "chat"
- a ticket: messageContext.type = "ticket"
- cannot tell: messageContext.type = "unclear", needsClarification = true, and a
  clarificationQuestion asking whether they mean our current chat or a ticket's messages.

Return ONLY a JSON object:
{
  "intent": "SEARCH" | "DETAILS" | "SIMILAR" | "SYSTEM" | "GREETING" | "USER_QUERY" | "ADMIN_ACTION",
  "explanation": "one-line reason for the classification",
  "parameters": {
    "timeRanges": {"created": {"start": "ISO date", "end": "ISO date"}, "updated": {...}},
    "filters": {
      "priority": "low" | "medium" | "high" | "urgent",
      "status": "open" | "in_progress" | "resolved" | "closed",
      "assignee": {"id": "...", "name": "..."},
      "customer": {"id": "...", "name": "..."}
    },
    "ticketId": "only if the user gave one",
    "searchTerms": ["..."],
    "messageContext": {
      "type": "chat" | "ticket" | "unclear",
      "referenceIndex": null,
      "needsClarification": false,
      "clarificationQuestion": null
    },
    "action": {
      "type": "create" | "update" | "delete" | "manage",
      "resource": "organization" | "user" | "ticket" | "settings",
      "parameters": {},
      "missingFields": [],
      "needsClarification": false,
      "clarificationQuestion": null
    }
  }
}
Omit any member of "parameters" that does not apply.

Examples:
- "Create a ticket" -> intent ADMIN_ACTION, action {"type": "create", "resource": "ticket",
  "parameters": {}, "missingFields": ["title", "description", "customerId"], "needsClarification": true,
  "clarificationQuestion": "..."}
- "What can you do?" -> intent SYSTEM, no action
- "Show me all urgent tickets" -> intent SEARCH, filters {"priority": "urgent"}
- "Find user bob@example.com" -> intent USER_QUERY, no action
"""
)


class IntentAnalyzer:
    """``analyze(query, history) -> IntentAnalysis``"""

    def __init__(self, client: BaseModelClient, config: Settings | None = None) -> None:
        self.client = client
        self.config = config or settings

    async def analyze(self, query: str, history: Sequence[ConversationMessage] = ()) -> IntentAnalysis:
        """
        Classify *query* in the light of *history*.

        Raises
        ------
        IntentParseError
            If the model's reply cannot be decoded into an :class:`IntentAnalysis`.
        ModelCallError
            If the model call fails or times out.
        """
        prompt = INTENT_TEMPLATE.render(query=query, history=format_history(history))
        content = await call_model(self.client, prompt, self.config.LLM_TIMEOUT_SECONDS)
        analysis = decode_model_output(content, IntentAnalysis, IntentParseError)
        logger.info("Intent analyzed: %s (%s)", analysis.intent.value, analysis.explanation)
        return analysis
