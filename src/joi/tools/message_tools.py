"""Semantic search over ticket messages."""

import logging
from typing import (
    Any,
    Dict,
    List,
)

from pydantic import (
    AliasChoices,
    Field,
)

from joi.core.errors import InputValidationError
from joi.store.models import UserRole
from joi.tools import (
    ToolContext,
    ToolInput,
    ToolName,
    tool,
)

logger = logging.getLogger(__name__)


class FindSimilarMessagesInput(ToolInput):
    text: str = Field(
        "",
        validation_alias=AliasChoices("text", "message", "query"),
        description="Text to compare against existing ticket messages",
    )


@tool(ToolName.FIND_SIMILAR_MESSAGES, FindSimilarMessagesInput)
async def find_similar_messages(ctx: ToolContext, payload: FindSimilarMessagesInput) -> List[Dict[str, Any]]:
    """Find ticket messages that are semantically similar to the given text."""
    text = payload.text.strip()
    if not text:
        raise InputValidationError("Please provide the text to compare against.")

    caller = await ctx.caller(payload)
    vector = await ctx.embedder.embed(text)
    matches = await ctx.store.match_messages(
        vector,
        ctx.config.SIMILARITY_THRESHOLD,
        ctx.config.SIMILARITY_MATCH_COUNT,
    )

    results = []
    for match in matches:
        ticket = await ctx.store.get_ticket(match.message.ticket_id)
        if ticket is None:
            continue
        if caller.role == UserRole.CUSTOMER and ticket.customer_id != caller.user_id:
            continue
        if caller.organization_id and ticket.organization_id not in (None, caller.organization_id):
            continue
        results.append(
            {
                "messageId": match.message.id,
                "ticketId": ticket.id,
                "ticketTitle": ticket.title,
                "content": match.message.content,
                "similarity": round(match.similarity, 4),
            }
        )
    logger.info("findSimilarMessages returned %d of %d match(es)", len(results), len(matches))
    return results


TOOLS = (find_similar_messages,)
