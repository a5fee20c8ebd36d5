"""The assistant's fixed identity."""

from types import MappingProxyType
from typing import (
    Any,
    Dict,
)

from joi.tools import (
    ToolContext,
    ToolInput,
    ToolName,
    tool,
)

SYSTEM_INFO = MappingProxyType(
    {
        "name": "Joi",
        "role": "AI Support Assistant",
        "description": (
            "I help support teams and their customers find, understand and manage support tickets."
        ),
        "capabilities": (
            "Search and filter tickets",
            "Show ticket details and message history",
            "Create tickets for existing customers",
            "Look up users",
            "Find similar past conversations",
            "Update tickets, users and organization settings for authorized roles",
        ),
    }
)


@tool(ToolName.GET_SYSTEM_INFO, ToolInput)
async def get_system_info(ctx: ToolContext, payload: ToolInput) -> Dict[str, Any]:  # pylint: disable=unused-argument
    """Get information about the assistant itself: its name, role and capabilities."""
    info = dict(SYSTEM_INFO)
    info["capabilities"] = list(SYSTEM_INFO["capabilities"])
    return info


TOOLS = (get_system_info,)
