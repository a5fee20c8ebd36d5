"""
Pydantic models for Joi API requests and responses.
This module defines the request and response schemas used by the Joi API.
"""

from typing import (
    List,
    Optional,
)

from pydantic import Field

from joi.core.schema import (
    AgentState,
    CamelModel,
    ConversationMessage,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class AgentRequest(CamelModel):
    """Incoming query plus the whole visible conversation so far."""

    query: Optional[str] = Field(None, description="User message for Joi")
    history: List[ConversationMessage] = Field(
        default_factory=list, description="Earlier messages, oldest first"
    )


class AgentResponse(CamelModel):
    """API response returned to the caller."""

    response: str
    state: AgentState
