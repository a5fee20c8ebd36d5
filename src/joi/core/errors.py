"""
Error taxonomy for the Joi agent.

Two families live here:

* **Fatal** errors (parse failures, model-call failures, timeouts, unknown tools) abort the request.
  The orchestrator turns them into a fixed apology; their messages never reach the user.
* **Tool** errors (:class:`ToolError` subclasses) are raised inside a tool and converted by the
  executor into a failed ``ToolResult``.  Their messages *are* shown to the user through the
  response generator, so they must never contain stack traces or raw model output.
"""

from typing import (
    Sequence,
    Tuple,
)


class JoiError(Exception):
    """Base class for every error raised by the agent."""


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------
class IntentParseError(JoiError):
    """The intent analyzer's output could not be decoded into an ``IntentAnalysis``."""


class PlanParseError(JoiError):
    """The tool planner's output could not be decoded into a list of steps."""


class UnknownToolError(JoiError):
    """A plan referenced a tool name that is not in the registry."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class ModelCallError(JoiError):
    """The model provider failed or returned nothing."""


class ModelTimeoutError(ModelCallError):
    """A model call exceeded ``LLM_TIMEOUT_SECONDS``."""


class ToolTimeoutError(JoiError):
    """A tool call exceeded ``TOOL_TIMEOUT_SECONDS``."""

    def __init__(self, tool_name: str, timeout: float) -> None:
        self.tool_name = tool_name
        self.timeout = timeout
        super().__init__(f"Tool '{tool_name}' timed out after {timeout:.1f}s")


# ---------------------------------------------------------------------------
# Tool-level errors (recoverable, narrated to the user)
# ---------------------------------------------------------------------------
class ToolError(JoiError):
    """Base class for errors a tool reports through its result envelope."""

    kind = "internal"
    missing_fields: Tuple[str, ...] = ()

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InputValidationError(ToolError):
    """A tool's input contract was violated (missing field, bad enum value, ...)."""

    kind = "validation"

    def __init__(self, message: str, missing_fields: Sequence[str] = ()) -> None:
        # Wire names of the required fields that were absent, in the order they were checked
        self.missing_fields = tuple(missing_fields)
        super().__init__(message)


class PermissionDeniedError(ToolError):
    """The caller's role or ownership does not allow the requested operation."""

    kind = "permission"

    def __init__(self, message: str, required_role: str | None = None) -> None:
        self.required_role = required_role
        super().__init__(message)


class NotFoundError(ToolError):
    """A referenced entity does not resolve."""

    kind = "not_found"


class UnresolvedReferenceError(ToolError):
    """A step referenced the output of an earlier step that failed or lacks the value."""

    kind = "unresolved_reference"
