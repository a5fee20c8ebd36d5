"""Dispatches planned steps to the tool registry and wraps every outcome in a ``ToolResult``."""

import asyncio
import logging
import re
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from pydantic import ValidationError

from joi.config import (
    Settings,
    settings,
)
from joi.core.errors import (
    PermissionDeniedError,
    ToolError,
    ToolTimeoutError,
    UnresolvedReferenceError,
)
from joi.core.schema import (
    AgentAction,
    StepOutcome,
    ToolResult,
)
from joi.services.embeddings import EmbeddingService
from joi.services.identity import IdentityProvider
from joi.store.base import DataStore
from joi.tools import (
    ToolContext,
    ToolRegistry,
    ToolSpec,
)

logger = logging.getLogger(__name__)

_REFERENCE_RE = re.compile(r"^\$steps\.(\d+)(?:\.(.+))?$")


def _field_path(error: Dict[str, Any]) -> str:
    return ".".join(str(part) for part in error["loc"]) or "input"


def missing_fields_of(exc: ValidationError) -> List[str]:
    """Wire names of the required fields a pydantic error reports as absent."""
    return [_field_path(error) for error in exc.errors() if error["type"] == "missing"]


def describe_validation_error(tool_name: str, exc: ValidationError) -> str:
    """Turn a pydantic error into one user-facing sentence, listing every missing field at once."""
    missing = missing_fields_of(exc)
    invalid = [f"{_field_path(error)} ({error['msg']})" for error in exc.errors() if error["type"] != "missing"]
    parts = []
    if missing:
        parts.append(
            f"Missing required fields: {', '.join(missing)}. "
            "Please provide the actual information for each field."
        )
    if invalid:
        parts.append(f"Invalid values for {tool_name}: {'; '.join(invalid)}.")
    return " ".join(parts)


def resolve_references(value: Any, outcomes: Sequence[StepOutcome]) -> Any:
    """
    Replace ``"$steps.<index>.<path>"`` strings in *value* with data from earlier outcomes.

    ``<path>`` walks the referenced step's result envelope (``success``, ``data``, ``error``) by
    dict key or list index, e.g. ``"$steps.0.data.0.id"``.

    Raises
    ------
    UnresolvedReferenceError
        If the index points at a step that has not run, that step failed, or the path is absent.
    """
    if isinstance(value, dict):
        return {key: resolve_references(item, outcomes) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_references(item, outcomes) for item in value]
    if not isinstance(value, str):
        return value

    match = _REFERENCE_RE.match(value.strip())
    if match is None:
        return value

    index = int(match.group(1))
    if index >= len(outcomes):
        raise UnresolvedReferenceError(f"Step {index} has not run yet, so its result can't be used.")
    result = outcomes[index].result
    if not result.success:
        raise UnresolvedReferenceError(
            f"Step {index} ({outcomes[index].step.tool}) did not succeed, so its result can't be used."
        )

    path = match.group(2)
    current: Any = result.model_dump(by_alias=True)
    for part in path.split(".") if path else []:
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            raise UnresolvedReferenceError(
                f"The result of step {index} ({outcomes[index].step.tool}) has no value at '{path}'."
            )
    return current


class ToolExecutor:
    """
    Runs tools on behalf of one caller.

    This is the only place caller context is added to tool input: every call receives
    ``callerRole``, ``callerId`` and ``organizationId`` taken from the identity collaborator,
    overriding anything the planner wrote under those keys.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        store: DataStore,
        embedder: EmbeddingService,
        config: Settings | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.embedder = embedder
        self.config = config or settings

    def validate_plan(self, steps: Sequence[AgentAction]) -> List[ToolSpec]:
        """
        Resolve every step's tool before anything runs.

        Raises
        ------
        UnknownToolError
            If any step names a tool that is not registered.
        """
        return [self.registry.resolve(step.tool) for step in steps]

    async def run_plan(self, steps: Sequence[AgentAction], identity: IdentityProvider) -> List[StepOutcome]:
        """Run *steps* strictly in order; a failed step does not stop the ones after it."""
        self.validate_plan(steps)
        outcomes: List[StepOutcome] = []
        for step in steps:
            result = await self.execute(step, identity, outcomes)
            outcomes.append(StepOutcome(step=step, result=result))
        return outcomes

    async def execute(
        self,
        step: AgentAction,
        identity: IdentityProvider,
        outcomes: Sequence[StepOutcome] = (),
    ) -> ToolResult:
        """
        Run a single step and return its envelope.

        Parameters
        ----------
        step:
            The planned invocation.
        identity:
            Identity collaborator for the current request.
        outcomes:
            Outcomes of the steps before this one, used to resolve step references.

        Raises
        ------
        UnknownToolError
            If the tool is not registered.
        ToolTimeoutError
            If the tool runs longer than ``TOOL_TIMEOUT_SECONDS``.
        """
        spec = self.registry.resolve(step.tool)
        injected = await self._caller_context(identity)
        caller_role = injected["callerRole"]

        try:
            raw_input = resolve_references(step.input, outcomes)
        except UnresolvedReferenceError as exc:
            logger.warning(
                "Tool '%s' skipped: %s (input keys=%s, caller role=%s)",
                step.tool,
                exc.message,
                sorted(step.input),
                caller_role,
            )
            return ToolResult.fail(exc.message, exc.kind)

        raw_input = {**raw_input, **injected}
        input_keys = sorted(k for k in raw_input if k not in injected)

        try:
            payload = spec.input_model.model_validate(raw_input)
        except ValidationError as exc:
            logger.warning(
                "Tool '%s' rejected its input (input keys=%s, caller role=%s)",
                step.tool,
                input_keys,
                caller_role,
            )
            return ToolResult.fail(
                describe_validation_error(step.tool, exc), "validation", missing_fields_of(exc)
            )

        ctx = ToolContext(store=self.store, embedder=self.embedder, identity=identity, config=self.config)
        timeout = self.config.TOOL_TIMEOUT_SECONDS
        logger.info("Executing tool '%s' (input keys=%s, caller role=%s)", step.tool, input_keys, caller_role)

        try:
            data = await asyncio.wait_for(spec.handler(ctx, payload), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Tool '%s' timed out after %.1fs (input keys=%s, caller role=%s)",
                step.tool,
                timeout,
                input_keys,
                caller_role,
            )
            raise ToolTimeoutError(step.tool, timeout) from exc
        except ToolError as exc:
            logger.warning(
                "Tool '%s' failed with %s: %s (input keys=%s, caller role=%s)",
                step.tool,
                exc.kind,
                exc.message,
                input_keys,
                caller_role,
            )
            return ToolResult.fail(exc.message, exc.kind, exc.missing_fields)
        except ValidationError as exc:
            logger.warning(
                "Tool '%s' rejected nested input (input keys=%s, caller role=%s)",
                step.tool,
                input_keys,
                caller_role,
            )
            return ToolResult.fail(
                describe_validation_error(step.tool, exc), "validation", missing_fields_of(exc)
            )
        except Exception:  # pylint: disable=broad-except
            logger.exception(
                "Unhandled error in tool '%s' (input keys=%s, caller role=%s)",
                step.tool,
                input_keys,
                caller_role,
            )
            return ToolResult.fail(f"Something went wrong while running {step.tool}.", "internal")

        return ToolResult.ok(data)

    @staticmethod
    async def _caller_context(identity: IdentityProvider) -> Dict[str, Any]:
        try:
            caller = await identity.current_caller()
        except PermissionDeniedError:
            return {"callerRole": None, "callerId": None, "organizationId": None}
        return {
            "callerRole": caller.role.value,
            "callerId": caller.user_id,
            "organizationId": caller.organization_id,
        }
