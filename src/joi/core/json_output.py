"""Cleanup and strict decoding of JSON returned by LLMs."""

import json
import logging
import re
from typing import (
    Type,
    TypeVar,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from joi.core.errors import JoiError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.+?)```", re.DOTALL)
_OPENERS = {"{": "}", "[": "]"}


def clean_llm_output(content: str) -> str:
    """
    Strip markdown code fences and surrounding prose from an LLM reply.

    Returns the outermost JSON object or array if one can be located, otherwise the trimmed text.
    """
    if "```" in content:
        match = _FENCE_RE.search(content)
        if match:
            content = match.group(1)
        else:
            content = content.replace("```json", "").replace("```", "")

    # Remove control characters except whitespace
    content = "".join(ch for ch in content if ch >= " " or ch in "\n\r\t").strip()

    start = next((i for i, ch in enumerate(content) if ch in _OPENERS), -1)
    if start < 0:
        return content

    # Walk to the matching closer, skipping over string literals
    stack: list[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(content)):
        ch = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif stack and ch == stack[-1]:
            stack.pop()
            if not stack:
                return content[start : i + 1]
    return content[start:]


def decode_model_output(content: str, model: Type[T], error_cls: Type[JoiError]) -> T:
    """
    Decode *content* into *model* or raise *error_cls*.

    Invalid JSON and schema violations are both treated as failures; a partially valid object is
    never returned.  The raw text is logged at DEBUG and never placed in the exception message.
    """
    cleaned = clean_llm_output(content or "")
    logger.debug("Cleaned %s output: %s", model.__name__, cleaned)
    if not cleaned:
        raise error_cls(f"Empty output where {model.__name__} was expected")

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Model output for %s is not valid JSON: %s", model.__name__, exc)
        logger.debug("Raw output was: %r", content)
        raise error_cls(f"Output is not valid JSON ({exc.msg})") from exc

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.error(
            "Model output failed %s validation with %d error(s)", model.__name__, exc.error_count()
        )
        logger.debug("Validation errors: %s", exc.errors())
        raise error_cls(f"Output does not match the {model.__name__} schema") from exc
