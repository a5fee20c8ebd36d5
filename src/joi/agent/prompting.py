"""Prompt rendering shared by the intent analyzer, tool planner and response generator."""

import json
from typing import (
    Any,
    Sequence,
)

from jinja2 import (
    Environment,
    StrictUndefined,
    Template,
)

from joi.core.schema import ConversationMessage


def to_json(value: Any, indent: int | None = 2) -> str:
    """Serialize *value* for inclusion in a prompt; pydantic models are dumped with camelCase keys."""
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    elif isinstance(value, (list, tuple)):
        value = [
            v.model_dump(mode="json", by_alias=True, exclude_none=True) if hasattr(v, "model_dump") else v
            for v in value
        ]
    return json.dumps(value, indent=indent, default=str, ensure_ascii=False)


def format_history(history: Sequence[ConversationMessage]) -> str:
    """Number the messages from 1 so the model can refer back to them."""
    if not history:
        return "(no previous messages)"
    return "\n".join(f"[{i}] {msg.role}: {msg.content}" for i, msg in enumerate(history, start=1))


_ENV = Environment(
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
    autoescape=False,
)
_ENV.filters["tojson"] = to_json


def compile_template(source: str) -> Template:
    """Compile *source* once at import time; a missing variable fails at render, never silently."""
    return _ENV.from_string(source)
