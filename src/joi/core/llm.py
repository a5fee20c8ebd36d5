"""
Model client interface for Joi.

This module is the only place that *directly* calls an LLM.  The intent analyzer, tool planner and
response generator all go through :class:`BaseModelClient`; they differ only in their prompt
template and output parser, never in how they reach the model.

We support three back-ends out of the box:

1. **OpenAI / Anthropic** via their async SDKs (requires env keys).
2. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models.

Additional providers can be added by subclassing :class:`BaseModelClient` and registering via
:func:`register_model_client`.
"""

import asyncio
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    Type,
)

import httpx

from joi.config import (
    Settings,
    settings,
)
from joi.core.errors import (
    ModelCallError,
    ModelTimeoutError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_CLIENT_REGISTRY: dict[str, Type["BaseModelClient"]] = {}


def register_model_client(name: str) -> Callable:
    """Decorator to register a model client class under *name*."""

    def wrapper(cls: Type["BaseModelClient"]) -> Type["BaseModelClient"]:
        _CLIENT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_model_client(name: str | None = None, config: Settings | None = None) -> "BaseModelClient":
    """
    Factory that returns an instantiated model client.

    Fallback order:
    1. *name* arg
    2. ``settings.MODEL_PROVIDER`` env option
    """
    config = config or settings
    target = name or config.MODEL_PROVIDER
    cls = _CLIENT_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Model provider '{target}' is not registered.")
    return cls(config)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseModelClient(ABC):
    """Stateless chat-completion client: rendered prompt in, raw text out."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or settings

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send *prompt* as a single user turn and return the raw reply text."""


async def call_model(client: BaseModelClient, prompt: str, timeout: float) -> str:
    """
    Run one model call under *timeout*.

    Raises
    ------
    ModelTimeoutError
        If the call does not finish in time.
    ModelCallError
        If the provider fails or returns an empty reply.
    """
    try:
        content = await asyncio.wait_for(client.complete(prompt), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error("Model call timed out after %.1fs (%s)", timeout, type(client).__name__)
        raise ModelTimeoutError(f"Model call timed out after {timeout:.1f}s") from exc
    except ModelCallError:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Model call failed (%s): %s", type(client).__name__, exc)
        raise ModelCallError(f"Model call failed: {type(exc).__name__}") from exc

    if not content or not content.strip():
        logger.error("%s returned an empty response", type(client).__name__)
        raise ModelCallError("Empty response from model")
    return content


# ---------------------------------------------------------------------------
# Concrete clients
# ---------------------------------------------------------------------------
@register_model_client("tgi")
class TGIModelClient(BaseModelClient):
    """TGI-based client using httpx."""

    async def complete(self, prompt: str) -> str:
        payload = {
            "inputs": f"User: {prompt}\n\nAssistant:",
            "parameters": {
                "max_new_tokens": 1024,
                "temperature": max(self.config.MODEL_TEMPERATURE, 0.01),
                "stop": ["User:", "</s>"],
            },
        }
        async with httpx.AsyncClient(timeout=self.config.LLM_TIMEOUT_SECONDS) as client:
            resp = await client.post(self.config.TGI_ENDPOINT, json=payload)
            resp.raise_for_status()
            content = resp.json()["generated_text"]

        logger.debug("TGI response: %s", content)
        return content


@register_model_client("openai")
class OpenAIModelClient(BaseModelClient):
    """OpenAI chat-completions client."""

    def __init__(self, config: Settings | None = None) -> None:
        super().__init__(config)
        import openai  # pylint: disable=import-outside-toplevel

        self._client = openai.AsyncOpenAI(api_key=self.config.OPENAI_API_KEY)

    async def complete(self, prompt: str) -> str:
        resp = await self._client.chat.completions.create(
            model=self.config.OPENAI_MODEL,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.config.MODEL_TEMPERATURE,
        )
        content = resp.choices[0].message.content or ""
        logger.debug("OpenAI response: %s", content)
        return content


@register_model_client("anthropic")
class AnthropicModelClient(BaseModelClient):
    """Anthropic Claude client."""

    def __init__(self, config: Settings | None = None) -> None:
        super().__init__(config)
        import anthropic  # pylint: disable=import-outside-toplevel

        self._client = anthropic.AsyncAnthropic(api_key=self.config.ANTHROPIC_API_KEY)

    async def complete(self, prompt: str) -> str:
        response = await self._client.messages.create(
            model=self.config.ANTHROPIC_MODEL,
            max_tokens=4096,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.config.MODEL_TEMPERATURE,
        )

        # Only text blocks carry the reply
        content = "".join(block.text for block in response.content if block.type == "text")
        logger.debug("Anthropic response: %s", content)
        return content
