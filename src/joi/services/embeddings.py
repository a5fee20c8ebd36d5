"""
Embedding service collaborators: text in, fixed-length float vector out.

Two providers are available, selected with ``settings.EMBEDDER``:

* ``openai`` - OpenAI embeddings API (``text-embedding-3-small`` by default).
* ``local``  - a sentence-transformers model loaded through Chroma's embedding functions.
"""

import asyncio
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    List,
    Type,
)

from joi.config import (
    Settings,
    settings,
)

logger = logging.getLogger(__name__)

_EMBEDDER_REGISTRY: dict[str, Type["EmbeddingService"]] = {}


def register_embedder(name: str) -> Callable:
    """Decorator to register an embedding service class under *name*."""

    def wrapper(cls: Type["EmbeddingService"]) -> Type["EmbeddingService"]:
        _EMBEDDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_embedding_service(name: str | None = None, config: Settings | None = None) -> "EmbeddingService":
    """Instantiate the embedding service named *name* (default ``settings.EMBEDDER``)."""
    config = config or settings
    target = name or config.EMBEDDER
    cls = _EMBEDDER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Embedder '{target}' is not registered.")
    return cls(config)


class EmbeddingService(ABC):
    """Turns text into a vector of fixed length."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or settings

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding of *text*."""


@register_embedder("openai")
class OpenAIEmbeddingService(EmbeddingService):
    """OpenAI embeddings API."""

    def __init__(self, config: Settings | None = None) -> None:
        super().__init__(config)
        import openai  # pylint: disable=import-outside-toplevel

        self._client = openai.AsyncOpenAI(api_key=self.config.OPENAI_API_KEY)

    async def embed(self, text: str) -> List[float]:
        response = await self._client.embeddings.create(
            model=self.config.OPENAI_EMBED_MODEL,
            input=text,
        )
        return list(response.data[0].embedding)


@register_embedder("local")
class LocalEmbeddingService(EmbeddingService):
    """Sentence-transformers model via Chroma's embedding function (CPU friendly)."""

    def __init__(self, config: Settings | None = None) -> None:
        super().__init__(config)
        from chromadb.utils import (  # pylint: disable=import-outside-toplevel
            embedding_functions,
        )

        self._embed_fn = embedding_functions.SentenceTransformerEmbeddingFunction(
            model_name=self.config.LOCAL_EMBED_MODEL
        )

    async def embed(self, text: str) -> List[float]:
        # The model runs synchronously; keep it off the event loop
        vectors = await asyncio.to_thread(self._embed_fn, [text])
        return [float(x) for x in vectors[0]]
