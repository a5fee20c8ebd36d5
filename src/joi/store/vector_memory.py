"""
Vector indexes over ticket-message embeddings.

Each ticket message is stored as one vector keyed by its message id.  Similarity is cosine
similarity in ``[-1, 1]``; callers pass an explicit threshold and result cap on every query.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    List,
    Sequence,
    Tuple,
)

import numpy as np

logger = logging.getLogger(__name__)


class MessageIndex(ABC):
    """Maps message ids to embeddings and answers nearest-neighbour queries."""

    @abstractmethod
    def add(self, message_id: str, embedding: Sequence[float], text: str = "") -> None:
        """Add or upsert a single message vector."""

    @abstractmethod
    def match(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[Tuple[str, float]]:
        """Return ``(message_id, similarity)`` pairs, best first, all >= *threshold*."""

    @abstractmethod
    def count(self) -> int:
        """Return number of indexed messages."""


class NumpyMessageIndex(MessageIndex):
    """Brute-force cosine index held in process memory."""

    def __init__(self) -> None:
        self._ids: List[str] = []
        self._vectors: List[np.ndarray] = []

    def add(self, message_id: str, embedding: Sequence[float], text: str = "") -> None:
        vector = _normalize(embedding)
        if self._vectors and vector.shape != self._vectors[0].shape:
            raise ValueError(
                f"Embedding has {vector.shape[0]} dimensions, index expects "
                f"{self._vectors[0].shape[0]}"
            )
        if message_id in self._ids:
            self._vectors[self._ids.index(message_id)] = vector
            return
        self._ids.append(message_id)
        self._vectors.append(vector)

    def match(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[Tuple[str, float]]:
        if not self._vectors or limit <= 0:
            return []
        query = _normalize(embedding)
        scores = np.stack(self._vectors) @ query
        order = np.argsort(-scores)
        return [
            (self._ids[i], float(scores[i])) for i in order[:limit] if scores[i] >= threshold
        ]

    def count(self) -> int:
        return len(self._ids)


class ChromaMessageIndex(MessageIndex):
    """
    Chroma wrapper for storing & querying message vectors.

    The collection uses cosine space, so ``similarity = 1 - distance``.
    """

    def __init__(
        self,
        collection_name: str = "joi_messages",
        host: str = "chroma",  # service name in docker-compose
        port: int = 8000,
    ):
        import chromadb  # pylint: disable=import-outside-toplevel

        self._client = chromadb.HttpClient(host=host, port=port)
        self._col = self._client.get_or_create_collection(
            name=collection_name, metadata={"hnsw:space": "cosine"}
        )

    def add(self, message_id: str, embedding: Sequence[float], text: str = "") -> None:
        self._col.upsert(
            ids=[message_id],
            embeddings=[list(embedding)],
            documents=[text],
        )

    def match(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[Tuple[str, float]]:
        if limit <= 0 or self._col.count() == 0:
            return []
        res = self._col.query(
            query_embeddings=[list(embedding)],
            n_results=limit,
            include=["distances"],
        )
        logger.debug("Chroma message query results: %s", res)
        ids = (res.get("ids") or [[]])[0]
        distances = (res.get("distances") or [[]])[0]
        pairs = [(mid, 1.0 - float(dist)) for mid, dist in zip(ids, distances)]
        return [(mid, sim) for mid, sim in pairs if sim >= threshold]

    def count(self) -> int:
        return self._col.count()


def _normalize(embedding: Sequence[float]) -> np.ndarray:
    vector = np.asarray(embedding, dtype=np.float32)
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm
