"""In-memory vector store used for development and tests."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredVector:
    """A stored vector and its cosine similarity to the query."""

    id: str
    similarity: float
    metadata: dict = field(default_factory=dict)


@dataclass(slots=True)
class _StoredItem:
    id: str
    embedding: np.ndarray
    metadata: dict


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against every row; zero vectors score 0."""

    vector = np.asarray(query, dtype=float)
    query_norm = np.linalg.norm(vector)
    row_norms = np.linalg.norm(matrix, axis=1)
    denominator = row_norms * query_norm
    dots = matrix @ vector
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denominator > 0, dots / denominator, 0.0)
    return np.clip(scores, -1.0, 1.0)


class MockVectorStore:
    """A minimal in-memory vector store with cosine similarity search."""

    backend = "memory"

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, _StoredItem]] = {}
        self._lock = threading.RLock()

    def create_collection(self, name: str, *, metadata: Optional[Dict[str, object]] = None) -> None:
        with self._lock:
            self._collections.setdefault(name, {})

    def upsert(
        self,
        name: str,
        *,
        ids: Iterable[str],
        embeddings: Iterable[Sequence[float]],
        metadatas: Iterable[dict | None] | None = None,
    ) -> None:
        id_list = list(ids)
        embedding_list = [np.asarray(embedding, dtype=float) for embedding in embeddings]
        metadata_list = list(metadatas) if metadatas is not None else [None] * len(id_list)
        if not (len(id_list) == len(embedding_list) == len(metadata_list)):
            raise ValueError("All inputs must be of the same length")

        with self._lock:
            collection = self._collections.setdefault(name, {})
            for item_id, embedding, metadata in zip(id_list, embedding_list, metadata_list):
                collection[item_id] = _StoredItem(
                    id=item_id, embedding=embedding, metadata=dict(metadata or {})
                )

    def delete(self, name: str, *, ids: Iterable[str]) -> None:
        with self._lock:
            collection = self._collections.get(name, {})
            for item_id in ids:
                collection.pop(item_id, None)

    def count(self, name: str) -> int:
        with self._lock:
            return len(self._collections.get(name, {}))

    def query(self, name: str, query_embedding: Sequence[float], k: int = 5) -> List[ScoredVector]:
        """Return the *k* most similar vectors, best first."""

        if k <= 0:
            return []
        with self._lock:
            items = list(self._collections.get(name, {}).values())
        if not items:
            return []

        dimension = len(query_embedding)
        comparable = [item for item in items if item.embedding.shape == (dimension,)]
        if len(comparable) != len(items):
            LOGGER.warning(
                "Skipping %s vectors whose dimension differs from the query (%s)",
                len(items) - len(comparable),
                dimension,
            )
        if not comparable:
            return []

        matrix = np.vstack([item.embedding for item in comparable])
        scores = cosine_similarities(query_embedding, matrix)
        ranked = sorted(zip(scores.tolist(), comparable), key=lambda pair: (-pair[0], pair[1].id))
        return [
            ScoredVector(id=item.id, similarity=float(score), metadata=dict(item.metadata))
            for score, item in ranked[:k]
        ]


__all__ = ["MockVectorStore", "ScoredVector", "cosine_similarities"]
