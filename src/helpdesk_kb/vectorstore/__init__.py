"""Similarity search over knowledge-base entry embeddings."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Protocol, Sequence

from ..config import get_settings
from ..telemetry import emit_vectorstore_event
from .errors import VectorStoreUnavailableError
from .mock_store import MockVectorStore, ScoredVector, cosine_similarities

DEFAULT_COLLECTION_NAME = "knowledge_base"


@dataclass(frozen=True, slots=True)
class VectorMatch:
    id: str
    similarity: float


class VectorBackend(Protocol):
    backend: str

    def create_collection(self, name: str, *, metadata: Optional[dict] = None) -> object: ...

    def upsert(self, name: str, *, ids, embeddings, metadatas=None) -> None: ...

    def delete(self, name: str, *, ids) -> None: ...

    def count(self, name: str) -> int: ...

    def query(self, name: str, query_embedding: Sequence[float], k: int = 5) -> List[ScoredVector]: ...


def select_above_threshold(
    scored: Iterable[tuple[str, float]], threshold: float, limit: int
) -> List[VectorMatch]:
    """Keep scores ``>= threshold``, best first, at most ``limit`` of them."""

    if limit <= 0:
        return []
    kept = [VectorMatch(id=item_id, similarity=float(score)) for item_id, score in scored if score >= threshold]
    kept.sort(key=lambda match: (-match.similarity, match.id))
    return kept[:limit]


class KnowledgeVectorIndex:
    """Stores one vector per knowledge-base entry and answers threshold queries."""

    def __init__(
        self,
        backend: Optional[VectorBackend] = None,
        *,
        collection_name: str = DEFAULT_COLLECTION_NAME,
    ) -> None:
        self._backend = backend or MockVectorStore()
        self.collection_name = collection_name
        try:
            self._backend.create_collection(collection_name)
        except VectorStoreUnavailableError:
            raise
        except Exception as exc:  # pragma: no cover - unexpected backend failure
            raise VectorStoreUnavailableError(
                "Failed to initialise vector store collection", cause=exc
            ) from exc

    @property
    def backend_name(self) -> str:
        return self._backend.backend

    def upsert(self, entry_id: str, vector: Sequence[float], metadata: Optional[dict] = None) -> None:
        try:
            self._backend.upsert(
                self.collection_name,
                ids=[entry_id],
                embeddings=[vector],
                metadatas=[metadata or {}],
            )
        except VectorStoreUnavailableError:
            raise
        except Exception as exc:
            emit_vectorstore_event("vectorstore.upsert", backend=self.backend_name, count=1, error=exc)
            raise VectorStoreUnavailableError("Failed to upsert vector", cause=exc) from exc

    def delete(self, entry_id: str) -> None:
        try:
            self._backend.delete(self.collection_name, ids=[entry_id])
        except Exception as exc:
            emit_vectorstore_event("vectorstore.delete", backend=self.backend_name, count=1, error=exc)
            raise VectorStoreUnavailableError("Failed to delete vector", cause=exc) from exc

    def count(self) -> int:
        return self._backend.count(self.collection_name)

    def search(self, vector: Sequence[float], threshold: float, limit: int) -> List[VectorMatch]:
        """Return ``(id, similarity)`` matches at or above ``threshold``, descending."""

        if limit <= 0:
            return []
        try:
            neighbours = self._backend.query(self.collection_name, query_embedding=vector, k=limit)
        except VectorStoreUnavailableError:
            raise
        except Exception as exc:
            emit_vectorstore_event("vectorstore.query", backend=self.backend_name, count=0, error=exc)
            raise VectorStoreUnavailableError("Vector store query failed", cause=exc) from exc
        matches = select_above_threshold(
            ((item.id, item.similarity) for item in neighbours), threshold, limit
        )
        emit_vectorstore_event("vectorstore.query", backend=self.backend_name, count=len(matches))
        return matches


@lru_cache()
def get_vector_index() -> KnowledgeVectorIndex:
    """Return a lazily initialised vector index based on configuration."""

    settings = get_settings()
    backend = settings.vector_store

    if backend in {"memory", "mock"}:
        return KnowledgeVectorIndex(MockVectorStore())

    if backend == "chroma":
        from .chroma_store import ChromaStore

        return KnowledgeVectorIndex(ChromaStore(settings.chroma_persist_dir))

    raise VectorStoreUnavailableError(f"Unsupported VECTOR_STORE backend: {backend!r}")


def reset_vector_index_cache() -> None:
    """Clear the cached vector index (primarily for testing)."""

    get_vector_index.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "KnowledgeVectorIndex",
    "MockVectorStore",
    "ScoredVector",
    "VectorMatch",
    "VectorStoreUnavailableError",
    "cosine_similarities",
    "get_vector_index",
    "reset_vector_index_cache",
    "select_above_threshold",
]
