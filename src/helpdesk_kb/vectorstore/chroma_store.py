"""Chroma vector store adapter."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

from .errors import VectorStoreUnavailableError
from .mock_store import ScoredVector

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from chromadb.api import ClientAPI
    from chromadb.api.models.Collection import Collection


class ChromaStore:
    """Adapter around a persistent Chroma database using cosine distance."""

    backend = "chroma"

    def __init__(
        self,
        persist_dir: str | Path,
        *,
        client: Optional["ClientAPI"] = None,
    ) -> None:
        self.persist_dir = Path(persist_dir)
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        if client is None:
            try:
                import chromadb
            except ImportError as exc:
                raise VectorStoreUnavailableError(
                    "VECTOR_STORE=chroma requires the 'chromadb' package to be installed",
                    cause=exc,
                ) from exc
            try:
                client = chromadb.PersistentClient(path=str(self.persist_dir))
            except Exception as exc:  # pragma: no cover - depends on chromadb runtime
                raise VectorStoreUnavailableError(
                    "Failed to initialise Chroma persistent client",
                    cause=exc,
                ) from exc
        self._client = client
        self._collections: Dict[str, "Collection"] = {}

    def create_collection(self, name: str, *, metadata: Optional[Dict[str, Any]] = None) -> "Collection":
        """Return an existing collection or create a new one."""

        collection = self._collections.get(name)
        if collection is None:
            collection = self._client.get_or_create_collection(
                name=name, metadata=metadata or {"hnsw:space": "cosine"}
            )
            self._collections[name] = collection
        return collection

    def upsert(
        self,
        name: str,
        *,
        ids: Iterable[str],
        embeddings: Iterable[Sequence[float]],
        metadatas: Iterable[Dict[str, Any] | None] | None = None,
    ) -> None:
        collection = self.create_collection(name)

        id_list = list(ids)
        embedding_list = [list(map(float, embedding)) for embedding in embeddings]
        metadata_source = list(metadatas) if metadatas is not None else [None] * len(id_list)
        if not (len(id_list) == len(embedding_list) == len(metadata_source)):
            raise ValueError("All inputs must be of the same length")

        # Chroma rejects empty metadata dicts.
        metadata_list = [metadata or {"source": "knowledge_base"} for metadata in metadata_source]
        collection.upsert(ids=id_list, embeddings=embedding_list, metadatas=metadata_list)

    def delete(self, name: str, *, ids: Iterable[str]) -> None:
        id_list = list(ids)
        if id_list:
            self.create_collection(name).delete(ids=id_list)

    def count(self, name: str) -> int:
        return int(self.create_collection(name).count())

    def query(self, name: str, query_embedding: Sequence[float], k: int = 5) -> List[ScoredVector]:
        """Query the collection and convert cosine distance to similarity."""

        if k <= 0:
            return []
        collection = self.create_collection(name)
        available = collection.count()
        if available == 0:
            return []

        result = collection.query(
            query_embeddings=[list(map(float, query_embedding))],
            n_results=min(k, available),
        )
        ids = (result.get("ids") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0] or [None] * len(ids)
        distances = (result.get("distances") or [[]])[0]

        neighbours: List[ScoredVector] = []
        for item_id, metadata, distance in zip(ids, metadatas, distances):
            similarity = 1.0 - float(distance) if distance is not None else 0.0
            neighbours.append(
                ScoredVector(id=item_id, similarity=similarity, metadata=dict(metadata or {}))
            )
        return neighbours


__all__ = ["ChromaStore"]
