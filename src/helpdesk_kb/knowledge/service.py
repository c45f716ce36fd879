"""Knowledge-base maintenance: two-phase insert+embed, search, reconcile, optimise."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence

from ..embeddings import EmbeddingModel, EmbeddingServiceError, get_embedding_model
from ..ingest.classification import (
    PLACEHOLDER_CONTENT,
    classify_category,
    extract_tags,
    truncate_title,
)
from ..ingest.models import KnowledgeChunk
from ..interactions import AIInteraction, InMemoryInteractionLog, OptimizationMetadata
from ..telemetry import emit_knowledge_event
from ..vectorstore import KnowledgeVectorIndex, VectorStoreUnavailableError, get_vector_index
from .store import EmbeddingStatus, InMemoryKnowledgeStore, KnowledgeEntry

LOGGER = logging.getLogger(__name__)

OPTIMIZE_MIN_TITLE_CHARS = 10
OPTIMIZE_MAX_CONTENT_CHARS = 1000
OPTIMIZE_TRUNCATED_CONTENT_CHARS = 800


@dataclass(slots=True)
class RetrievedChunk:
    entry: KnowledgeEntry
    similarity: float

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def title(self) -> str:
        return self.entry.title

    @property
    def content(self) -> str:
        return self.entry.content

    @property
    def category(self) -> str:
        return self.entry.category


@dataclass(slots=True)
class BulkAddResult:
    succeeded: int = 0
    failed: int = 0
    entry_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ReconcileResult:
    processed: int = 0
    embedded: int = 0
    failed: int = 0


@dataclass(slots=True)
class OptimizeResult:
    processed: int = 0
    optimized: int = 0
    errors: List[str] = field(default_factory=list)


def needs_optimization(entry: KnowledgeEntry) -> bool:
    return (
        len(entry.title) < OPTIMIZE_MIN_TITLE_CHARS
        or len(entry.content) > OPTIMIZE_MAX_CONTENT_CHARS
        or not entry.tags
    )


def optimized_fields(entry: KnowledgeEntry) -> dict:
    """Rewrite short titles, overly long content, tags and category."""

    title = entry.title
    content = entry.content
    if len(title) < OPTIMIZE_MIN_TITLE_CHARS:
        first_sentence = content.split(".")[0].strip()
        title = truncate_title(first_sentence[:99] + "?")
    if len(content) > OPTIMIZE_MAX_CONTENT_CHARS:
        content = content[:OPTIMIZE_TRUNCATED_CONTENT_CHARS] + "..."
    combined = f"{title} {content}"
    return {
        "title": title,
        "content": content,
        "tags": extract_tags(combined),
        "category": classify_category(combined),
    }


class KnowledgeBaseService:
    """Coordinates the entry store, the embedding model and the vector index.

    Inserting is two-phase: the entry is stored as ``pending`` first, then
    embedded and indexed. A failed embedding leaves the entry ``failed`` until
    :meth:`reconcile` picks it up again.
    """

    def __init__(
        self,
        store: Optional[InMemoryKnowledgeStore] = None,
        index: Optional[KnowledgeVectorIndex] = None,
        embedder: Optional[EmbeddingModel] = None,
        interactions: Optional[InMemoryInteractionLog] = None,
    ) -> None:
        self.store = store or InMemoryKnowledgeStore()
        self.index = index or get_vector_index()
        self.embedder = embedder or get_embedding_model()
        self.interactions = interactions or InMemoryInteractionLog()

    def _embed_entry(self, entry: KnowledgeEntry) -> None:
        try:
            vector = self.embedder.embed_text(entry.embedding_text)
            self.index.upsert(entry.id, vector, {"category": entry.category})
        except (EmbeddingServiceError, VectorStoreUnavailableError):
            self.store.set_embedding_status(entry.id, EmbeddingStatus.FAILED)
            raise
        self.store.set_embedding_status(entry.id, EmbeddingStatus.EMBEDDED)

    def add_entry(
        self, chunk: KnowledgeChunk, created_by: str, *, source: Optional[str] = None
    ) -> KnowledgeEntry:
        if not chunk.content.strip():
            chunk = replace(chunk, content=PLACEHOLDER_CONTENT)
        entry = self.store.add(KnowledgeEntry.from_chunk(chunk, created_by, source=source))
        self._embed_entry(entry)
        return self.store.get(entry.id)

    def add_chunks(
        self,
        chunks: Iterable[KnowledgeChunk],
        created_by: str,
        *,
        source: Optional[str] = None,
    ) -> BulkAddResult:
        """Store every chunk, continuing past individual failures."""

        result = BulkAddResult()
        for position, chunk in enumerate(chunks):
            try:
                entry = self.add_entry(chunk, created_by, source=source)
            except (EmbeddingServiceError, VectorStoreUnavailableError, ValueError) as error:
                LOGGER.exception("Failed to store knowledge chunk %s", position)
                result.failed += 1
                result.errors.append(f"Chunk {position} ({chunk.title[:50]}): {error}")
                continue
            result.succeeded += 1
            result.entry_ids.append(entry.id)

        emit_knowledge_event(
            "knowledge.bulk_add",
            count=result.succeeded,
            failed=result.failed,
            created_by=created_by,
            source=source,
        )
        return result

    def get(self, entry_id: str) -> KnowledgeEntry:
        return self.store.get(entry_id)

    def list(self, *, category: Optional[str] = None) -> List[KnowledgeEntry]:
        return self.store.list(category=category)

    def update(self, entry_id: str, **changes: object) -> KnowledgeEntry:
        """Apply field changes; title or content edits re-embed the entry."""

        current = self.store.get(entry_id)
        changes = {key: value for key, value in changes.items() if value is not None}
        if not changes:
            return current
        updated = self.store.update(entry_id, **changes)
        if updated.title != current.title or updated.content != current.content:
            self.store.set_embedding_status(entry_id, EmbeddingStatus.PENDING)
            self._embed_entry(updated)
        emit_knowledge_event("knowledge.update", entry_id=entry_id, fields=sorted(changes))
        return self.store.get(entry_id)

    def soft_delete(self, entry_id: str) -> KnowledgeEntry:
        entry = self.store.soft_delete(entry_id)
        self.index.delete(entry_id)
        emit_knowledge_event("knowledge.delete", entry_id=entry_id)
        return entry

    def search(self, vector: Sequence[float], threshold: float, limit: int) -> List[RetrievedChunk]:
        """Join index matches with their active entries, preserving rank order."""

        retrieved: List[RetrievedChunk] = []
        for match in self.index.search(vector, threshold, limit):
            try:
                entry = self.store.get(match.id)
            except LookupError:
                LOGGER.debug("Skipping stale vector %s", match.id)
                continue
            retrieved.append(RetrievedChunk(entry=entry, similarity=match.similarity))
        return retrieved

    def record_usage(self, entry_id: str) -> int:
        return self.store.increment_usage(entry_id)

    def reconcile(self) -> ReconcileResult:
        """Re-embed every active entry that is not yet embedded."""

        result = ReconcileResult()
        for entry in self.store.pending_embedding():
            result.processed += 1
            try:
                self._embed_entry(entry)
            except (EmbeddingServiceError, VectorStoreUnavailableError):
                LOGGER.exception("Reconciliation failed for entry %s", entry.id)
                result.failed += 1
                continue
            result.embedded += 1
        emit_knowledge_event(
            "knowledge.reconcile",
            count=result.processed,
            embedded=result.embedded,
            failed=result.failed,
        )
        return result

    def optimize(self, *, user_id: str = "system") -> OptimizeResult:
        result = OptimizeResult()
        for entry in self.store.list():
            if not needs_optimization(entry):
                continue
            result.processed += 1
            changes = optimized_fields(entry)
            changed = tuple(sorted(key for key, value in changes.items() if getattr(entry, key) != value))
            try:
                updated = self.update(entry.id, **changes)
            except (EmbeddingServiceError, VectorStoreUnavailableError, ValueError) as error:
                LOGGER.exception("Optimisation failed for entry %s", entry.id)
                result.errors.append(f"{entry.id}: {error}")
                continue
            result.optimized += 1
            self.interactions.append(
                AIInteraction(
                    session_id="knowledge_optimizer",
                    user_id=user_id,
                    input_text=entry.title,
                    ai_response=updated.title,
                    confidence_score=1.0,
                    knowledge_base_id=entry.id,
                    metadata=OptimizationMetadata(changed_fields=changed, previous_title=entry.title),
                )
            )
        emit_knowledge_event(
            "knowledge.optimize", count=result.processed, optimized=result.optimized
        )
        return result


@lru_cache()
def get_knowledge_service() -> KnowledgeBaseService:
    """Return the process-wide knowledge-base service."""

    return KnowledgeBaseService()


def reset_knowledge_service_cache() -> None:
    get_knowledge_service.cache_clear()  # type: ignore[attr-defined]
