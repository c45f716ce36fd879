"""Knowledge-base entries and their maintenance service."""
from __future__ import annotations

from .service import (
    BulkAddResult,
    KnowledgeBaseService,
    OptimizeResult,
    ReconcileResult,
    RetrievedChunk,
    get_knowledge_service,
    reset_knowledge_service_cache,
)
from .store import EmbeddingStatus, InMemoryKnowledgeStore, KnowledgeEntry, KnowledgeEntryNotFoundError

__all__ = [
    "BulkAddResult",
    "EmbeddingStatus",
    "InMemoryKnowledgeStore",
    "KnowledgeBaseService",
    "KnowledgeEntry",
    "KnowledgeEntryNotFoundError",
    "OptimizeResult",
    "ReconcileResult",
    "RetrievedChunk",
    "get_knowledge_service",
    "reset_knowledge_service_cache",
]
