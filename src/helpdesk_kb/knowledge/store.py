"""Persistence of knowledge-base entries."""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from ..ingest.models import KnowledgeChunk


class EmbeddingStatus(str, Enum):
    PENDING = "pending"
    EMBEDDED = "embedded"
    FAILED = "failed"


class KnowledgeEntryNotFoundError(LookupError):
    """Raised when an entry id is unknown or the entry was deleted."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Knowledge base entry not found: {entry_id}")
        self.entry_id = entry_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class KnowledgeEntry:
    """A knowledge chunk as persisted in the knowledge base."""

    title: str
    content: str
    category: str
    created_by: str
    tags: List[str] = field(default_factory=list)
    confidence: Optional[float] = None
    source: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_active: bool = True
    usage_count: int = 0
    embedding_status: EmbeddingStatus = EmbeddingStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_chunk(
        cls, chunk: KnowledgeChunk, created_by: str, *, source: Optional[str] = None
    ) -> "KnowledgeEntry":
        if not chunk.content.strip():
            raise ValueError("Knowledge entries require non-empty content")
        return cls(
            title=chunk.title,
            content=chunk.content,
            category=chunk.category,
            created_by=created_by,
            tags=list(chunk.tags),
            confidence=chunk.confidence,
            source=source,
        )

    @property
    def embedding_text(self) -> str:
        return f"{self.title}\n\n{self.content}"


EDITABLE_FIELDS = frozenset({"title", "content", "category", "tags"})


class InMemoryKnowledgeStore:
    """Thread-safe dictionary of entries; callers receive copies."""

    def __init__(self) -> None:
        self._entries: Dict[str, KnowledgeEntry] = {}
        self._lock = threading.RLock()

    def add(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        with self._lock:
            self._entries[entry.id] = entry
            return replace(entry, tags=list(entry.tags))

    def get(self, entry_id: str, *, include_inactive: bool = False) -> KnowledgeEntry:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None or (not entry.is_active and not include_inactive):
                raise KnowledgeEntryNotFoundError(entry_id)
            return replace(entry, tags=list(entry.tags))

    def list(self, *, category: Optional[str] = None, active_only: bool = True) -> List[KnowledgeEntry]:
        with self._lock:
            entries = [replace(entry, tags=list(entry.tags)) for entry in self._entries.values()]
        if active_only:
            entries = [entry for entry in entries if entry.is_active]
        if category is not None:
            entries = [entry for entry in entries if entry.category.lower() == category.lower()]
        return sorted(entries, key=lambda entry: entry.created_at)

    def update(self, entry_id: str, **changes: object) -> KnowledgeEntry:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if "content" in changes and not str(changes["content"]).strip():
            raise ValueError("Knowledge entries require non-empty content")
        with self._lock:
            current = self._entries.get(entry_id)
            if current is None or not current.is_active:
                raise KnowledgeEntryNotFoundError(entry_id)
            updated = replace(current, **changes, updated_at=_utcnow())
            self._entries[entry_id] = updated
            return replace(updated, tags=list(updated.tags))

    def set_embedding_status(self, entry_id: str, status: EmbeddingStatus) -> None:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise KnowledgeEntryNotFoundError(entry_id)
            entry.embedding_status = status

    def soft_delete(self, entry_id: str) -> KnowledgeEntry:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None or not entry.is_active:
                raise KnowledgeEntryNotFoundError(entry_id)
            entry.is_active = False
            entry.updated_at = _utcnow()
            return replace(entry, tags=list(entry.tags))

    def increment_usage(self, entry_id: str) -> int:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise KnowledgeEntryNotFoundError(entry_id)
            entry.usage_count += 1
            return entry.usage_count

    def pending_embedding(self) -> List[KnowledgeEntry]:
        return [
            entry
            for entry in self.list()
            if entry.embedding_status is not EmbeddingStatus.EMBEDDED
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
