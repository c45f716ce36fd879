"""Append-only audit trail of AI interactions."""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional, Union

from .logging_config import AUDIT_LOGGER_NAME

AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(frozen=True, slots=True)
class AnswerBotMetadata:
    similar_entries_count: int
    top_similarity: float
    used_fallback: bool
    source_ids: tuple[str, ...] = ()
    interaction_type: Literal["answer_bot"] = "answer_bot"


@dataclass(frozen=True, slots=True)
class PDFIngestMetadata:
    file_name: str
    extraction_strategy: str
    segmentation_method: str
    chunk_count: int
    language: Optional[str] = None
    interaction_type: Literal["pdf_ingest"] = "pdf_ingest"


@dataclass(frozen=True, slots=True)
class OptimizationMetadata:
    changed_fields: tuple[str, ...]
    previous_title: str
    interaction_type: Literal["knowledge_optimization"] = "knowledge_optimization"


InteractionMetadata = Union[AnswerBotMetadata, PDFIngestMetadata, OptimizationMetadata]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class AIInteraction:
    session_id: str
    user_id: str
    input_text: str
    ai_response: str
    confidence_score: float
    metadata: InteractionMetadata
    knowledge_base_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def interaction_type(self) -> str:
        return self.metadata.interaction_type

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["interaction_type"] = self.interaction_type
        payload["created_at"] = self.created_at.isoformat()
        return payload


class InMemoryInteractionLog:
    """Keeps interactions in memory and mirrors each one to the audit logger."""

    def __init__(self) -> None:
        self._records: List[AIInteraction] = []
        self._lock = threading.RLock()

    def append(self, interaction: AIInteraction) -> AIInteraction:
        with self._lock:
            self._records.append(interaction)
        AUDIT_LOGGER.info(interaction.to_dict())
        return interaction

    def list(
        self,
        *,
        session_id: Optional[str] = None,
        interaction_type: Optional[str] = None,
    ) -> List[AIInteraction]:
        with self._lock:
            records = list(self._records)
        if session_id is not None:
            records = [record for record in records if record.session_id == session_id]
        if interaction_type is not None:
            records = [record for record in records if record.interaction_type == interaction_type]
        return records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = [
    "AIInteraction",
    "AnswerBotMetadata",
    "InMemoryInteractionLog",
    "InteractionMetadata",
    "OptimizationMetadata",
    "PDFIngestMetadata",
]
