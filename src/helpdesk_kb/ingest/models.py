"""Data models used by the PDF ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class PDFObjectType(str, Enum):
    PAGE = "page"
    STREAM = "stream"
    FONT = "font"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class PDFObject:
    """An indirect object located in the raw PDF body."""

    id: str
    content: str
    type: PDFObjectType


@dataclass(slots=True)
class DecodedStream:
    """Bytes between ``stream`` and ``endstream``, inflated when possible."""

    object_id: str
    dictionary: str
    data: bytes
    inflated: bool = False

    def as_text(self) -> str:
        return self.data.decode("latin-1")


@dataclass(slots=True)
class ExtractionResult:
    text: str
    strategy: str
    object_count: int
    stream_count: int


@dataclass(slots=True)
class QAPair:
    """Question and answer recovered from the document text."""

    question: str
    answer: str
    confidence: float
    pattern: str


@dataclass(slots=True)
class KnowledgeChunk:
    """Embedding-ready unit destined for the knowledge base."""

    title: str
    content: str
    category: str
    tags: list[str] = field(default_factory=list)
    confidence: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "tags": list(self.tags),
            "confidence": self.confidence,
        }


@dataclass(slots=True)
class SegmentationResult:
    pairs: list[QAPair]
    method: str
    yields: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class IngestResult:
    """Outcome of a full PDF-to-chunks run."""

    chunks: list[KnowledgeChunk]
    extraction: ExtractionResult
    method: str
    language: Optional[str]
    text_sample: str

    @property
    def processing_method(self) -> str:
        return f"{self.extraction.strategy}/{self.method}"
