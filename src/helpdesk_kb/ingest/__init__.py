"""PDF ingestion: extraction, normalisation, segmentation and classification."""
from __future__ import annotations

from .errors import IngestError, InsufficientTextError, InvalidPDFError, NoKnowledgeExtractedError
from .models import ExtractionResult, IngestResult, KnowledgeChunk, QAPair
from .pipeline import PDFKnowledgePipeline

__all__ = [
    "ExtractionResult",
    "IngestError",
    "IngestResult",
    "InsufficientTextError",
    "InvalidPDFError",
    "KnowledgeChunk",
    "NoKnowledgeExtractedError",
    "PDFKnowledgePipeline",
    "QAPair",
]
