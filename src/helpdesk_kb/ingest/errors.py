"""Exceptions raised while turning PDF uploads into knowledge chunks."""
from __future__ import annotations


class IngestError(RuntimeError):
    """Base class for ingestion failures."""

    status_code = 422

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details


class InvalidPDFError(IngestError):
    """The upload is missing, empty or does not look like a PDF."""

    status_code = 400


class InsufficientTextError(IngestError):
    """None of the extraction strategies recovered enough text."""

    DEFAULT_MESSAGE = (
        "Insufficient text extracted from PDF. The PDF may be image-based or corrupted."
    )

    def __init__(self, message: str | None = None, *, details: str | None = None) -> None:
        super().__init__(message or self.DEFAULT_MESSAGE, details=details)


class NoKnowledgeExtractedError(IngestError):
    """Text was recovered but nothing could be segmented into chunks."""

    DEFAULT_MESSAGE = "No knowledge chunks could be extracted from the PDF."

    def __init__(self, message: str | None = None, *, details: str | None = None) -> None:
        super().__init__(message or self.DEFAULT_MESSAGE, details=details)


__all__ = [
    "IngestError",
    "InvalidPDFError",
    "InsufficientTextError",
    "NoKnowledgeExtractedError",
]
