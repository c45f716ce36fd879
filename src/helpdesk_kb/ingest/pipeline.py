"""High level PDF-to-knowledge pipeline entry point."""
from __future__ import annotations

import logging
import time
from typing import Optional

from ..telemetry import emit_ingest_event, emit_segmentation_event, traced_duration
from .classification import build_chunks
from .extractors import PDFTextExtractor
from .language import LanguageDetector
from .models import IngestResult
from .normalization import normalize_text
from .segmentation import QASegmenter

LOGGER = logging.getLogger(__name__)

TEXT_SAMPLE_CHARS = 500


class PDFKnowledgePipeline:
    """Extract, normalise, segment and classify a single PDF upload."""

    def __init__(
        self,
        extractor: Optional[PDFTextExtractor] = None,
        segmenter: Optional[QASegmenter] = None,
        language_detector: Optional[LanguageDetector] = None,
    ) -> None:
        self.extractor = extractor or PDFTextExtractor()
        self.segmenter = segmenter or QASegmenter()
        self.language_detector = language_detector or LanguageDetector()

    def process(
        self,
        data: bytes,
        file_name: str = "upload.pdf",
        user_id: Optional[str] = None,
    ) -> IngestResult:
        start = time.perf_counter()
        emit_ingest_event(
            "ingest.start", file_name=file_name, user_id=user_id, size_bytes=len(data)
        )

        with traced_duration("ingest.extract", logger=LOGGER, file_name=file_name):
            extraction = self.extractor.extract(data)
        text = normalize_text(extraction.text)
        language = self.language_detector.detect(text)

        with traced_duration("ingest.segment", logger=LOGGER, file_name=file_name, chars=len(text)):
            segmentation = self.segmenter.segment(text)
        chunks = build_chunks(segmentation.pairs)
        emit_segmentation_event(
            method=segmentation.method,
            yields=segmentation.yields,
            pairs=len(segmentation.pairs),
            chunks=len(chunks),
        )
        LOGGER.info(
            "Extracted %s chunks from %s using %s/%s",
            len(chunks),
            file_name,
            extraction.strategy,
            segmentation.method,
        )

        emit_ingest_event(
            "ingest.complete",
            file_name=file_name,
            user_id=user_id,
            size_bytes=len(data),
            duration_ms=(time.perf_counter() - start) * 1000.0,
            language=language,
            method=segmentation.method,
            chunks=len(chunks),
        )
        return IngestResult(
            chunks=chunks,
            extraction=extraction,
            method=segmentation.method,
            language=language,
            text_sample=text[:TEXT_SAMPLE_CHARS],
        )
