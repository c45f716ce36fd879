"""Language detection helpers."""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0


class LanguageDetector:
    """Wraps langdetect so that undetectable text yields ``None``."""

    def __init__(self, sample_chars: int = 2000) -> None:
        self.sample_chars = sample_chars

    def detect(self, text: str) -> Optional[str]:
        cleaned = text.strip()[: self.sample_chars]
        if not cleaned:
            return None
        try:
            language = detect(cleaned)
        except LangDetectException:
            LOGGER.info("Unable to determine language for text of length %s", len(text))
            return None
        LOGGER.debug("Detected language: %s", language)
        return language
