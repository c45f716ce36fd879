"""Text normalisation utilities."""
from __future__ import annotations

import re
import unicodedata

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")
_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
_LIST_MARKER_RE = re.compile(r"(?<=\s)(?=\d+\.\s*[A-Z])")
_LIST_MARKER_AT_END_RE = re.compile(r"(?:^|\s)\d+\.$")


def _sentence_break(text: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        # "3. Reset" is a list marker, not the end of a sentence.
        if _LIST_MARKER_AT_END_RE.search(text, 0, match.start()):
            return match.group(0)
        return "\n"

    return _SENTENCE_BREAK_RE.sub(_replace, text)


def normalize_text(text: str) -> str:
    """Collapse extracted PDF text into trimmed, sentence-per-line form."""

    normalized = unicodedata.normalize("NFC", text)
    normalized = _CONTROL_RE.sub(" ", normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized).strip()
    normalized = _sentence_break(normalized)
    normalized = _LIST_MARKER_RE.sub("\n", normalized)
    lines = (line.strip() for line in normalized.split("\n"))
    return "\n".join(line for line in lines if line)


__all__ = ["normalize_text"]
