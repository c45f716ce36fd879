"""Dependency-free text recovery from PDF bytes.

Three strategies are tried in order and the first one that recovers a usable
amount of text wins:

``structured``
    Interprets the text-showing operators inside ``BT ... ET`` blocks of every
    decoded content stream.
``stream-heuristic``
    Pulls readable character runs out of decoded stream bytes.
``object-heuristic``
    Pulls readable parenthesised strings out of every object body.

The recovered text follows object scan order, which is not necessarily the
visual reading order of the page.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from ..telemetry import emit_extraction_event
from .errors import InsufficientTextError, InvalidPDFError
from .models import DecodedStream, ExtractionResult, PDFObject
from .pdf_objects import decode_latin1, decode_streams, scan_objects

LOGGER = logging.getLogger(__name__)

PDF_HEADER = b"%PDF"
HEADER_SEARCH_BYTES = 1024
DEFAULT_MIN_TEXT_CHARS = 50
KERNING_SPACE_THRESHOLD = -200.0

COMMON_WORDS: frozenset[str] = frozenset(
    {
        "the", "and", "you", "your", "is", "are", "to", "of", "in", "for",
        "how", "what", "can", "with", "this", "that", "on", "be", "it", "do",
        "if", "or", "we", "our", "will", "an",
    }
)

_LITERAL = r"\((?:[^()\\]|\\.|\((?:[^()\\]|\\.)*\))*\)"
_TEXT_BLOCK_RE = re.compile(r"\bBT\b(.*?)\bET\b", re.DOTALL)
_OPERATOR_RE = re.compile(
    r"\[(?P<array>(?:" + _LITERAL + r"|[^\]()])*)\]\s*TJ"
    r"|(?P<show>" + _LITERAL + r")\s*Tj"
    r"|(?P<quoted>" + _LITERAL + r")\s*['\"]"
    r"|<(?P<hex>[0-9A-Fa-f\s]*)>\s*Tj"
    r"|(?P<move>\bT\*|\bT[dD]\b)",
    re.DOTALL,
)
_ARRAY_ITEM_RE = re.compile(
    r"(?P<literal>" + _LITERAL + r")|<(?P<hex>[0-9A-Fa-f\s]*)>|(?P<number>-?\d+(?:\.\d+)?|-?\.\d+)",
    re.DOTALL,
)
_ESCAPE_RE = re.compile(r"\\(?:([0-7]{1,3})|(\r\n|\r|\n)|(.))", re.DOTALL)
_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "(": "(",
    ")": ")",
    "\\": "\\",
}
_READABLE_RUN_RE = re.compile(r"[A-Za-z][A-Za-z0-9 \t.,!?;:'\"()\-]{4,}")
_OBJECT_STRING_RE = re.compile(r"\(([^()]{5,})\)")
_WORD_RE = re.compile(r"[a-z]+")


def unescape_pdf_string(value: str) -> str:
    """Resolve backslash escapes of a PDF literal string body."""

    def _replace(match: re.Match[str]) -> str:
        octal, _continuation, char = match.groups()
        if octal is not None:
            return chr(int(octal, 8) & 0xFF)
        if char is not None:
            return _ESCAPES.get(char, char)
        return ""

    return _ESCAPE_RE.sub(_replace, value)


def _literal_text(literal: str) -> str:
    return unescape_pdf_string(literal[1:-1])


def _hex_text(value: str) -> str:
    digits = re.sub(r"\s+", "", value)
    if len(digits) % 2:
        digits += "0"
    raw = bytes.fromhex(digits)
    if raw.startswith(b"\xfe\xff"):
        return raw[2:].decode("utf-16-be", errors="ignore")
    return raw.decode("latin-1")


def is_readable(text: str) -> bool:
    """Cheap filter that rejects binary noise and keeps prose-like strings."""

    stripped = text.strip()
    if not stripped:
        return False
    letters = sum(1 for char in stripped if char.isalpha())
    if letters / len(stripped) < 0.6:
        return False
    lowered = stripped.lower()
    if "?" in lowered or "answer" in lowered or "question" in lowered:
        return True
    return any(word in COMMON_WORDS for word in _WORD_RE.findall(lowered))


@dataclass(slots=True)
class ParsedPDF:
    """Objects and decoded streams of one document, shared by all strategies."""

    text: str
    objects: List[PDFObject]
    streams: List[DecodedStream]

    @classmethod
    def from_bytes(cls, data: bytes) -> "ParsedPDF":
        text = decode_latin1(data)
        objects = scan_objects(text)
        return cls(text=text, objects=objects, streams=decode_streams(objects))


class Extractor(Protocol):
    name: str

    def try_extract(self, data: bytes, parsed: Optional[ParsedPDF] = None) -> Optional[str]:
        ...


class StructuredTextExtractor:
    """Interpret ``Tj``/``TJ``/``'``/``"`` operators inside text blocks."""

    name = "structured"

    def try_extract(self, data: bytes, parsed: Optional[ParsedPDF] = None) -> Optional[str]:
        parsed = parsed or ParsedPDF.from_bytes(data)
        if parsed.streams:
            sources = [stream.as_text() for stream in parsed.streams]
        else:
            sources = [parsed.text]

        blocks: list[str] = []
        for source in sources:
            for block in _TEXT_BLOCK_RE.finditer(source):
                text = self.render_block(block.group(1))
                if text.strip():
                    blocks.append(text.strip())
        joined = "\n".join(blocks)
        return joined or None

    @staticmethod
    def render_block(block: str) -> str:
        parts: list[str] = []
        for match in _OPERATOR_RE.finditer(block):
            if match.group("array") is not None:
                parts.append(_render_array(match.group("array")))
            elif match.group("show") is not None:
                parts.append(_literal_text(match.group("show")))
            elif match.group("quoted") is not None:
                parts.append("\n")
                parts.append(_literal_text(match.group("quoted")))
            elif match.group("hex") is not None:
                parts.append(_hex_text(match.group("hex")))
            else:
                parts.append("\n")
        return "".join(parts)


def _render_array(body: str) -> str:
    parts: list[str] = []
    for item in _ARRAY_ITEM_RE.finditer(body):
        if item.group("literal") is not None:
            parts.append(_literal_text(item.group("literal")))
        elif item.group("hex") is not None:
            parts.append(_hex_text(item.group("hex")))
        elif float(item.group("number")) < KERNING_SPACE_THRESHOLD:
            parts.append(" ")
    return "".join(parts)


class StreamHeuristicExtractor:
    """Collect readable character runs from decoded stream bytes."""

    name = "stream-heuristic"

    def try_extract(self, data: bytes, parsed: Optional[ParsedPDF] = None) -> Optional[str]:
        parsed = parsed or ParsedPDF.from_bytes(data)
        runs: list[str] = []
        for stream in parsed.streams:
            for match in _READABLE_RUN_RE.finditer(stream.as_text()):
                candidate = match.group(0).strip()
                if is_readable(candidate):
                    runs.append(candidate)
        joined = " ".join(runs)
        return joined or None


class ObjectHeuristicExtractor:
    """Collect readable parenthesised strings from every object body."""

    name = "object-heuristic"

    def try_extract(self, data: bytes, parsed: Optional[ParsedPDF] = None) -> Optional[str]:
        parsed = parsed or ParsedPDF.from_bytes(data)
        strings: list[str] = []
        for obj in parsed.objects:
            for match in _OBJECT_STRING_RE.finditer(obj.content):
                raw = match.group(1)
                if "obj" in raw:
                    continue
                candidate = unescape_pdf_string(raw).strip()
                if is_readable(candidate):
                    strings.append(candidate)
        joined = " ".join(strings)
        return joined or None


DEFAULT_EXTRACTORS: tuple[Extractor, ...] = (
    StructuredTextExtractor(),
    StreamHeuristicExtractor(),
    ObjectHeuristicExtractor(),
)


def validate_pdf_bytes(data: bytes) -> None:
    if not data:
        raise InvalidPDFError("No PDF file provided", details="The uploaded file is empty.")
    if PDF_HEADER not in data[:HEADER_SEARCH_BYTES]:
        raise InvalidPDFError(
            "Invalid PDF file",
            details="The upload does not contain a %PDF header.",
        )


class PDFTextExtractor:
    """Run the extraction strategies in order until one yields enough text."""

    def __init__(
        self,
        extractors: Sequence[Extractor] = DEFAULT_EXTRACTORS,
        min_text_chars: int = DEFAULT_MIN_TEXT_CHARS,
    ) -> None:
        self.extractors = tuple(extractors)
        self.min_text_chars = min_text_chars

    def extract(self, data: bytes) -> ExtractionResult:
        validate_pdf_bytes(data)
        start = time.perf_counter()
        parsed = ParsedPDF.from_bytes(data)
        attempted: list[str] = []

        for extractor in self.extractors:
            attempted.append(extractor.name)
            text = extractor.try_extract(data, parsed)
            if text and len(text.strip()) > self.min_text_chars:
                result = ExtractionResult(
                    text=text.strip(),
                    strategy=extractor.name,
                    object_count=len(parsed.objects),
                    stream_count=len(parsed.streams),
                )
                emit_extraction_event(
                    strategy=extractor.name,
                    attempted=attempted,
                    object_count=result.object_count,
                    stream_count=result.stream_count,
                    text_chars=len(result.text),
                    duration_ms=(time.perf_counter() - start) * 1000.0,
                )
                return result
            LOGGER.debug(
                "Extractor %s recovered %s chars", extractor.name, len(text.strip()) if text else 0
            )

        emit_extraction_event(
            strategy=None,
            attempted=attempted,
            object_count=len(parsed.objects),
            stream_count=len(parsed.streams),
            text_chars=0,
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        raise InsufficientTextError(
            details=(
                f"Tried {', '.join(attempted)} over {len(parsed.objects)} objects "
                f"and {len(parsed.streams)} streams."
            )
        )


__all__ = [
    "COMMON_WORDS",
    "Extractor",
    "ParsedPDF",
    "StructuredTextExtractor",
    "StreamHeuristicExtractor",
    "ObjectHeuristicExtractor",
    "DEFAULT_EXTRACTORS",
    "PDFTextExtractor",
    "is_readable",
    "unescape_pdf_string",
    "validate_pdf_bytes",
]
