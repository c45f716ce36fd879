"""Raw PDF object scanning and content stream decoding."""
from __future__ import annotations

import logging
import re
import zlib
from typing import Iterable, List

from .models import DecodedStream, PDFObject, PDFObjectType

LOGGER = logging.getLogger(__name__)

_OBJECT_RE = re.compile(r"(\d+)\s+(\d+)\s+obj\b(.*?)\bendobj", re.DOTALL)
_PAGE_RE = re.compile(r"/Type\s*/Page(?!s)")
_STREAM_KEYWORD_RE = re.compile(r"\bstream\b")
_FONT_RE = re.compile(r"/Font\b")
_STREAM_BODY_RE = re.compile(
    r"^(.*?)\bstream(?:\r\n|\n|\r)?(.*?)(?:\r\n|\n|\r)?endstream", re.DOTALL
)
_FLATE_RE = re.compile(r"FlateDecode|/Fl\b")


def decode_latin1(data: bytes) -> str:
    """Map every byte to one code point so offsets survive the round trip."""

    return data.decode("latin-1")


def _classify(body: str) -> PDFObjectType:
    if _PAGE_RE.search(body):
        return PDFObjectType.PAGE
    if _STREAM_KEYWORD_RE.search(body):
        return PDFObjectType.STREAM
    if _FONT_RE.search(body):
        return PDFObjectType.FONT
    return PDFObjectType.UNKNOWN


def scan_objects(data: bytes | str) -> List[PDFObject]:
    """Return every ``N G obj ... endobj`` block in file order."""

    text = decode_latin1(data) if isinstance(data, bytes) else data
    objects: List[PDFObject] = []
    for match in _OBJECT_RE.finditer(text):
        number, generation, body = match.groups()
        objects.append(
            PDFObject(id=f"{number} {generation}", content=body, type=_classify(body))
        )
    LOGGER.debug("Scanned %s PDF objects", len(objects))
    return objects


def inflate(payload: bytes) -> bytes | None:
    """Inflate a FlateDecode payload, tolerating raw and truncated streams."""

    try:
        return zlib.decompress(payload)
    except zlib.error:
        pass
    try:
        return zlib.decompress(payload, -15)
    except zlib.error:
        pass
    try:
        partial = zlib.decompressobj().decompress(payload)
    except zlib.error as error:
        LOGGER.debug("Unable to inflate stream of %s bytes: %s", len(payload), error)
        return None
    return partial or None


def decode_stream(obj: PDFObject) -> DecodedStream | None:
    """Extract and, where flagged, inflate the stream payload of ``obj``."""

    match = _STREAM_BODY_RE.search(obj.content)
    if match is None:
        return None
    dictionary, raw_text = match.groups()
    raw = raw_text.encode("latin-1")
    if _FLATE_RE.search(dictionary):
        inflated = inflate(raw)
        if inflated is not None:
            return DecodedStream(object_id=obj.id, dictionary=dictionary, data=inflated, inflated=True)
        LOGGER.debug("Falling back to raw bytes for stream object %s", obj.id)
    return DecodedStream(object_id=obj.id, dictionary=dictionary, data=raw, inflated=False)


def decode_streams(objects: Iterable[PDFObject]) -> List[DecodedStream]:
    streams: List[DecodedStream] = []
    for obj in objects:
        decoded = decode_stream(obj)
        if decoded is not None:
            streams.append(decoded)
    return streams


__all__ = ["decode_latin1", "scan_objects", "inflate", "decode_stream", "decode_streams"]
