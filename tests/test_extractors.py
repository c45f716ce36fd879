from __future__ import annotations

import pytest

from helpdesk_kb.ingest.errors import InsufficientTextError, InvalidPDFError
from helpdesk_kb.ingest.extractors import (
    ObjectHeuristicExtractor,
    PDFTextExtractor,
    StreamHeuristicExtractor,
    StructuredTextExtractor,
    is_readable,
    unescape_pdf_string,
    validate_pdf_bytes,
)

from conftest import TICKET_STREAM, build_image_only_pdf, build_pdf


def test_structured_extractor_reads_text_blocks() -> None:
    text = StructuredTextExtractor().try_extract(build_pdf(TICKET_STREAM))

    assert text == "1. What is a ticket? A ticket is a digital record of your request."


def test_structured_extractor_reads_compressed_streams() -> None:
    pdf = build_pdf(TICKET_STREAM, compress=True)

    result = PDFTextExtractor().extract(pdf)

    assert result.strategy == "structured"
    assert result.stream_count == 1
    assert "What is a ticket?" in result.text


def test_render_block_handles_kerning_arrays() -> None:
    render = StructuredTextExtractor.render_block

    assert render("[(Hello) -250 (World)] TJ") == "Hello World"
    assert render("[(Hel) -20 (lo)] TJ") == "Hello"


def test_render_block_handles_hex_quotes_and_line_moves() -> None:
    render = StructuredTextExtractor.render_block

    assert render("<48656C6C6F> Tj") == "Hello"
    assert render("(first) Tj T* (second) Tj") == "first\nsecond"
    assert render("(first) Tj (second) '") == "first\nsecond"


def test_render_block_resolves_escapes_and_nested_parentheses() -> None:
    render = StructuredTextExtractor.render_block

    assert render(r"(Line\(1\)\nNext \101) Tj") == "Line(1)\nNext A"
    assert render("(a (b) c) Tj") == "a (b) c"


def test_unescape_pdf_string_drops_line_continuations() -> None:
    assert unescape_pdf_string("split \\\nline") == "split line"
    assert unescape_pdf_string(r"tab\there") == "tab\there"


def test_stream_heuristic_recovers_text_outside_text_blocks() -> None:
    sentence = "Hello, this is how you reset your password for the portal account."
    pdf = build_pdf(sentence)

    assert StructuredTextExtractor().try_extract(pdf) is None
    assert StreamHeuristicExtractor().try_extract(pdf) == sentence

    result = PDFTextExtractor().extract(pdf)
    assert result.strategy == "stream-heuristic"


def test_object_heuristic_reads_strings_in_object_bodies() -> None:
    pdf = (
        b"%PDF-1.4\n"
        b"1 0 obj\n<< /Title (How do you reset your password for the support portal account) >>\nendobj\n"
        b"trailer\n<< /Root 1 0 R >>\n%%EOF\n"
    )

    result = PDFTextExtractor().extract(pdf)

    assert result.strategy == "object-heuristic"
    assert result.text == "How do you reset your password for the support portal account"
    assert ObjectHeuristicExtractor().try_extract(pdf) == result.text


def test_is_readable_rejects_operator_noise() -> None:
    assert is_readable("How do I log in?")
    assert is_readable("the portal is available")
    assert not is_readable("q 612 0 0 792 0 0 cm")
    assert not is_readable("zzkq wvxr ptlm")
    assert not is_readable("   ")


def test_image_only_pdf_raises_insufficient_text() -> None:
    with pytest.raises(InsufficientTextError) as excinfo:
        PDFTextExtractor().extract(build_image_only_pdf())

    assert excinfo.value.status_code == 422
    assert str(excinfo.value).startswith("Insufficient text extracted from PDF")
    assert "structured, stream-heuristic, object-heuristic" in (excinfo.value.details or "")


def test_text_length_must_exceed_minimum() -> None:
    pdf = build_pdf("BT (Q: What is X? A: X is Y.) Tj ET")

    with pytest.raises(InsufficientTextError):
        PDFTextExtractor().extract(pdf)

    result = PDFTextExtractor(min_text_chars=10).extract(pdf)
    assert result.text == "Q: What is X? A: X is Y."


@pytest.mark.parametrize("payload", [b"", b"plain text, not a pdf"])
def test_invalid_uploads_are_rejected(payload: bytes) -> None:
    with pytest.raises(InvalidPDFError) as excinfo:
        validate_pdf_bytes(payload)

    assert excinfo.value.status_code == 400
