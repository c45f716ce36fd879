"""Shared fixtures: synthetic PDFs, deterministic embeddings and scripted LLMs."""
from __future__ import annotations

import zlib
from typing import Iterable

import pytest

from helpdesk_kb.config import reset_settings_cache
from helpdesk_kb.embeddings import EmbeddingModel, reset_embedding_model_cache
from helpdesk_kb.interactions import InMemoryInteractionLog
from helpdesk_kb.knowledge import InMemoryKnowledgeStore, KnowledgeBaseService, reset_knowledge_service_cache
from helpdesk_kb.llm_provider import reset_llm_cache
from helpdesk_kb.providers import HashEmbeddingProvider, MockLLMProvider
from helpdesk_kb.services.rag import reset_rag_service_cache
from helpdesk_kb.vectorstore import KnowledgeVectorIndex, MockVectorStore, reset_vector_index_cache

TICKET_STREAM = (
    "BT /F1 12 Tf 72 720 Td "
    "(1. What is a ticket? A ticket is a digital record of your request.) Tj ET"
)


def build_pdf(*streams: str | bytes, compress: bool = False, filter_name: str = "/FlateDecode") -> bytes:
    """Assemble a minimal PDF with one page per content stream."""

    bodies: list[bytes | None] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        None,
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    page_ids: list[int] = []
    for stream in streams:
        data = stream.encode("latin-1") if isinstance(stream, str) else stream
        if compress:
            data = zlib.compress(data)
            dictionary = b"<< /Length %d /Filter %s >>" % (len(data), filter_name.encode("ascii"))
        else:
            dictionary = b"<< /Length %d >>" % len(data)
        page_id = len(bodies) + 1
        content_id = page_id + 1
        bodies.append(
            b"<< /Type /Page /Parent 2 0 R /Resources << /Font << /F1 3 0 R >> >> "
            b"/Contents %d 0 R >>" % content_id
        )
        bodies.append(dictionary + b"\nstream\n" + data + b"\nendstream")
        page_ids.append(page_id)

    kids = b" ".join(b"%d 0 R" % page_id for page_id in page_ids)
    bodies[1] = b"<< /Type /Pages /Kids [" + kids + b"] /Count %d >>" % len(page_ids)

    output = b"%PDF-1.4\n"
    for number, body in enumerate(bodies, start=1):
        output += b"%d 0 obj\n" % number + (body or b"") + b"\nendobj\n"
    output += b"trailer\n<< /Root 1 0 R >>\n%%EOF\n"
    return output


def build_image_only_pdf() -> bytes:
    image = bytes(range(128, 256)) * 4
    return build_pdf("q 612 0 0 792 0 0 cm /Im1 Do Q", image)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("EMBEDDING_BACKEND", "hash")
    monkeypatch.setenv("LLM_BACKEND", "stub")
    monkeypatch.setenv("VECTOR_STORE", "memory")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    caches = (
        reset_settings_cache,
        reset_embedding_model_cache,
        reset_llm_cache,
        reset_vector_index_cache,
        reset_knowledge_service_cache,
        reset_rag_service_cache,
    )
    for reset in caches:
        reset()
    yield
    for reset in caches:
        reset()


@pytest.fixture()
def embedder() -> EmbeddingModel:
    return EmbeddingModel(HashEmbeddingProvider(384))


@pytest.fixture()
def vector_index() -> KnowledgeVectorIndex:
    return KnowledgeVectorIndex(MockVectorStore())


@pytest.fixture()
def interaction_log() -> InMemoryInteractionLog:
    return InMemoryInteractionLog()


@pytest.fixture()
def knowledge_service(embedder, vector_index, interaction_log) -> KnowledgeBaseService:
    return KnowledgeBaseService(
        store=InMemoryKnowledgeStore(),
        index=vector_index,
        embedder=embedder,
        interactions=interaction_log,
    )


@pytest.fixture()
def scripted_llm():
    def factory(responses: Iterable[str] = (), *, ready: bool = True) -> MockLLMProvider:
        return MockLLMProvider(responses, ready=ready)

    return factory


@pytest.fixture()
def ticket_pdf() -> bytes:
    return build_pdf(TICKET_STREAM)
