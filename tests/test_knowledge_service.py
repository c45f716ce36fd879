from __future__ import annotations

import pytest

from helpdesk_kb.embeddings import EmbeddingModel, EmbeddingServiceError
from helpdesk_kb.ingest.classification import PLACEHOLDER_CONTENT, build_chunk
from helpdesk_kb.ingest.models import KnowledgeChunk
from helpdesk_kb.interactions import InMemoryInteractionLog
from helpdesk_kb.knowledge import (
    EmbeddingStatus,
    InMemoryKnowledgeStore,
    KnowledgeBaseService,
    KnowledgeEntryNotFoundError,
)
from helpdesk_kb.providers import EmbeddingProvider, HashEmbeddingProvider
from helpdesk_kb.vectorstore import KnowledgeVectorIndex, MockVectorStore


class FlakyProvider(EmbeddingProvider):
    """Hash embeddings that fail for texts containing a marker while enabled."""

    name = "flaky"

    def __init__(self, marker: str = "UNEMBEDDABLE") -> None:
        self.marker = marker
        self.failing = True
        self._inner = HashEmbeddingProvider()

    @property
    def dimension(self) -> int:
        return self._inner.dimension

    def encode(self, texts):
        if self.failing and any(self.marker in text for text in texts):
            raise RuntimeError("embedding backend timed out")
        return self._inner.encode(texts)


@pytest.fixture()
def flaky_provider() -> FlakyProvider:
    return FlakyProvider()


@pytest.fixture()
def flaky_service(flaky_provider) -> KnowledgeBaseService:
    return KnowledgeBaseService(
        store=InMemoryKnowledgeStore(),
        index=KnowledgeVectorIndex(MockVectorStore()),
        embedder=EmbeddingModel(flaky_provider),
        interactions=InMemoryInteractionLog(),
    )


def _search(service: KnowledgeBaseService, text: str, threshold: float = 0.6):
    return service.search(service.embedder.embed_text(text), threshold, 8)


def test_add_entry_embeds_and_indexes(knowledge_service) -> None:
    entry = knowledge_service.add_entry(
        build_chunk("What is a ticket?", "A ticket is a digital record of your request."),
        "user-1",
        source="pdf:faq.pdf",
    )

    assert entry.embedding_status is EmbeddingStatus.EMBEDDED
    assert entry.created_by == "user-1"
    assert knowledge_service.index.count() == 1

    (hit,) = _search(knowledge_service, entry.embedding_text)
    assert hit.id == entry.id
    assert hit.similarity == pytest.approx(1.0)


def test_add_entry_uses_placeholder_without_mutating_input(knowledge_service) -> None:
    chunk = KnowledgeChunk(title="How do I escalate?", content="  ", category="Support")

    entry = knowledge_service.add_entry(chunk, "user-1")

    assert entry.content == PLACEHOLDER_CONTENT
    assert chunk.content == "  "


def test_bulk_add_counts_partial_failures(flaky_service) -> None:
    chunks = [
        build_chunk("How do I log in?", "Use your company SSO account."),
        build_chunk("UNEMBEDDABLE question here?", "This one fails to embed."),
        build_chunk("What is a ticket?", "A ticket is a digital record of your request."),
    ]

    result = flaky_service.add_chunks(chunks, "user-1")

    assert (result.succeeded, result.failed) == (2, 1)
    assert len(result.entry_ids) == 2
    assert "Chunk 1" in result.errors[0]
    statuses = sorted(entry.embedding_status.value for entry in flaky_service.list())
    assert statuses == ["embedded", "embedded", "failed"]
    assert flaky_service.index.count() == 2


def test_reconcile_embeds_failed_entries_once_backend_recovers(flaky_service, flaky_provider) -> None:
    flaky_service.add_chunks([build_chunk("UNEMBEDDABLE entry title", "Body text for the entry.")], "user-1")

    still_failing = flaky_service.reconcile()
    assert (still_failing.processed, still_failing.embedded, still_failing.failed) == (1, 0, 1)

    flaky_provider.failing = False
    recovered = flaky_service.reconcile()

    assert (recovered.processed, recovered.embedded, recovered.failed) == (1, 1, 0)
    assert flaky_service.list()[0].embedding_status is EmbeddingStatus.EMBEDDED
    assert flaky_service.reconcile().processed == 0


def test_update_re_embeds_changed_content(knowledge_service) -> None:
    entry = knowledge_service.add_entry(build_chunk("Reset password", "Use the forgot password link."), "u")

    updated = knowledge_service.update(entry.id, content="Contact the service desk to unlock your account.")

    assert updated.content.startswith("Contact the service desk")
    assert updated.embedding_status is EmbeddingStatus.EMBEDDED
    (hit,) = _search(knowledge_service, updated.embedding_text)
    assert hit.id == entry.id
    assert _search(knowledge_service, entry.embedding_text, threshold=0.95) == []


def test_update_rejects_unknown_fields_and_empty_content(knowledge_service) -> None:
    entry = knowledge_service.add_entry(build_chunk("Reset password", "Use the link."), "u")

    with pytest.raises(ValueError):
        knowledge_service.update(entry.id, is_active=False)
    with pytest.raises(ValueError):
        knowledge_service.update(entry.id, content="   ")
    assert knowledge_service.update(entry.id, title=None) == knowledge_service.get(entry.id)


def test_soft_delete_hides_entry_and_removes_vector(knowledge_service) -> None:
    entry = knowledge_service.add_entry(build_chunk("What is a ticket?", "A record of a request."), "u")

    knowledge_service.soft_delete(entry.id)

    assert knowledge_service.index.count() == 0
    assert knowledge_service.list() == []
    with pytest.raises(KnowledgeEntryNotFoundError):
        knowledge_service.get(entry.id)
    with pytest.raises(KnowledgeEntryNotFoundError):
        knowledge_service.soft_delete(entry.id)
    assert knowledge_service.store.get(entry.id, include_inactive=True).is_active is False


def test_search_skips_vectors_without_active_entries(knowledge_service) -> None:
    knowledge_service.index.upsert("orphan", knowledge_service.embedder.embed_text("orphan vector"))

    assert _search(knowledge_service, "orphan vector") == []


def test_list_filters_by_category(knowledge_service) -> None:
    knowledge_service.add_chunks(
        [
            build_chunk("How do I log in?", "Use your company SSO account."),
            build_chunk("What is a ticket?", "A ticket is a digital record of your request."),
        ],
        "u",
    )

    assert [entry.title for entry in knowledge_service.list(category="faq")] == ["What is a ticket?"]
    assert len(knowledge_service.list()) == 2


def test_record_usage_increments_counter(knowledge_service) -> None:
    entry = knowledge_service.add_entry(build_chunk("What is a ticket?", "A record."), "u")

    assert knowledge_service.record_usage(entry.id) == 1
    assert knowledge_service.record_usage(entry.id) == 2
    assert knowledge_service.get(entry.id).usage_count == 2


def test_optimize_rewrites_weak_entries_and_logs_interaction(knowledge_service, interaction_log) -> None:
    weak = knowledge_service.add_entry(
        KnowledgeChunk(title="Login", content="Reset your password from the login page. Then sign in.", category="General"),
        "u",
    )
    strong = knowledge_service.add_entry(
        build_chunk("How do I check my ticket status?", "Open the My Tickets page."), "u"
    )

    result = knowledge_service.optimize(user_id="admin-1")

    assert (result.processed, result.optimized, result.errors) == (1, 1, [])
    optimized = knowledge_service.get(weak.id)
    assert optimized.title == "Reset your password from the login page?"
    assert optimized.category == "Authentication"
    assert "password" in optimized.tags
    assert knowledge_service.get(strong.id).title == strong.title

    (interaction,) = interaction_log.list(interaction_type="knowledge_optimization")
    assert interaction.user_id == "admin-1"
    assert interaction.knowledge_base_id == weak.id
    assert interaction.metadata.previous_title == "Login"
    assert "title" in interaction.metadata.changed_fields


def test_optimize_truncates_long_content(knowledge_service) -> None:
    entry = knowledge_service.add_entry(
        build_chunk("How do I read the long guide?", "word " * 300), "u"
    )

    knowledge_service.optimize()

    content = knowledge_service.get(entry.id).content
    assert len(content) == 803
    assert content.endswith("...")
