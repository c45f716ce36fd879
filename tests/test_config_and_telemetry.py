from __future__ import annotations

import json
import logging
from pathlib import Path

from helpdesk_kb.config import Settings, get_settings
from helpdesk_kb.interactions import AIInteraction, AnswerBotMetadata, InMemoryInteractionLog, PDFIngestMetadata
from helpdesk_kb.logging_config import MinimalJSONFormatter
from helpdesk_kb.telemetry import LOGGER as TELEMETRY_LOGGER
from helpdesk_kb.telemetry import log_event, traced_duration


def test_settings_defaults() -> None:
    settings = get_settings()

    assert settings.match_threshold == 0.6
    assert settings.strict_threshold == 0.65
    assert settings.match_count == 8
    assert settings.history_window == 3
    assert settings.pdf_min_text_chars == 50
    assert settings.resolved_embedding_model() == "deterministic-hash"
    assert settings.max_upload_bytes == 20 * 1024 * 1024


def test_settings_read_environment_and_tolerate_bad_values(monkeypatch) -> None:
    monkeypatch.setenv("RAG_MATCH_THRESHOLD", "0.75")
    monkeypatch.setenv("RAG_MATCH_COUNT", "not-a-number")
    monkeypatch.setenv("PDF_LLM_SEGMENTATION", "off")
    monkeypatch.setenv("EMBEDDING_BACKEND", "OpenAI")

    settings = Settings()

    assert settings.match_threshold == 0.75
    assert settings.match_count == 8
    assert settings.pdf_llm_segmentation is False
    assert settings.embedding_backend == "openai"
    assert settings.resolved_embedding_model() == "text-embedding-3-small"


def test_backends_default_to_openai_when_key_present(monkeypatch) -> None:
    monkeypatch.delenv("EMBEDDING_BACKEND")
    monkeypatch.delenv("LLM_BACKEND")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")

    settings = Settings()

    assert settings.embedding_backend == "openai"
    assert settings.llm_backend == "openai"


def test_log_event_emits_structured_payload(caplog) -> None:
    with caplog.at_level(logging.INFO, logger=TELEMETRY_LOGGER.name):
        log_event(TELEMETRY_LOGGER, "retriever.search", session_id="s-1", duration_ms=1.23456, selected=2)

    record = caplog.records[-1]
    assert record.msg == {
        "step": "retriever.search",
        "module": "helpdesk_kb.telemetry",
        "session_id": "s-1",
        "duration_ms": 1.235,
        "selected": 2,
    }


def test_traced_duration_logs_start_and_completion(caplog) -> None:
    with caplog.at_level(logging.INFO, logger=TELEMETRY_LOGGER.name):
        with traced_duration("ingest", file="faq.pdf"):
            pass

    steps = [record.msg["step"] for record in caplog.records if isinstance(record.msg, dict)]
    assert steps == ["ingest.start", "ingest.complete"]


def test_json_formatter_merges_dict_messages() -> None:
    record = logging.LogRecord("helpdesk_kb.test", logging.INFO, __file__, 1, {"step": "x", "count": 2}, None, None)

    payload = json.loads(MinimalJSONFormatter().format(record))

    assert payload["step"] == "x"
    assert payload["count"] == 2
    assert payload["level"] == "INFO"
    assert payload["module"] == "helpdesk_kb.test"


def test_interaction_log_filters_and_serialises() -> None:
    log = InMemoryInteractionLog()
    answer = log.append(
        AIInteraction(
            session_id="s-1",
            user_id="user-1",
            input_text="What is a ticket?",
            ai_response="A record.",
            confidence_score=0.9,
            metadata=AnswerBotMetadata(similar_entries_count=1, top_similarity=0.9, used_fallback=False),
        )
    )
    log.append(
        AIInteraction(
            session_id="pdf_1",
            user_id="user-1",
            input_text="faq.pdf",
            ai_response="Extracted 1 knowledge chunks",
            confidence_score=1.0,
            metadata=PDFIngestMetadata(
                file_name="faq.pdf",
                extraction_strategy="structured",
                segmentation_method="numbered-item",
                chunk_count=1,
            ),
        )
    )

    assert len(log) == 2
    assert log.list(session_id="s-1") == [answer]
    assert [item.interaction_type for item in log.list(interaction_type="pdf_ingest")] == ["pdf_ingest"]
    payload = answer.to_dict()
    assert payload["interaction_type"] == "answer_bot"
    assert payload["metadata"]["used_fallback"] is False
    assert isinstance(payload["created_at"], str)
    json.dumps(payload)


def test_settings_log_dir_follows_environment(tmp_path: Path) -> None:
    assert get_settings().log_dir == tmp_path / "logs"
