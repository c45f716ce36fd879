from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Sequence

from ..config import Settings, get_settings
from ..embeddings import EmbeddingModel, get_embedding_model
from ..ingest.extractors import PDFTextExtractor
from ..ingest.models import IngestResult
from ..ingest.pipeline import PDFKnowledgePipeline
from ..ingest.segmentation import QASegmenter
from ..interactions import AIInteraction, AnswerBotMetadata, PDFIngestMetadata
from ..knowledge import BulkAddResult, KnowledgeBaseService, RetrievedChunk, get_knowledge_service
from ..llm_provider import LLM, LLMError, get_llm
from ..prompt_builder import (
    FALLBACK_ANSWER,
    ConversationTurn,
    build_system_prompt,
    is_fallback_answer,
)
from ..telemetry import (
    emit_exception,
    emit_inference_request,
    emit_inference_result,
    emit_prompt_event,
    emit_retriever_event,
    traced_duration,
)

LOGGER = logging.getLogger(__name__)

MAX_QUESTION_CHARS = 2000
MAX_SOURCES = 3


class InvalidQuestionError(ValueError):
    """Raised before any external call when the request cannot be answered."""


@dataclass(slots=True)
class AnswerSource:
    id: str
    title: str
    category: str
    similarity: float


@dataclass(slots=True)
class AnswerResult:
    """Structured result returned from :meth:`RAGService.answer`."""

    answer: str
    confidence: float
    sources: List[AnswerSource]
    session_id: str
    used_fallback: bool
    reasoning: str


@dataclass(slots=True)
class PDFIngestOutcome:
    result: IngestResult
    persisted: Optional[BulkAddResult] = None
    entry_ids: List[str] = field(default_factory=list)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def select_context(
    candidates: Sequence[RetrievedChunk], strict_threshold: float, broad_limit: int
) -> List[RetrievedChunk]:
    """Prefer strong matches; otherwise fall back to the best few weaker ones."""

    strict = [chunk for chunk in candidates if chunk.similarity >= strict_threshold]
    if strict:
        return strict
    return list(candidates[:broad_limit])


class RAGService:
    """High level orchestration of PDF ingestion and knowledge-grounded answers."""

    def __init__(
        self,
        *,
        knowledge: KnowledgeBaseService | None = None,
        embedder: EmbeddingModel | None = None,
        llm: LLM | None = None,
        pipeline: PDFKnowledgePipeline | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.knowledge = knowledge or get_knowledge_service()
        self.embedder = embedder or self.knowledge.embedder
        self.llm = llm or get_llm()
        self.pipeline = pipeline or PDFKnowledgePipeline(
            extractor=PDFTextExtractor(min_text_chars=self.settings.pdf_min_text_chars),
            segmenter=QASegmenter(llm=self.llm, use_llm=self.settings.pdf_llm_segmentation),
        )
        self.interactions = self.knowledge.interactions

    def ingest_pdf(
        self,
        data: bytes,
        *,
        file_name: str,
        user_id: str,
        persist: bool = False,
    ) -> PDFIngestOutcome:
        """Turn a PDF into chunks and optionally store them in the knowledge base."""

        try:
            result = self.pipeline.process(data, file_name=file_name, user_id=user_id)
        except LLMError as error:
            emit_exception(module=f"{__name__}.segmentation", error=error)
            raise

        outcome = PDFIngestOutcome(result=result)
        if persist and result.chunks:
            with traced_duration(
                "ingest.persist", logger=LOGGER, file_name=file_name, chunks=len(result.chunks)
            ):
                outcome.persisted = self.knowledge.add_chunks(
                    result.chunks, user_id, source=f"pdf:{file_name}"
                )
            outcome.entry_ids = list(outcome.persisted.entry_ids)

        self.interactions.append(
            AIInteraction(
                session_id=f"pdf_{uuid.uuid4().hex}",
                user_id=user_id,
                input_text=file_name,
                ai_response=f"Extracted {len(result.chunks)} knowledge chunks",
                confidence_score=_clamp(
                    max((chunk.confidence or 0.0 for chunk in result.chunks), default=0.0)
                ),
                metadata=PDFIngestMetadata(
                    file_name=file_name,
                    extraction_strategy=result.extraction.strategy,
                    segmentation_method=result.method,
                    chunk_count=len(result.chunks),
                    language=result.language,
                ),
            )
        )
        return outcome

    def answer(
        self,
        question: str | None,
        *,
        user_id: str | None,
        session_id: str | None = None,
        history: Sequence[ConversationTurn] = (),
    ) -> AnswerResult:
        question = (question or "").strip()
        if not question:
            raise InvalidQuestionError("Question is required")
        if not user_id or not str(user_id).strip():
            raise InvalidQuestionError("userId is required")
        question = question[:MAX_QUESTION_CHARS]
        session_id = session_id or f"session_{uuid.uuid4().hex}"
        settings = self.settings

        started = time.perf_counter()
        query_vector = self.embedder.embed_text(question)
        candidates = self.knowledge.search(
            query_vector, settings.match_threshold, settings.match_count
        )
        context = select_context(candidates, settings.strict_threshold, settings.broad_limit)
        emit_retriever_event(
            query=question,
            threshold=settings.match_threshold,
            limit=settings.match_count,
            results=[{"id": chunk.id, "similarity": round(chunk.similarity, 4)} for chunk in candidates],
            selected=len(context),
            duration_ms=(time.perf_counter() - started) * 1000.0,
            session_id=session_id,
        )

        if not context:
            result = AnswerResult(
                answer=FALLBACK_ANSWER,
                confidence=0.0,
                sources=[],
                session_id=session_id,
                used_fallback=True,
                reasoning="No knowledge base entries matched the question closely enough.",
            )
        else:
            result = self._compose(question, session_id, context, history)

        self.interactions.append(
            AIInteraction(
                session_id=session_id,
                user_id=str(user_id),
                input_text=question,
                ai_response=result.answer,
                confidence_score=result.confidence,
                knowledge_base_id=None if result.used_fallback else context[0].id,
                metadata=AnswerBotMetadata(
                    similar_entries_count=len(candidates),
                    top_similarity=_clamp(candidates[0].similarity) if candidates else 0.0,
                    used_fallback=result.used_fallback,
                    source_ids=tuple(source.id for source in result.sources),
                ),
            )
        )
        if not result.used_fallback:
            self.knowledge.record_usage(context[0].id)
        return result

    def _compose(
        self,
        question: str,
        session_id: str,
        context: Sequence[RetrievedChunk],
        history: Sequence[ConversationTurn],
    ) -> AnswerResult:
        settings = self.settings
        system_prompt = build_system_prompt(
            context, history, history_window=settings.history_window
        )
        source_ids = [chunk.id for chunk in context]
        emit_prompt_event(
            system_prompt=system_prompt,
            sources=source_ids,
            history_turns=min(len(history), settings.history_window),
        )
        req_id = uuid.uuid4().hex
        emit_inference_request(
            req_id=req_id,
            session_id=session_id,
            purpose="answer",
            prompt_preview=question,
            prompt_len=len(system_prompt) + len(question),
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            sources=source_ids,
        )

        started = time.perf_counter()
        try:
            output = self.llm.generate(
                question,
                settings.llm_max_tokens,
                settings.llm_temperature,
                system=system_prompt,
            )
        except LLMError as error:
            LOGGER.exception("LLM generation failed for session %s", session_id)
            emit_exception(module=f"{__name__}.llm", error=error, session_id=session_id)
            raise

        declined = is_fallback_answer(output)
        emit_inference_result(
            req_id=req_id,
            session_id=session_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            model_used=self.llm.model_name,
            answer_preview=output,
            fallback=declined,
        )
        if declined:
            return AnswerResult(
                answer=FALLBACK_ANSWER,
                confidence=0.0,
                sources=[],
                session_id=session_id,
                used_fallback=True,
                reasoning="The retrieved knowledge did not contain an answer to the question.",
            )

        top = context[0]
        return AnswerResult(
            answer=output.strip(),
            confidence=_clamp(top.similarity),
            sources=[
                AnswerSource(
                    id=chunk.id,
                    title=chunk.title,
                    category=chunk.category,
                    similarity=_clamp(chunk.similarity),
                )
                for chunk in context[:MAX_SOURCES]
            ],
            session_id=session_id,
            used_fallback=False,
            reasoning=(
                f"Answer grounded in {len(context)} knowledge base "
                f"{'entry' if len(context) == 1 else 'entries'} "
                f"(top similarity {top.similarity:.2f})."
            ),
        )


@lru_cache()
def get_rag_service() -> RAGService:
    """FastAPI dependency returning the shared :class:`RAGService` instance."""

    return RAGService()


def reset_rag_service_cache() -> None:
    get_rag_service.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "AnswerResult",
    "AnswerSource",
    "InvalidQuestionError",
    "PDFIngestOutcome",
    "RAGService",
    "get_rag_service",
    "reset_rag_service_cache",
    "select_context",
]
