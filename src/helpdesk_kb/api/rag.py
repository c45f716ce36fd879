"""API router exposing PDF ingestion and the answer bot."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from helpdesk_kb.config import get_settings
from helpdesk_kb.ingest.errors import IngestError, InvalidPDFError
from helpdesk_kb.llm_provider import LLMError
from helpdesk_kb.prompt_builder import ConversationTurn
from helpdesk_kb.services.rag import AnswerResult, PDFIngestOutcome, RAGService, get_rag_service

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["rag"])


class ChunkModel(BaseModel):
    title: str
    content: str
    category: str
    tags: list[str]
    confidence: Optional[float] = None


class PersistSummary(BaseModel):
    succeeded: int
    failed: int
    entry_ids: list[str]
    errors: list[str] = Field(default_factory=list)


class PDFKnowledgeResponse(BaseModel):
    """Response body returned from the PDF processing endpoint."""

    success: bool
    chunks: list[ChunkModel]
    message: str
    extractedTextSample: Optional[str] = None
    processingMethod: Optional[str] = None
    language: Optional[str] = None
    persisted: Optional[PersistSummary] = None


class HistoryTurn(BaseModel):
    question: str
    answer: str


class AnswerBotRequest(BaseModel):
    """Request body accepted by the answer bot endpoint."""

    question: Optional[str] = Field(None, description="User question to answer from the knowledge base.")
    sessionId: Optional[str] = None
    userId: Optional[str] = None
    conversationHistory: list[HistoryTurn] = Field(default_factory=list)


class AnswerSourceModel(BaseModel):
    id: str
    title: str
    category: str
    similarity: float


class AnswerBotResponse(BaseModel):
    answer: str
    confidence: float
    sources: list[AnswerSourceModel]
    sessionId: str
    usedFallback: bool
    reasoning: str


def _failure(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "chunks": [], "error": error, "details": details or error},
    )


def _serialise_outcome(outcome: PDFIngestOutcome) -> PDFKnowledgeResponse:
    result = outcome.result
    persisted = None
    if outcome.persisted is not None:
        persisted = PersistSummary(
            succeeded=outcome.persisted.succeeded,
            failed=outcome.persisted.failed,
            entry_ids=outcome.persisted.entry_ids,
            errors=outcome.persisted.errors,
        )
    return PDFKnowledgeResponse(
        success=True,
        chunks=[ChunkModel(**chunk.to_dict()) for chunk in result.chunks],
        message=f"Successfully extracted {len(result.chunks)} knowledge chunks from PDF",
        extractedTextSample=result.text_sample,
        processingMethod=result.processing_method,
        language=result.language,
        persisted=persisted,
    )


@router.post("/process-pdf-knowledge", response_model=PDFKnowledgeResponse)
async def process_pdf_knowledge(
    pdf: Optional[UploadFile] = File(None),
    userId: Optional[str] = Form(None),
    persist: bool = Form(False),
    rag_service: RAGService = Depends(get_rag_service),
):
    """Extract knowledge chunks from an uploaded PDF."""

    if pdf is None:
        return _failure(400, "No PDF file provided")
    if not userId or not userId.strip():
        return _failure(400, "userId is required")

    data = await pdf.read()
    file_name = pdf.filename or "upload.pdf"
    try:
        if len(data) > get_settings().max_upload_bytes:
            raise InvalidPDFError(
                "PDF file is too large",
                details=f"Uploads are limited to {get_settings().pdf_max_upload_mb} MB.",
            )
        outcome = await run_in_threadpool(
            rag_service.ingest_pdf,
            data,
            file_name=file_name,
            user_id=userId,
            persist=persist,
        )
    except IngestError as exc:
        LOGGER.info("Rejected PDF %s: %s", file_name, exc)
        return _failure(exc.status_code, str(exc), exc.details)
    except LLMError as exc:
        LOGGER.exception("LLM failure while segmenting %s", file_name)
        return _failure(500, str(exc))
    return _serialise_outcome(outcome)


def _serialise_answer(result: AnswerResult) -> AnswerBotResponse:
    return AnswerBotResponse(
        answer=result.answer,
        confidence=result.confidence,
        sources=[
            AnswerSourceModel(
                id=source.id,
                title=source.title,
                category=source.category,
                similarity=source.similarity,
            )
            for source in result.sources
        ],
        sessionId=result.session_id,
        usedFallback=result.used_fallback,
        reasoning=result.reasoning,
    )


@router.post("/ai-answer-bot", response_model=AnswerBotResponse)
async def ai_answer_bot(
    request: AnswerBotRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> AnswerBotResponse:
    """Answer a question from the knowledge base or return the fallback sentence."""

    history = [ConversationTurn(question=turn.question, answer=turn.answer) for turn in request.conversationHistory]
    result = await run_in_threadpool(
        rag_service.answer,
        request.question,
        user_id=request.userId,
        session_id=request.sessionId,
        history=history,
    )
    return _serialise_answer(result)
