"""Knowledge-base maintenance endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from helpdesk_kb.ingest.classification import build_chunk
from helpdesk_kb.knowledge import KnowledgeBaseService, KnowledgeEntry, get_knowledge_service

router = APIRouter(prefix="/knowledge-base", tags=["knowledge-base"])


class ChunkInput(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = ""
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class BulkAddRequest(BaseModel):
    userId: str = Field(..., min_length=1)
    chunks: list[ChunkInput] = Field(..., min_length=1)
    source: Optional[str] = None


class BulkAddResponse(BaseModel):
    succeeded: int
    failed: int
    entry_ids: list[str]
    errors: list[str]


class EntryModel(BaseModel):
    id: str
    title: str
    content: str
    category: str
    tags: list[str]
    confidence: Optional[float]
    created_by: str
    is_active: bool
    usage_count: int
    embedding_status: str
    source: Optional[str]
    created_at: datetime
    updated_at: datetime


class EntryUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    tags: Optional[list[str]] = None


class ReconcileResponse(BaseModel):
    processed: int
    embedded: int
    failed: int


class OptimizeResponse(BaseModel):
    processed: int
    optimized: int
    errors: list[str]


def _serialise_entry(entry: KnowledgeEntry) -> EntryModel:
    return EntryModel(
        id=entry.id,
        title=entry.title,
        content=entry.content,
        category=entry.category,
        tags=list(entry.tags),
        confidence=entry.confidence,
        created_by=entry.created_by,
        is_active=entry.is_active,
        usage_count=entry.usage_count,
        embedding_status=entry.embedding_status.value,
        source=entry.source,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _to_chunk(payload: ChunkInput):
    chunk = build_chunk(payload.title, payload.content, payload.confidence)
    if payload.category:
        chunk.category = payload.category
    if payload.tags is not None:
        chunk.tags = list(payload.tags)
    return chunk


@router.post("/entries", response_model=BulkAddResponse)
async def add_entries(
    request: BulkAddRequest,
    service: KnowledgeBaseService = Depends(get_knowledge_service),
) -> BulkAddResponse:
    chunks = [_to_chunk(item) for item in request.chunks]
    result = await run_in_threadpool(
        service.add_chunks, chunks, request.userId, source=request.source
    )
    return BulkAddResponse(
        succeeded=result.succeeded,
        failed=result.failed,
        entry_ids=result.entry_ids,
        errors=result.errors,
    )


@router.get("/entries", response_model=list[EntryModel])
def list_entries(
    category: Optional[str] = Query(None),
    service: KnowledgeBaseService = Depends(get_knowledge_service),
) -> list[EntryModel]:
    return [_serialise_entry(entry) for entry in service.list(category=category)]


@router.get("/entries/{entry_id}", response_model=EntryModel)
def get_entry(
    entry_id: str,
    service: KnowledgeBaseService = Depends(get_knowledge_service),
) -> EntryModel:
    return _serialise_entry(service.get(entry_id))


@router.patch("/entries/{entry_id}", response_model=EntryModel)
async def update_entry(
    entry_id: str,
    request: EntryUpdate,
    service: KnowledgeBaseService = Depends(get_knowledge_service),
) -> EntryModel:
    changes = request.model_dump(exclude_none=True)
    entry = await run_in_threadpool(service.update, entry_id, **changes)
    return _serialise_entry(entry)


@router.delete("/entries/{entry_id}", response_model=EntryModel)
def delete_entry(
    entry_id: str,
    service: KnowledgeBaseService = Depends(get_knowledge_service),
) -> EntryModel:
    return _serialise_entry(service.soft_delete(entry_id))


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_embeddings(
    service: KnowledgeBaseService = Depends(get_knowledge_service),
) -> ReconcileResponse:
    result = await run_in_threadpool(service.reconcile)
    return ReconcileResponse(processed=result.processed, embedded=result.embedded, failed=result.failed)


@router.post("/optimize", response_model=OptimizeResponse)
async def optimize_entries(
    service: KnowledgeBaseService = Depends(get_knowledge_service),
) -> OptimizeResponse:
    result = await run_in_threadpool(service.optimize)
    return OptimizeResponse(processed=result.processed, optimized=result.optimized, errors=result.errors)
