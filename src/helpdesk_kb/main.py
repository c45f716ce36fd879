import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.datastructures import Headers
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from helpdesk_kb.api.knowledge import router as knowledge_router
from helpdesk_kb.api.rag import router as rag_router
from helpdesk_kb.config import get_settings
from helpdesk_kb.embeddings import EmbeddingServiceError, get_embedding_model
from helpdesk_kb.ingest.errors import IngestError
from helpdesk_kb.knowledge import KnowledgeEntryNotFoundError
from helpdesk_kb.llm_provider import LLMError, get_llm_status
from helpdesk_kb.logging_config import configure_logging
from helpdesk_kb.services.rag import InvalidQuestionError
from helpdesk_kb.telemetry import emit_app_startup_event, emit_exception
from helpdesk_kb.vectorstore import VectorStoreUnavailableError, get_vector_index

configure_logging(get_settings().log_dir)

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    emit_app_startup_event()
    yield


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware whose preflight responses carry no body."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=response.status_code, headers=headers)


app = FastAPI(title="Helpdesk Knowledge Base API", lifespan=lifespan)
app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(rag_router)
app.include_router(knowledge_router)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    return _error(400, "; ".join(messages) or "Invalid request")


@app.exception_handler(InvalidQuestionError)
async def _invalid_question(_: Request, exc: InvalidQuestionError) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(IngestError)
async def _ingest_error(_: Request, exc: IngestError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "chunks": [], "error": str(exc), "details": exc.details or str(exc)},
    )


@app.exception_handler(KnowledgeEntryNotFoundError)
async def _not_found(_: Request, exc: KnowledgeEntryNotFoundError) -> JSONResponse:
    return _error(404, str(exc))


@app.exception_handler(EmbeddingServiceError)
async def _embedding_error(request: Request, exc: EmbeddingServiceError) -> JSONResponse:
    emit_exception(module=request.url.path, error=exc)
    return _error(500, str(exc))


@app.exception_handler(LLMError)
async def _llm_error(request: Request, exc: LLMError) -> JSONResponse:
    emit_exception(module=request.url.path, error=exc)
    return _error(500, str(exc))


@app.exception_handler(VectorStoreUnavailableError)
async def _vector_store_error(request: Request, exc: VectorStoreUnavailableError) -> JSONResponse:
    emit_exception(module=request.url.path, error=exc, suggestion="check VECTOR_STORE configuration")
    return _error(503, str(exc))


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz")
def healthcheck() -> dict[str, object]:
    """Report which embedding, LLM and vector store backends are active."""

    payload: dict[str, object] = {"status": "ok"}

    try:
        embedder = get_embedding_model()
        payload["embeddings"] = {"backend": embedder.backend, "model": embedder.model_name, "dimension": embedder.dimension}
    except EmbeddingServiceError as exc:
        payload["status"] = "degraded"
        payload["embeddings"] = {"error": str(exc)}

    status = get_llm_status()
    llm_payload: dict[str, object] = {"backend": status.backend, "model": status.model_name, "ready": status.ready}
    if status.error:
        llm_payload["reason"] = status.error
    payload["llm"] = llm_payload

    try:
        index = get_vector_index()
        payload["vector_store"] = {"backend": index.backend_name, "count": index.count()}
    except VectorStoreUnavailableError as exc:
        payload["status"] = "degraded"
        payload["vector_store"] = {"error": str(exc)}

    return payload


@app.options("/{path:path}", include_in_schema=False)
def preflight(path: str) -> Response:
    """Answer bare ``OPTIONS`` requests that carry no CORS preflight headers."""
    return Response(status_code=200)
