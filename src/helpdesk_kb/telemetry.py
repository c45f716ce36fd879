"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

LOGGER = logging.getLogger("helpdesk_kb.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "EMBEDDING_BACKEND",
    "EMBEDDING_MODEL",
    "LLM_BACKEND",
    "LLM_MODEL",
    "LLM_TEMPERATURE",
    "LLM_MAX_TOKENS",
    "RAG_MATCH_THRESHOLD",
    "RAG_STRICT_THRESHOLD",
    "RAG_MATCH_COUNT",
    "PDF_MIN_TEXT_CHARS",
    "PDF_LLM_SEGMENTATION",
    "VECTOR_STORE",
    "CHROMA_PERSIST_DIR",
    "EXTERNAL_TIMEOUT_SECONDS",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    session_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if session_id:
        event["session_id"] = session_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_llm_provider_init(
    *, provider: str, ready: bool, model: str | None, temperature: float | None
) -> None:
    details = {
        "provider": provider,
        "ready": ready,
        "model": model,
        "temperature": temperature,
    }
    log_event(LOGGER, "llm.provider.init", details=details)


def emit_extraction_event(
    *,
    strategy: str | None,
    attempted: Iterable[str],
    object_count: int,
    stream_count: int,
    text_chars: int,
    duration_ms: float,
) -> None:
    details = {
        "strategy": strategy,
        "attempted": list(attempted),
        "objects": object_count,
        "streams": stream_count,
        "text_chars": text_chars,
    }
    level = "info" if strategy else "warning"
    log_event(LOGGER, "pdf.extract", level=level, duration_ms=duration_ms, details=details)


def emit_segmentation_event(
    *,
    method: str,
    yields: dict[str, int],
    pairs: int,
    chunks: int,
) -> None:
    details = {"method": method, "yields": yields, "pairs": pairs, "chunks": chunks}
    log_event(LOGGER, "pdf.segment", details=details)


def emit_inference_request(
    *,
    req_id: str,
    session_id: str | None,
    purpose: str,
    prompt_preview: str,
    prompt_len: int,
    temperature: float,
    max_tokens: int | None,
    sources: Iterable[str] = (),
) -> None:
    details = {
        "purpose": purpose,
        "prompt_preview": prompt_preview[:120],
        "prompt_len": prompt_len,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "sources": list(sources),
    }
    log_event(LOGGER, "inference.request", req_id=req_id, session_id=session_id, details=details)


def emit_inference_result(
    *,
    req_id: str,
    session_id: str | None,
    duration_ms: float,
    model_used: str,
    answer_preview: str,
    fallback: bool,
) -> None:
    details = {
        "model_used": model_used,
        "answer_preview": answer_preview[:120],
        "fallback": fallback,
        "tokens_generated": len(answer_preview.split()),
    }
    log_event(
        LOGGER,
        "inference.result",
        req_id=req_id,
        session_id=session_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_embeddings_event(
    *, model: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "model": model,
        "count": count,
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "error" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, duration_ms=duration_ms, details=details)


def emit_vectorstore_event(
    step: str,
    *,
    backend: str,
    count: int,
    error: BaseException | None = None,
) -> None:
    details = {"backend": backend, "count": count}
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, details=details, exc=error)


def emit_retriever_event(
    *,
    query: str,
    threshold: float,
    limit: int,
    results: list[dict[str, Any]],
    selected: int,
    duration_ms: float,
    session_id: str | None = None,
) -> None:
    details = {
        "query_preview": query[:120],
        "threshold": threshold,
        "limit": limit,
        "results": results,
        "selected": selected,
    }
    log_event(
        LOGGER,
        "retriever.search",
        session_id=session_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_prompt_event(
    *,
    system_prompt: str,
    sources: Iterable[str],
    history_turns: int,
) -> None:
    details = {
        "system_prompt_preview": system_prompt[:120],
        "system_prompt_len": len(system_prompt),
        "sources": list(sources),
        "history_turns": history_turns,
    }
    log_event(LOGGER, "prompt.compose", details=details)


def emit_ingest_event(
    step: str,
    *,
    file_name: str,
    user_id: str | None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    language: str | None = None,
    method: str | None = None,
    chunks: int | None = None,
) -> None:
    details = {
        "file": file_name,
        "user_id": user_id,
        "size_bytes": size_bytes,
        "language": language,
        "method": method,
        "chunks": chunks,
    }
    log_event(LOGGER, step, duration_ms=duration_ms, details=details)


def emit_knowledge_event(
    step: str,
    *,
    entry_id: str | None = None,
    count: int | None = None,
    error: BaseException | None = None,
    **fields: Any,
) -> None:
    details: dict[str, Any] = {"entry_id": entry_id, "count": count}
    details.update(fields)
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, details=details, exc=error)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    session_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        session_id=session_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_llm_provider_init",
    "emit_extraction_event",
    "emit_segmentation_event",
    "emit_inference_request",
    "emit_inference_result",
    "emit_embeddings_event",
    "emit_vectorstore_event",
    "emit_retriever_event",
    "emit_prompt_event",
    "emit_ingest_event",
    "emit_knowledge_event",
    "emit_exception",
    "traced_duration",
    "log_event",
]
