"""Environment driven configuration for the knowledge-base service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

LOGGER = logging.getLogger(__name__)

DEFAULT_LLM_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_LOCAL_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _flag_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _default_embedding_backend() -> str:
    return "openai" if os.getenv("OPENAI_API_KEY") else "hash"


def _default_llm_backend() -> str:
    return "openai" if os.getenv("OPENAI_API_KEY") else "stub"


@dataclass(frozen=True, slots=True)
class Settings:
    """Snapshot of every tunable the service reads from the environment."""

    openai_api_key: str | None = field(default_factory=lambda: os.getenv("OPENAI_API_KEY") or None)
    openai_base_url: str | None = field(default_factory=lambda: os.getenv("OPENAI_BASE_URL") or None)
    external_timeout_seconds: float = field(
        default_factory=lambda: _float_from_env("EXTERNAL_TIMEOUT_SECONDS", 30.0)
    )

    embedding_backend: str = field(
        default_factory=lambda: _env_str("EMBEDDING_BACKEND", _default_embedding_backend()).lower()
    )
    embedding_model: str | None = field(default_factory=lambda: os.getenv("EMBEDDING_MODEL") or None)
    embedding_dimension: int = field(default_factory=lambda: _int_from_env("EMBEDDING_DIMENSION", 384))
    embedding_device: str | None = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE") or None)

    llm_backend: str = field(
        default_factory=lambda: _env_str("LLM_BACKEND", _default_llm_backend()).lower()
    )
    llm_model: str = field(default_factory=lambda: _env_str("LLM_MODEL", DEFAULT_LLM_MODEL))
    llm_temperature: float = field(default_factory=lambda: _float_from_env("LLM_TEMPERATURE", 0.2))
    llm_max_tokens: int = field(default_factory=lambda: _int_from_env("LLM_MAX_TOKENS", 500))

    match_threshold: float = field(default_factory=lambda: _float_from_env("RAG_MATCH_THRESHOLD", 0.6))
    strict_threshold: float = field(default_factory=lambda: _float_from_env("RAG_STRICT_THRESHOLD", 0.65))
    match_count: int = field(default_factory=lambda: _int_from_env("RAG_MATCH_COUNT", 8))
    broad_limit: int = field(default_factory=lambda: _int_from_env("RAG_BROAD_LIMIT", 5))
    history_window: int = field(default_factory=lambda: _int_from_env("RAG_HISTORY_WINDOW", 3))

    pdf_min_text_chars: int = field(default_factory=lambda: _int_from_env("PDF_MIN_TEXT_CHARS", 50))
    pdf_llm_segmentation: bool = field(
        default_factory=lambda: _flag_from_env("PDF_LLM_SEGMENTATION", True)
    )
    pdf_max_upload_mb: int = field(default_factory=lambda: _int_from_env("PDF_MAX_UPLOAD_MB", 20))

    vector_store: str = field(default_factory=lambda: _env_str("VECTOR_STORE", "memory").lower())
    chroma_persist_dir: Path = field(
        default_factory=lambda: Path(_env_str("CHROMA_PERSIST_DIR", "chroma_db"))
    )
    log_dir: Path = field(default_factory=lambda: Path(_env_str("LOG_DIR", "logs")))

    @property
    def max_upload_bytes(self) -> int:
        return max(self.pdf_max_upload_mb, 1) * 1024 * 1024

    def resolved_embedding_model(self) -> str:
        if self.embedding_model:
            return self.embedding_model
        if self.embedding_backend == "openai":
            return DEFAULT_OPENAI_EMBEDDING_MODEL
        if self.embedding_backend == "sentence-transformers":
            return DEFAULT_LOCAL_EMBEDDING_MODEL
        return "deterministic-hash"


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings snapshot."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
