"""Embedding helpers backed by OpenAI, Sentence Transformers or a hash fallback."""
from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import List, Optional, Sequence

from .config import Settings, get_settings
from .providers.base import EmbeddingProvider
from .providers.mock_embedding import HashEmbeddingProvider
from .telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)

OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingServiceError(RuntimeError):
    """Raised when the embedding backend cannot produce vectors."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings endpoint of the OpenAI API (or a compatible server)."""

    name = "openai"

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        dimension: int | None = None,
    ) -> None:
        from openai import OpenAI

        self.model = model
        self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self._dimension = dimension or OPENAI_DIMENSIONS.get(model, 1536)

    @property
    def dimension(self) -> int:
        return self._dimension

    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        response = self._client.embeddings.create(model=self.model, input=list(texts))
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


class SentenceTransformerProvider(EmbeddingProvider):
    """Local ``sentence-transformers`` model, loaded on construction."""

    name = "sentence-transformers"

    def __init__(self, model: str, *, device: str | None = None) -> None:
        try:
            from sentence_transformers import SentenceTransformer  # type: ignore import-not-found
        except ImportError as error:
            raise EmbeddingServiceError(
                "sentence-transformers is not installed", cause=error
            ) from error

        self.model = model
        self._model = SentenceTransformer(model, device=device)
        self._dimension = int(self._model.get_sentence_embedding_dimension())

    @property
    def dimension(self) -> int:
        return self._dimension

    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        embeddings = self._model.encode(
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()


def build_provider(settings: Settings) -> EmbeddingProvider:
    backend = settings.embedding_backend
    model = settings.resolved_embedding_model()
    if backend == "openai":
        return OpenAIEmbeddingProvider(
            model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.external_timeout_seconds,
        )
    if backend in {"sentence-transformers", "local"}:
        return SentenceTransformerProvider(model, device=settings.embedding_device)
    if backend == "hash":
        return HashEmbeddingProvider(settings.embedding_dimension)
    raise EmbeddingServiceError(f"Unknown embedding backend: {backend}")


class EmbeddingModel:
    """Single entry point for corpus and query embeddings.

    The same provider instance embeds stored chunks and incoming questions, so
    both sides of a similarity comparison share one vector space.
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        if provider is None:
            settings = settings or get_settings()
            try:
                provider = build_provider(settings)
            except EmbeddingServiceError:
                raise
            except Exception as error:
                raise EmbeddingServiceError(
                    f"Failed to initialise embedding backend '{settings.embedding_backend}'",
                    cause=error,
                ) from error
        self._provider = provider
        LOGGER.info(
            "Embedding backend ready: %s (dimension=%s)", self.model_name, self.dimension
        )

    @property
    def model_name(self) -> str:
        return getattr(self._provider, "model", None) or self._provider.name

    @property
    def backend(self) -> str:
        return self._provider.name

    @property
    def dimension(self) -> int:
        return int(self._provider.dimension)

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        started = time.perf_counter()
        try:
            embeddings = self._provider.encode(list(texts))
            if len(embeddings) != len(texts):
                raise EmbeddingServiceError(
                    f"Embedding backend returned {len(embeddings)} vectors for {len(texts)} texts"
                )
        except Exception as error:
            emit_embeddings_event(
                model=self.model_name,
                count=len(texts),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                errors=[str(error)],
            )
            if isinstance(error, EmbeddingServiceError):
                raise
            raise EmbeddingServiceError(f"Embedding request failed: {error}", cause=error) from error

        emit_embeddings_event(
            model=self.model_name,
            count=len(texts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return embeddings

    def embed_text(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]


@lru_cache()
def get_embedding_model() -> EmbeddingModel:
    """Return a cached embedding model instance."""

    return EmbeddingModel()


def reset_embedding_model_cache() -> None:
    """Clear the cached embedding model instance (primarily for testing)."""

    get_embedding_model.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "EmbeddingModel",
    "EmbeddingServiceError",
    "OpenAIEmbeddingProvider",
    "SentenceTransformerProvider",
    "build_provider",
    "get_embedding_model",
    "reset_embedding_model_cache",
]
