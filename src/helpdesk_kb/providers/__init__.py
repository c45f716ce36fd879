"""Provider interfaces plus the deterministic embedding and LLM mocks."""
from __future__ import annotations

from .base import EmbeddingProvider, LLMProvider
from .mock_embedding import HashEmbeddingProvider
from .mock_llm import MockLLMProvider

__all__ = ["EmbeddingProvider", "HashEmbeddingProvider", "LLMProvider", "MockLLMProvider"]
