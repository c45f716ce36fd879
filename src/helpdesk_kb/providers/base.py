"""Base provider interfaces for embeddings and language models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

__all__ = ["EmbeddingProvider", "LLMProvider"]


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    name: str = "embedding"

    @abstractmethod
    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        """Encode the provided texts into fixed-dimension embeddings."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector returned by :meth:`encode`."""


class LLMProvider(ABC):
    """Abstract interface for large language model providers."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        *,
        system: Optional[str] = None,
    ) -> str:
        """Generate text from the given prompt."""

    @property
    def is_ready(self) -> bool:
        return False

    @property
    def model_name(self) -> str:
        return "stub"
