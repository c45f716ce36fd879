"""Deterministic embedding provider for tests and offline development."""
from __future__ import annotations

import hashlib
import math
import re
from typing import List, Sequence

from .base import EmbeddingProvider

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class HashEmbeddingProvider(EmbeddingProvider):
    """Hash each token into a signed bucket so shared words yield similar vectors."""

    name = "deterministic-hash"

    def __init__(self, dimension: int = 384) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._embed(str(text)) for text in texts]

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimension
            vector[index] += 1.0 if digest[4] & 1 else -1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]
