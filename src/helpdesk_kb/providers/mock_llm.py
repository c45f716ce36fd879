"""Scripted LLM provider for deterministic testing."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .base import LLMProvider


@dataclass(slots=True)
class RecordedCall:
    prompt: str
    system: Optional[str]
    max_tokens: int
    temperature: float


class MockLLMProvider(LLMProvider):
    """Replay scripted responses in order and record every call.

    Once the script is exhausted the last response is repeated. Without a
    script the provider echoes a prefix of the prompt.
    """

    def __init__(self, responses: Iterable[str] = (), *, ready: bool = True) -> None:
        self._responses = list(responses)
        self._ready = ready
        self.calls: List[RecordedCall] = []

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def model_name(self) -> str:
        return "mock"

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def generate(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        *,
        system: Optional[str] = None,
    ) -> str:
        self.calls.append(
            RecordedCall(prompt=prompt, system=system, max_tokens=max_tokens, temperature=temperature)
        )
        if not self._responses:
            return f"MOCK_ANSWER: {prompt[:100]}"
        index = min(len(self.calls) - 1, len(self._responses) - 1)
        return self._responses[index]
