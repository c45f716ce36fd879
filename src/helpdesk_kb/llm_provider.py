"""Access to the chat-completion model used for answers and segmentation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .config import Settings, get_settings
from .prompt_builder import FALLBACK_ANSWER
from .providers.base import LLMProvider
from .telemetry import emit_llm_provider_init

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class LLMStatus:
    """Structured status information about the configured LLM backend."""

    ready: bool
    model_name: str
    backend: str
    error: Optional[str] = None


class LLMError(RuntimeError):
    """Base exception raised for LLM provider issues."""


class LLMNotReadyError(LLMError):
    """Raised when the model backend is not configured or reachable."""


class LLMGenerationError(LLMError):
    """Raised when text generation fails unexpectedly."""


class LLM(LLMProvider):
    """Common interface exposed by language model implementations."""

    backend = "stub"

    @property
    def last_error(self) -> Optional[str]:
        """Return the most recent configuration error, if any."""

        return None

    def status(self) -> LLMStatus:
        return LLMStatus(
            ready=self.is_ready,
            model_name=self.model_name,
            backend=self.backend,
            error=self.last_error,
        )


class LLMStub(LLM):
    """Offline fallback that always declines to answer."""

    def __init__(self, message: str = FALLBACK_ANSWER, *, reason: str | None = None) -> None:
        self._message = message
        self._reason = reason or "LLM stub is active (model not configured)."

    def generate(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        *,
        system: Optional[str] = None,
    ) -> str:
        return self._message

    @property
    def last_error(self) -> Optional[str]:
        return self._reason

    def update_reason(self, reason: str) -> None:
        self._reason = reason


class OpenAIChatLLM(LLM):
    """Chat completions against the OpenAI API or a compatible server."""

    backend = "openai"

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._client = None
        self._lock = threading.RLock()
        self._load_error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return bool(self._api_key or self._base_url)

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def last_error(self) -> Optional[str]:
        if not self.is_ready:
            return "OPENAI_API_KEY is not configured."
        return self._load_error

    def _ensure_client(self):
        with self._lock:
            if self._client is not None:
                return self._client
            if not self.is_ready:
                raise LLMNotReadyError("OPENAI_API_KEY is not configured")
            try:
                from openai import OpenAI

                self._client = OpenAI(
                    api_key=self._api_key,
                    base_url=self._base_url,
                    timeout=self._timeout,
                    max_retries=0,
                )
            except Exception as error:
                self._load_error = str(error)
                LOGGER.exception("Failed to initialise OpenAI client")
                raise LLMNotReadyError(f"Failed to initialise OpenAI client: {error}") from error
            return self._client

    def generate(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        *,
        system: Optional[str] = None,
    ) -> str:
        client = self._ensure_client()
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens if max_tokens and max_tokens > 0 else None,
                temperature=max(0.0, float(temperature)),
            )
        except Exception as error:
            LOGGER.exception("LLM generation failed")
            raise LLMGenerationError(f"LLM generation failed: {error}") from error

        if not response.choices:
            raise LLMGenerationError("LLM returned no choices")
        content = response.choices[0].message.content
        return (content or "").strip()


_GLOBAL_LLM: Optional[LLM] = None


def build_llm(settings: Settings) -> LLM:
    if settings.llm_backend == "openai":
        return OpenAIChatLLM(
            settings.llm_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.external_timeout_seconds,
        )
    if settings.llm_backend != "stub":
        LOGGER.warning("Unknown LLM_BACKEND %r; using stub responses.", settings.llm_backend)
    return LLMStub(reason=f"LLM_BACKEND={settings.llm_backend}; model calls disabled.")


def get_llm() -> LLM:
    """Return the process-wide LLM instance."""

    global _GLOBAL_LLM

    if _GLOBAL_LLM is not None:
        return _GLOBAL_LLM

    settings = get_settings()
    _GLOBAL_LLM = build_llm(settings)
    emit_llm_provider_init(
        provider=_GLOBAL_LLM.backend,
        ready=_GLOBAL_LLM.is_ready,
        model=_GLOBAL_LLM.model_name,
        temperature=settings.llm_temperature,
    )
    if not _GLOBAL_LLM.is_ready:
        LOGGER.warning("LLM backend is not ready: %s", _GLOBAL_LLM.last_error)
    return _GLOBAL_LLM


def reset_llm_cache() -> None:
    """Forget the cached LLM instance (primarily for testing)."""

    global _GLOBAL_LLM
    _GLOBAL_LLM = None


def get_llm_status() -> LLMStatus:
    return get_llm().status()


__all__ = [
    "LLM",
    "LLMError",
    "LLMGenerationError",
    "LLMNotReadyError",
    "LLMStatus",
    "LLMStub",
    "OpenAIChatLLM",
    "build_llm",
    "get_llm",
    "get_llm_status",
    "reset_llm_cache",
]
