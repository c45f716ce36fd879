"""Turn question/answer pairs into categorised, tagged knowledge chunks."""
from __future__ import annotations

from typing import Iterable, List

from .models import KnowledgeChunk, QAPair

TITLE_MAX_CHARS = 100
MAX_TAGS = 8
DEFAULT_CATEGORY = "General"
PLACEHOLDER_CONTENT = "Please refer to the original document for the complete answer."

CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Authentication", ("login", "password", "authentication", "signin", "sign in", "sso")),
    ("Technical", ("technical", "error", "bug", "system", "browser")),
    ("Billing", ("billing", "payment", "cost", "price", "invoice")),
    ("Troubleshooting", ("troubleshoot", "problem", "issue")),
    ("FAQ", ("ticket", "request", "status", "faq")),
    ("Support", ("support", "help", "assistance")),
    ("Account", ("account", "profile", "settings")),
    ("Features", ("feature", "functionality", "tool")),
)

CATEGORIES: tuple[str, ...] = tuple(name for name, _ in CATEGORY_KEYWORDS) + (DEFAULT_CATEGORY,)

TAG_VOCABULARY: tuple[str, ...] = (
    "login", "error", "browser", "troubleshooting", "ticket", "status",
    "system", "purpose", "sso", "authentication", "cache", "workflow",
    "management", "tracking", "chrome", "firefox", "safari", "edge",
    "password", "help", "support", "access", "process", "guide",
    "instructions", "technical", "issue", "billing", "payment",
    "request", "resolution", "account", "user", "admin",
)


def truncate_title(text: str, limit: int = TITLE_MAX_CHARS) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def classify_category(text: str) -> str:
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def extract_tags(text: str, limit: int = MAX_TAGS) -> List[str]:
    lowered = text.lower()
    return [tag for tag in TAG_VOCABULARY if tag in lowered][:limit]


def build_chunk(title: str, content: str, confidence: float | None = None) -> KnowledgeChunk:
    """Build a chunk, substituting placeholder content for empty answers."""

    content = content.strip() or PLACEHOLDER_CONTENT
    combined = f"{title} {content}"
    if confidence is not None:
        confidence = max(0.0, min(1.0, confidence))
    return KnowledgeChunk(
        title=truncate_title(title),
        content=content,
        category=classify_category(combined),
        tags=extract_tags(combined),
        confidence=confidence,
    )


def build_chunks(pairs: Iterable[QAPair]) -> List[KnowledgeChunk]:
    return [build_chunk(pair.question, pair.answer, pair.confidence) for pair in pairs]


__all__ = [
    "CATEGORIES",
    "CATEGORY_KEYWORDS",
    "PLACEHOLDER_CONTENT",
    "TAG_VOCABULARY",
    "build_chunk",
    "build_chunks",
    "classify_category",
    "extract_tags",
    "truncate_title",
]
