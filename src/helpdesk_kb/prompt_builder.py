"""Utilities for constructing prompts for the helpdesk answer bot."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

FALLBACK_ANSWER = "I am unable to answer this question with the available information."

SYSTEM_PROMPT_HEADER = (
    "You are a helpful customer support assistant for a helpdesk ticketing system. "
    "Answer the user's question using only the knowledge base context below."
)

SYSTEM_PROMPT_RULES = (
    "Instructions:\n"
    "- Base your answer strictly on the knowledge base context.\n"
    "- Be concise, polite and professional.\n"
    "- Suggest next steps when the context describes them.\n"
    "- If the context does not contain the answer, reply with exactly: "
    f"\"{FALLBACK_ANSWER}\""
)


class ContextChunk(Protocol):
    title: str
    content: str
    category: str
    similarity: float


@dataclass(slots=True, frozen=True)
class ConversationTurn:
    question: str
    answer: str


def format_context(chunks: Sequence[ContextChunk]) -> str:
    sections = []
    for index, chunk in enumerate(chunks, start=1):
        relevance = round(max(0.0, min(1.0, chunk.similarity)) * 100)
        sections.append(
            f"[{index}] Title: {chunk.title.strip()}\n"
            f"Content: {chunk.content.strip()}\n"
            f"Category: {chunk.category}\n"
            f"Relevance: {relevance}%"
        )
    return "\n\n".join(sections)


def format_history(history: Sequence[ConversationTurn], window: int = 3) -> str:
    if window <= 0:
        return ""
    recent = list(history)[-window:]
    return "\n".join(f"User: {turn.question.strip()}\nAssistant: {turn.answer.strip()}" for turn in recent)


def build_system_prompt(
    chunks: Sequence[ContextChunk],
    history: Sequence[ConversationTurn] = (),
    *,
    history_window: int = 3,
) -> str:
    """Compose the system prompt from numbered context chunks and recent turns."""

    parts = [SYSTEM_PROMPT_HEADER, "Knowledge Base Context:\n" + format_context(chunks)]
    history_block = format_history(history, history_window)
    if history_block:
        parts.append("Recent conversation:\n" + history_block)
    parts.append(SYSTEM_PROMPT_RULES)
    return "\n\n".join(parts)


def is_fallback_answer(text: str) -> bool:
    """Only an exact match of the fallback sentence counts as a refusal."""

    return text.strip() == FALLBACK_ANSWER


__all__ = [
    "ConversationTurn",
    "FALLBACK_ANSWER",
    "build_system_prompt",
    "format_context",
    "format_history",
    "is_fallback_answer",
]
