from __future__ import annotations

from dataclasses import dataclass

from helpdesk_kb.prompt_builder import (
    FALLBACK_ANSWER,
    ConversationTurn,
    build_system_prompt,
    format_context,
    format_history,
    is_fallback_answer,
)


@dataclass
class Chunk:
    title: str
    content: str
    category: str
    similarity: float


def test_context_is_numbered_with_relevance_percentages() -> None:
    context = format_context(
        [
            Chunk("What is a ticket?", " A ticket is a record. ", "FAQ", 0.876),
            Chunk("How do I log in?", "Use SSO.", "Authentication", 1.3),
        ]
    )

    assert context == (
        "[1] Title: What is a ticket?\nContent: A ticket is a record.\nCategory: FAQ\nRelevance: 88%"
        "\n\n"
        "[2] Title: How do I log in?\nContent: Use SSO.\nCategory: Authentication\nRelevance: 100%"
    )


def test_history_keeps_only_the_most_recent_turns() -> None:
    history = [ConversationTurn(f"question {index}", f"answer {index}") for index in range(5)]

    rendered = format_history(history, window=3)

    assert "question 1" not in rendered
    assert rendered.splitlines()[0] == "User: question 2"
    assert rendered.splitlines()[-1] == "Assistant: answer 4"
    assert format_history(history, window=0) == ""


def test_system_prompt_contains_context_history_and_exact_fallback() -> None:
    prompt = build_system_prompt(
        [Chunk("What is a ticket?", "A ticket is a record.", "FAQ", 0.9)],
        [ConversationTurn("Hi", "Hello! How can I help?")],
    )

    assert "Knowledge Base Context:\n[1] Title: What is a ticket?" in prompt
    assert "Recent conversation:\nUser: Hi\nAssistant: Hello! How can I help?" in prompt
    assert f'reply with exactly: "{FALLBACK_ANSWER}"' in prompt


def test_system_prompt_omits_empty_history() -> None:
    prompt = build_system_prompt([Chunk("Title", "Body", "General", 0.7)])

    assert "Recent conversation" not in prompt


def test_only_the_exact_fallback_sentence_counts_as_refusal() -> None:
    assert is_fallback_answer(f"  {FALLBACK_ANSWER}\n")
    assert not is_fallback_answer("I'm sorry, I can't answer that from the available information.")
    assert not is_fallback_answer(FALLBACK_ANSWER + " Please contact support.")
