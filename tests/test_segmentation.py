from __future__ import annotations

import time

import pytest

from helpdesk_kb.ingest.errors import NoKnowledgeExtractedError
from helpdesk_kb.ingest.extractors import StructuredTextExtractor
from helpdesk_kb.ingest.normalization import normalize_text
from helpdesk_kb.ingest.segmentation import (
    LLM_TEMPERATURE,
    MAX_PAIRS,
    QASegmenter,
    paragraph_fallback,
    run_regex_tier,
    score_pair,
)
from helpdesk_kb.llm_provider import LLMGenerationError
from helpdesk_kb.providers import MockLLMProvider


def _segment(text: str):
    return run_regex_tier(normalize_text(text))


def test_numbered_qa_wins_over_weaker_strategies() -> None:
    result = _segment(
        "1. Q: How do I reset my password? A: Use the forgot password link on the login page. "
        "2. Q: What is a ticket? A: A ticket is a record of your request."
    )

    assert result.method == "numbered-qa"
    assert [pair.question for pair in result.pairs] == [
        "How do I reset my password?",
        "What is a ticket?",
    ]
    assert result.pairs[0].answer == "Use the forgot password link on the login page."
    assert result.yields["numbered-qa"] == 2


def test_numbered_item_splits_at_question_mark() -> None:
    result = _segment("1. What is a ticket? A ticket is a digital record of your request.")

    assert result.method == "numbered-item"
    (pair,) = result.pairs
    assert pair.question == "What is a ticket?"
    assert pair.answer == "A ticket is a digital record of your request."
    assert pair.confidence == pytest.approx(1.0)


def test_question_answer_labels_are_case_insensitive() -> None:
    result = _segment("QUESTION: How do I contact support? answer: Email the helpdesk team at any time.")

    assert result.method == "question-answer"
    assert result.pairs[0].question == "How do I contact support?"
    assert result.pairs[0].answer == "Email the helpdesk team at any time."


def test_interrogative_sentences_pair_with_following_text() -> None:
    result = _segment(
        "How do I change my email address? Go to your profile settings and update it. "
        "Why is my ticket closed? Tickets close after seven days without a reply."
    )

    assert result.method == "interrogative"
    assert [(pair.question, pair.answer) for pair in result.pairs] == [
        ("How do I change my email address?", "Go to your profile settings and update it."),
        ("Why is my ticket closed?", "Tickets close after seven days without a reply."),
    ]
    assert result.pairs[0].confidence == pytest.approx(0.85)


def test_short_numbered_list_does_not_hide_labelled_pair() -> None:
    text = "Q: How do I reset my password? A: Use the forgot password link.\n1. Overview\n2. Access\n3. Help"

    result = QASegmenter(use_llm=False).segment(text)

    assert result.method == "labelled-qa"
    assert [pair.question for pair in result.pairs] == ["How do I reset my password?"]
    assert result.pairs[0].answer.startswith("Use the forgot password link.")
    assert result.yields["numbered-item"] == 0


def test_interrogative_scan_is_linear_on_unpunctuated_text() -> None:
    text = "word " * 40000

    started = time.perf_counter()
    result = run_regex_tier(text)
    elapsed = time.perf_counter() - started

    assert result.method == "none"
    assert elapsed < 2.0


def test_interrogative_handles_trailing_question_without_answer() -> None:
    result = _segment("Where can I download the client installer?")

    assert result.method == "interrogative"
    assert [(pair.question, pair.answer) for pair in result.pairs] == [
        ("Where can I download the client installer?", "")
    ]


def test_short_questions_are_discarded() -> None:
    result = _segment("Q: What is X? A: X is Y. Q: Why not? A: Because.")

    assert [pair.question for pair in result.pairs] == ["What is X?"]


def test_duplicate_questions_keep_first_occurrence() -> None:
    result = _segment("Q: What is a ticket? A: one. Q: what is a ticket? A: two.")

    (pair,) = result.pairs
    assert pair.answer == "one."


def test_pairs_are_capped() -> None:
    text = " ".join(f"Q: What is item number {index}? A: It is item {index} in the list." for index in range(250))

    result = _segment(text)

    assert len(result.pairs) == MAX_PAIRS


def test_markup_is_stripped_from_pairs() -> None:
    result = _segment("Q: What is **bold** <b>text</b>? A: It is `code` formatting.")

    assert result.pairs[0].question == "What is bold text ?"
    assert result.pairs[0].answer == "It is code formatting."


def test_score_pair_rewards_question_shape() -> None:
    assert score_pair("Reset password", "short", 0.7) == pytest.approx(0.7)
    assert score_pair("How do I reset?", "Use the link on the login page.", 0.7) == pytest.approx(0.85)
    assert score_pair("What is it?", "x" * 30, 0.95) == 1.0


def test_round_trip_from_text_operator_to_single_pair() -> None:
    text = StructuredTextExtractor.render_block(" (Q: What is X? A: X is Y.) Tj ")

    result = run_regex_tier(normalize_text(text))

    assert result.method == "labelled-qa"
    assert [(pair.question, pair.answer) for pair in result.pairs] == [("What is X?", "X is Y.")]


def test_segmentation_is_deterministic() -> None:
    text = normalize_text("Q: How do I log in? A: Use SSO. Q: How do I log out? A: Click your avatar.")
    segmenter = QASegmenter(use_llm=False)

    assert segmenter.segment(text) == segmenter.segment(text)


def test_llm_escalation_runs_only_when_regex_tier_is_empty() -> None:
    llm = MockLLMProvider(["Q: How do employees sign in?\nA: They use single sign on."])
    segmenter = QASegmenter(llm=llm)

    structured = segmenter.segment(normalize_text("Q: How do I log in? A: Use SSO."))
    assert structured.method == "labelled-qa"
    assert llm.call_count == 0

    escalated = segmenter.segment("The portal supports single sign on for all employees across regions")
    assert escalated.method == "llm:labelled-qa"
    assert escalated.yields["llm"] == 1
    assert escalated.pairs[0].question == "How do employees sign in?"
    assert llm.call_count == 1
    call = llm.calls[0]
    assert call.temperature == LLM_TEMPERATURE
    assert "single sign on for all employees" in call.prompt


def test_unready_llm_is_skipped_in_favour_of_paragraphs() -> None:
    llm = MockLLMProvider(["Q: unused question? A: unused."], ready=False)
    text = "The portal supports single sign on for all employees across every region we operate in."

    result = QASegmenter(llm=llm).segment(text)

    assert result.method == "paragraph"
    assert llm.call_count == 0
    assert result.pairs[0].answer == text
    assert result.pairs[0].confidence == 0.5


def test_missing_llm_falls_back_to_paragraphs() -> None:
    text = "The portal supports single sign on for all employees across every region we operate in."

    result = QASegmenter(llm=None, use_llm=True).segment(text)

    assert result.method == "paragraph"
    assert "llm" not in result.yields


def test_unparseable_llm_output_falls_back_to_paragraphs() -> None:
    llm = MockLLMProvider(["I could not find any pairs"])
    text = "Passwords expire every ninety days and must contain at least twelve characters in total."

    result = QASegmenter(llm=llm).segment(text)

    assert result.method == "paragraph"
    assert llm.call_count == 1


def test_llm_failures_propagate() -> None:
    class FailingLLM(MockLLMProvider):
        def generate(self, prompt, max_tokens, temperature, *, system=None):
            raise LLMGenerationError("upstream unavailable")

    with pytest.raises(LLMGenerationError):
        QASegmenter(llm=FailingLLM()).segment("Plain statement without any question marks in it at all")


def test_paragraph_fallback_titles_long_paragraphs() -> None:
    paragraph = "Maintenance windows happen every Sunday night. " * 3
    pairs = paragraph_fallback(f"{paragraph}\n\nToo short.\n\n{paragraph}")

    assert len(pairs) == 2
    assert pairs[0].pattern == "paragraph"
    assert pairs[0].question.endswith("...")
    assert len(pairs[0].question) <= 83


def test_no_structure_and_no_long_paragraph_raises() -> None:
    with pytest.raises(NoKnowledgeExtractedError) as excinfo:
        QASegmenter(use_llm=False).segment("Why? Because.")

    assert str(excinfo.value) == "No knowledge chunks could be extracted from the PDF."
