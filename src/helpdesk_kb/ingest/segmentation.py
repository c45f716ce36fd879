"""Split normalised document text into question/answer pairs."""
from __future__ import annotations

import logging
import re
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence

from ..providers.base import LLMProvider
from .errors import NoKnowledgeExtractedError
from .models import QAPair, SegmentationResult
from .normalization import normalize_text

LOGGER = logging.getLogger(__name__)

MAX_PAIRS = 200
MIN_QUESTION_CHARS = 10
PRIMARY_SHARE = 0.8
LLM_INPUT_CHARS = 4000
LLM_TEMPERATURE = 0.3
LLM_MAX_TOKENS = 2000
PARAGRAPH_MAX_CHARS = 600
PARAGRAPH_MIN_CHARS = 50
PARAGRAPH_TITLE_CHARS = 80
PARAGRAPH_CONFIDENCE = 0.5

LLM_SEGMENTATION_PROMPT = (
    "Extract question and answer pairs from the following helpdesk document. "
    "Return each pair on two lines exactly as 'Q: <question>' followed by "
    "'A: <answer>', separated by a blank line. Only use information present in "
    "the text and do not add commentary.\n\n"
    "Document:\n{text}"
)

_MARKUP_RE = re.compile(r"<[^>]+>|\*{1,2}|`+|^#+\s")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_SPACE_RE = re.compile(r"\s+")
_LEADING_NUMBER_RE = re.compile(r"^\s*\d{1,3}[.)]\s*")
_QUESTION_LABEL_RE = re.compile(r"^(?:Q|Question)\s*:\s*", re.IGNORECASE)
_ANSWER_LABEL_RE = re.compile(r"^(?:A|Answer)\s*:\s*", re.IGNORECASE)
_INTERROGATIVE_START_RE = re.compile(r"^(?:how|what|why)\b", re.IGNORECASE)
_ITEM_ANSWER_MARKER_RE = re.compile(r"\b(?:Answer|A)\s*:")
_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"[^.!?\n]*[.!?\n]|[^.!?\n]+\Z")


def score_pair(question: str, answer: str, base: float) -> float:
    confidence = base
    if question.endswith("?"):
        confidence += 0.05
    if len(answer) > 20:
        confidence += 0.05
    if _INTERROGATIVE_START_RE.match(question):
        confidence += 0.05
    return max(0.0, min(1.0, confidence))


def _clean(value: str) -> str:
    value = _MARKUP_RE.sub(" ", value)
    value = _CONTROL_RE.sub(" ", value)
    return _SPACE_RE.sub(" ", value).strip()


def clean_question(value: str) -> str:
    value = _clean(value)
    value = _LEADING_NUMBER_RE.sub("", value)
    value = _QUESTION_LABEL_RE.sub("", value)
    return value.strip()


def clean_answer(value: str) -> str:
    value = _clean(value)
    return _ANSWER_LABEL_RE.sub("", value).strip()


def _build_pairs(
    raw_pairs: Iterable[tuple[str, str]], name: str, base_confidence: float
) -> List[QAPair]:
    pairs: List[QAPair] = []
    for raw_question, raw_answer in raw_pairs:
        question = clean_question(raw_question)
        answer = clean_answer(raw_answer)
        if not question:
            continue
        pairs.append(
            QAPair(
                question=question,
                answer=answer,
                confidence=score_pair(question, answer, base_confidence),
                pattern=name,
            )
        )
    return pairs


class Segmenter(Protocol):
    name: str
    base_confidence: float

    def segment(self, text: str) -> List[QAPair]:
        ...


class RegexSegmenter:
    """Segmenter whose question and answer are the last two regex groups."""

    def __init__(self, name: str, pattern: str, base_confidence: float, flags: int = 0) -> None:
        self.name = name
        self.base_confidence = base_confidence
        self.pattern = re.compile(pattern, flags | re.DOTALL)

    def split(self, match: re.Match[str]) -> tuple[str, str]:
        groups = match.groups()
        return groups[-2], groups[-1]

    def segment(self, text: str) -> List[QAPair]:
        return _build_pairs(
            (self.split(match) for match in self.pattern.finditer(text)),
            self.name,
            self.base_confidence,
        )


class NumberedItemSegmenter(RegexSegmenter):
    """``1. ...`` list items, split at an answer marker or the first ``?``."""

    def split(self, match: re.Match[str]) -> tuple[str, str]:
        item = match.group(2).strip()
        marker = _ITEM_ANSWER_MARKER_RE.search(item)
        if marker is not None:
            return item[: marker.start()], item[marker.end():]
        mark = item.find("?")
        if mark != -1:
            return item[: mark + 1], item[mark + 1:]
        return item, ""


class InterrogativeSegmenter:
    """Sentences ending in ``?`` paired with the text up to the next such sentence."""

    def __init__(self, name: str = "interrogative", base_confidence: float = 0.7) -> None:
        self.name = name
        self.base_confidence = base_confidence

    def split(self, text: str) -> Iterator[tuple[str, str]]:
        question: Optional[str] = None
        answer: List[str] = []
        for match in _SENTENCE_RE.finditer(text):
            sentence = match.group(0)
            if sentence.endswith("?"):
                if question is not None:
                    yield question, "".join(answer)
                question, answer = sentence, []
            elif question is not None:
                answer.append(sentence)
        if question is not None:
            yield question, "".join(answer)

    def segment(self, text: str) -> List[QAPair]:
        return _build_pairs(self.split(text), self.name, self.base_confidence)


DEFAULT_SEGMENTERS: tuple[Segmenter, ...] = (
    RegexSegmenter(
        "numbered-qa",
        r"(?:^|\s)(\d{1,3})[.)]\s*Q\s*:\s*(.+?)\s*\bA\s*:\s*(.+?)(?=\s+\d{1,3}[.)]\s*Q\s*:|\Z)",
        0.95,
    ),
    NumberedItemSegmenter(
        "numbered-item",
        r"(?:^|\n)\s*(\d{1,3})[.)]\s+(.+?)(?=\n\s*\d{1,3}[.)]\s|\Z)",
        0.85,
    ),
    RegexSegmenter(
        "labelled-qa",
        r"\bQ\s*:\s*(.+?)\s*\bA\s*:\s*(.+?)(?=\s*\bQ\s*:|\Z)",
        0.9,
    ),
    RegexSegmenter(
        "question-answer",
        r"\bQuestion\s*:\s*(.+?)\s*\bAnswer\s*:\s*(.+?)(?=\s*\bQuestion\s*:|\Z)",
        0.9,
        re.IGNORECASE,
    ),
    InterrogativeSegmenter("interrogative", 0.7),
)


def _finalise(pairs: Sequence[QAPair]) -> List[QAPair]:
    seen: set[str] = set()
    kept: List[QAPair] = []
    for pair in pairs:
        if len(pair.question) < MIN_QUESTION_CHARS:
            continue
        key = pair.question.lower()
        if key in seen:
            continue
        seen.add(key)
        kept.append(pair)
        if len(kept) >= MAX_PAIRS:
            break
    return kept


def run_regex_tier(
    text: str, segmenters: Sequence[Segmenter] = DEFAULT_SEGMENTERS
) -> SegmentationResult:
    """Pick the first strategy whose cleaned yield is close to the best yield."""

    candidates = [
        (segmenter.name, _finalise(segmenter.segment(text))) for segmenter in segmenters
    ]
    yields = {name: len(pairs) for name, pairs in candidates}
    pool = max(yields.values(), default=0)
    if pool == 0:
        return SegmentationResult(pairs=[], method="none", yields=yields)

    for name, pairs in candidates:
        if pairs and len(pairs) >= PRIMARY_SHARE * pool:
            return SegmentationResult(pairs=pairs, method=name, yields=yields)
    return SegmentationResult(pairs=[], method="none", yields=yields)


def _paragraphs(text: str) -> List[str]:
    blocks = [block.strip() for block in _BLANK_LINE_RE.split(text) if block.strip()]
    if len(blocks) > 1:
        return blocks

    grouped: List[str] = []
    current: List[str] = []
    size = 0
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if current and size + len(line) + 1 > PARAGRAPH_MAX_CHARS:
            grouped.append(" ".join(current))
            current, size = [], 0
        current.append(line)
        size += len(line) + 1
    if current:
        grouped.append(" ".join(current))
    return grouped


def paragraph_fallback(text: str) -> List[QAPair]:
    pairs: List[QAPair] = []
    for paragraph in _paragraphs(text):
        content = _SPACE_RE.sub(" ", paragraph).strip()
        if len(content) <= PARAGRAPH_MIN_CHARS:
            continue
        title = content
        if len(title) > PARAGRAPH_TITLE_CHARS:
            title = title[:PARAGRAPH_TITLE_CHARS].rstrip() + "..."
        pairs.append(
            QAPair(
                question=title,
                answer=content,
                confidence=PARAGRAPH_CONFIDENCE,
                pattern="paragraph",
            )
        )
        if len(pairs) >= MAX_PAIRS:
            break
    return pairs


class QASegmenter:
    """Regex tier, then optional LLM escalation, then paragraph chunks."""

    def __init__(
        self,
        segmenters: Sequence[Segmenter] = DEFAULT_SEGMENTERS,
        *,
        llm: Optional[LLMProvider] = None,
        use_llm: bool = True,
    ) -> None:
        self.segmenters = tuple(segmenters)
        self.llm = llm
        self.use_llm = use_llm

    def segment(self, text: str) -> SegmentationResult:
        result = run_regex_tier(text, self.segmenters)
        if result.pairs:
            return result

        llm = self.llm
        if self.use_llm and llm is not None and llm.is_ready:
            escalated = self._escalate(llm, text)
            if escalated.pairs:
                escalated.yields = {**result.yields, "llm": len(escalated.pairs)}
                return escalated
            LOGGER.info("LLM escalation produced no parseable pairs")

        paragraphs = paragraph_fallback(text)
        if paragraphs:
            return SegmentationResult(pairs=paragraphs, method="paragraph", yields=result.yields)

        raise NoKnowledgeExtractedError(
            details="No question/answer pairs or paragraphs longer than "
            f"{PARAGRAPH_MIN_CHARS} characters were found."
        )

    def _escalate(self, llm: LLMProvider, text: str) -> SegmentationResult:
        prompt = LLM_SEGMENTATION_PROMPT.format(text=text[:LLM_INPUT_CHARS])
        LOGGER.info("Escalating segmentation of %s chars to the LLM", min(len(text), LLM_INPUT_CHARS))
        response = llm.generate(prompt, LLM_MAX_TOKENS, LLM_TEMPERATURE)
        result = run_regex_tier(normalize_text(response), self.segmenters)
        if result.pairs:
            result.method = f"llm:{result.method}"
        return result


__all__ = [
    "DEFAULT_SEGMENTERS",
    "InterrogativeSegmenter",
    "LLM_SEGMENTATION_PROMPT",
    "MAX_PAIRS",
    "NumberedItemSegmenter",
    "QASegmenter",
    "RegexSegmenter",
    "Segmenter",
    "clean_answer",
    "clean_question",
    "paragraph_fallback",
    "run_regex_tier",
    "score_pair",
]
