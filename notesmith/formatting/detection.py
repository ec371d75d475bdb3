"""
Format Detection

Suggests which of the six formats fits a piece of text best. Each format
has an ordered list of signals; every signal contributes a bounded amount
to a 0..1 score and the highest score wins. Journal notes start from a
small base score so that plain prose falls through to them.

Usage:
    result = detect_format(text)
    result.suggested_format   # FormatType.TASK_LISTS
    result.reasoning          # "Strong match for Task Lists format (80% confidence)"
"""

import re
from dataclasses import dataclass, field
from typing import Callable

from notesmith.logging_config import debug_log
from notesmith.models import FormatType

LIST_LINE_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s")

MEETING_KEYWORDS_RE = re.compile(
    r"\b(?:meeting|agenda|attendees|discussed|decided|action items?|minutes|follow[-\s]up)\b", re.IGNORECASE)
FULL_NAME_RE = re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b")
MEETING_DATE_RE = re.compile(
    r"\b(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday|\d{1,2}[:/]\d{1,2}|\d{1,2}[-/]\d{1,2}[-/]\d{2,4})\b",
    re.IGNORECASE)
ACTION_RE = re.compile(r"(?:\b(?:TODO|FIXME|action|task|assigned|responsible)\b|@\w+)", re.IGNORECASE)

CHECKBOX_RE = re.compile(r"\[[ xX]\]")
TASK_KEYWORDS_RE = re.compile(
    r"\b(?:todo|task|complete|finish|done|pending|priority|urgent|deadline|due)\b", re.IGNORECASE)
PRIORITY_HINT_RE = re.compile(r"(?:\b(?:high|low|urgent|important|critical|P[0-4])\b|!{1,3})", re.IGNORECASE)

PERSONAL_RE = re.compile(r"\b(?:I|my|me|today|yesterday|felt|think|believe|realize)\b", re.IGNORECASE)
CLOCK_TIME_RE = re.compile(r"\b\d{1,2}:\d{2}\s?(?:am|pm)?\b", re.IGNORECASE)

QUANTITY_RE = re.compile(r"\b\d+\s*(?:kg|g|lbs?|oz|liter|ml|pack|box|bottle|can|jar)\b", re.IGNORECASE)
SHOPPING_KEYWORDS_RE = re.compile(
    r"\b(?:buy|get|purchase|need|grocery|store|aisle|produce|dairy|meat|bakery)\b", re.IGNORECASE)
FOOD_RE = re.compile(
    r"\b(?:milk|bread|eggs|cheese|chicken|beef|apples?|bananas?|tomato(?:es)?|potato(?:es)?|rice|pasta)\b",
    re.IGNORECASE)

CITATION_HINT_RE = re.compile(r"(?:\([A-Z][a-z]+,?\s+\d{4}\)|\[\d+\]|et al\.|doi:|ISBN|https?://)", re.IGNORECASE)
RESEARCH_KEYWORDS_RE = re.compile(
    r"\b(?:study|research|hypothesis|methodology|findings|conclusion|abstract|reference|citation|source|"
    r"paper|journal|article)\b", re.IGNORECASE)
LONG_QUOTE_RE = re.compile(r'"[^"]{20,}"')
ACADEMIC_RE = re.compile(
    r"\b(?:therefore|however|furthermore|consequently|according to|in conclusion|significant|demonstrate)\b",
    re.IGNORECASE)

QA_RE = re.compile(r"(?:\b(?:question|answer|what|why|how|define|explain)\b|\b[QA]:)", re.IGNORECASE)
DEFINITION_HINT_RE = re.compile(r"\b\w+\s+(?:is|means|refers to|defined as)\b", re.IGNORECASE)
STUDY_KEYWORDS_RE = re.compile(
    r"\b(?:chapter|lesson|exam|test|memorize|review|summary|key term|concept|theory|formula)\b", re.IGNORECASE)
OUTLINE_RE = re.compile(r"^\s*(?:[IVX]+\.|[A-Z]\.|[a-z]\.|\d+\.)\s", re.MULTILINE)

JOURNAL_BASE_SCORE = 0.3


@dataclass(frozen=True)
class DetectionSignal:
    """One scoring rule: ``score(text)`` returns the contribution for this signal."""
    name: str
    score: Callable[[str], float]


@dataclass(frozen=True)
class FormatDetectionResult:
    suggested_format: FormatType
    confidence: float
    scores: dict[FormatType, float] = field(default_factory=dict)
    reasoning: str = ""


def _count(pattern: re.Pattern, text: str) -> int:
    return len(pattern.findall(text))


def _per_match(pattern: re.Pattern, step: float, cap: float) -> Callable[[str], float]:
    return lambda text: min(_count(pattern, text) * step, cap)


def _at_least(pattern: re.Pattern, minimum: int, bonus: float) -> Callable[[str], float]:
    return lambda text: bonus if _count(pattern, text) >= minimum else 0.0


def _list_lines(text: str) -> list[str]:
    return [line for line in text.split('\n') if LIST_LINE_RE.match(line.strip())]


def _list_ratio(text: str) -> float:
    lines = text.split('\n')
    return len(_list_lines(text)) / max(len(lines), 1)


def _average_line_length(text: str) -> float:
    lines = text.split('\n')
    return sum(len(line) for line in lines if line.strip()) / max(len(lines), 1)


def _long_paragraphs(text: str) -> int:
    return sum(1 for block in re.split(r"\n\s*\n", text) if len(block.strip()) > 50)


def _non_blank_lines(text: str) -> int:
    return sum(1 for line in text.split('\n') if line.strip())


FORMAT_SIGNALS: dict[FormatType, tuple[DetectionSignal, ...]] = {
    FormatType.MEETING_NOTES: (
        DetectionSignal("meeting keywords", _per_match(MEETING_KEYWORDS_RE, 0.1, 0.4)),
        DetectionSignal("names", _at_least(FULL_NAME_RE, 2, 0.2)),
        DetectionSignal("dates", _at_least(MEETING_DATE_RE, 1, 0.15)),
        DetectionSignal("action items", _at_least(ACTION_RE, 1, 0.15)),
        DetectionSignal("list structure", lambda text: 0.1 if len(_list_lines(text)) >= 3 else 0.0),
    ),
    FormatType.TASK_LISTS: (
        DetectionSignal("checkboxes", _at_least(CHECKBOX_RE, 2, 0.4)),
        DetectionSignal("task keywords", _per_match(TASK_KEYWORDS_RE, 0.08, 0.3)),
        DetectionSignal("list ratio", lambda text: 0.2 if _list_ratio(text) > 0.5 else 0.0),
        DetectionSignal("priorities", _at_least(PRIORITY_HINT_RE, 1, 0.1)),
    ),
    FormatType.JOURNAL_NOTES: (
        DetectionSignal("paragraphs", lambda text: 0.2 if _long_paragraphs(text) >= 2 else 0.0),
        DetectionSignal("personal language", _per_match(PERSONAL_RE, 0.02, 0.2)),
        DetectionSignal("clock times", _at_least(CLOCK_TIME_RE, 1, 0.1)),
        DetectionSignal("long lines", lambda text: 0.2 if _average_line_length(text) > 50 else 0.0),
    ),
    FormatType.SHOPPING_LISTS: (
        DetectionSignal("quantities", _at_least(QUANTITY_RE, 2, 0.4)),
        DetectionSignal("shopping keywords", _per_match(SHOPPING_KEYWORDS_RE, 0.1, 0.3)),
        DetectionSignal("food items", _at_least(FOOD_RE, 3, 0.2)),
        DetectionSignal("short list", lambda text: 0.1 if 5 <= _non_blank_lines(text) <= 30 else 0.0),
    ),
    FormatType.RESEARCH_NOTES: (
        DetectionSignal("citations", _at_least(CITATION_HINT_RE, 2, 0.4)),
        DetectionSignal("research keywords", _per_match(RESEARCH_KEYWORDS_RE, 0.08, 0.3)),
        DetectionSignal("quotes", _at_least(LONG_QUOTE_RE, 1, 0.15)),
        DetectionSignal("academic language", _at_least(ACADEMIC_RE, 1, 0.15)),
    ),
    FormatType.STUDY_NOTES: (
        DetectionSignal("questions", _per_match(QA_RE, 0.1, 0.3)),
        DetectionSignal("definitions", _at_least(DEFINITION_HINT_RE, 2, 0.25)),
        DetectionSignal("study keywords", _per_match(STUDY_KEYWORDS_RE, 0.08, 0.25)),
        DetectionSignal("outline", _at_least(OUTLINE_RE, 3, 0.2)),
    ),
}

BASE_SCORES = {FormatType.JOURNAL_NOTES: JOURNAL_BASE_SCORE}


def score_format(format_type: FormatType, text: str) -> float:
    """Score in [0, 1] for how well ``text`` fits ``format_type``."""
    score = BASE_SCORES.get(format_type, 0.0)
    for signal in FORMAT_SIGNALS[format_type]:
        score += signal.score(text)
    return round(min(score, 1.0), 4)


def _reasoning(suggested: FormatType, confidence: float) -> str:
    percent = round(confidence * 100)
    name = suggested.display_name
    if confidence > 0.7:
        return f"Strong match for {name} format ({percent}% confidence)"
    if confidence > 0.5:
        return f"Good match for {name} format ({percent}% confidence)"
    if confidence > 0.3:
        return f"Moderate match for {name} format ({percent}% confidence)"
    return "Low confidence - manually select format"


def detect_format(text: str | None) -> FormatDetectionResult:
    """
    Suggest a format for ``text``.

    Ties keep the earlier format in FormatType order; when every score is
    zero the suggestion falls back to journal notes.
    """
    if not text or not text.strip():
        return FormatDetectionResult(
            suggested_format=FormatType.JOURNAL_NOTES,
            confidence=0.0,
            scores={format_type: 0.0 for format_type in FormatType},
            reasoning="No text provided",
        )

    scores = {format_type: score_format(format_type, text) for format_type in FormatType}
    suggested, best = FormatType.JOURNAL_NOTES, 0.0
    for format_type, score in scores.items():
        if score > best:
            suggested, best = format_type, score

    debug_log(f"[DETECT] Suggested {suggested.value} ({best:.2f}) from "
              + ", ".join(f"{f.value}={s:.2f}" for f, s in scores.items()))
    return FormatDetectionResult(
        suggested_format=suggested,
        confidence=best,
        scores=scores,
        reasoning=_reasoning(suggested, best),
    )
