"""
Study notes line classifier.

Outline markers are tried in order: markdown header, decimal numbering
(1.2.3), letter or simple numbering, roman numerals, bullets, ALL CAPS
headings. Questions are checked first so "1. What is osmosis?" reads as a
question rather than a numbered heading.
"""

import re
from enum import Enum

from notesmith.classification.base import LineClassifier, LineRule, is_all_caps

MARKDOWN_LEVEL_RE = re.compile(r"^(#{1,6})\s+(.+)$")
DECIMAL_LEVEL_RE = re.compile(r"^(\d+(?:\.\d+)+)\.?\s+(.+)$")
SIMPLE_LEVEL_RE = re.compile(r"^(?:[A-Z]|\d+)[.)]\s+(.+)$")
ROMAN_LEVEL_RE = re.compile(r"^([IVXLC]+)\.\s+(.+)$")
BULLET_LEVEL_RE = re.compile(r"^[-*•]\s+(.+)$")
CAPS_HEADING_RE = re.compile(r"^[A-Z][A-Z\s&/\-]{2,}:?$")

QUESTION_PREFIX_RE = re.compile(r"^(?:Q\d*|Question\s*\d*)\s*[:.)]\s*(.+)$", re.IGNORECASE)
ANSWER_PREFIX_RE = re.compile(r"^(?:A\d*\s*:|Answer\s*\d*\s*[:.)])\s*(.*)$", re.IGNORECASE)


class StudyLineLabel(str, Enum):
    BLANK = "blank"
    QUESTION = "question"
    ANSWER = "answer"
    HEADING = "heading"
    BULLET = "bullet"
    TEXT = "text"


def outline_level(line: str) -> int:
    """
    Outline depth a line introduces, or 0 for plain content.

    Markdown headers use their hash count, decimal numbering its number of
    components, letters/numbers/roman numerals and ALL CAPS headings are
    level 1 and bullets level 2.
    """
    stripped = line.strip()
    markdown = MARKDOWN_LEVEL_RE.match(stripped)
    if markdown:
        return len(markdown.group(1))
    decimal = DECIMAL_LEVEL_RE.match(stripped)
    if decimal:
        return len(decimal.group(1).split('.'))
    if SIMPLE_LEVEL_RE.match(stripped) or ROMAN_LEVEL_RE.match(stripped):
        return 1
    if BULLET_LEVEL_RE.match(stripped):
        return 2
    if CAPS_HEADING_RE.match(stripped) and len(stripped) < 50 and is_all_caps(stripped):
        return 1
    return 0


def clean_heading(line: str) -> str:
    """Strip outline markers from a heading line."""
    cleaned = line.strip()
    for pattern in (r"^#+\s*", r"^\d+(?:\.\d+)*[.)]?\s+", r"^[A-Z][.)]\s+", r"^[IVXLC]+\.\s+", r"^[-*•]\s*"):
        cleaned = re.sub(pattern, '', cleaned, count=1)
    return cleaned.rstrip(':').strip()


def question_text(line: str) -> str | None:
    """The question a line asks, without any "Q1:" prefix, or None."""
    stripped = line.strip()
    prefixed = QUESTION_PREFIX_RE.match(stripped)
    if prefixed:
        return prefixed.group(1).strip()
    candidate = re.sub(r"^(?:[-*•]|\d+[.)])\s+", '', stripped)
    if candidate.endswith('?') and len(candidate) > 10:
        return candidate
    return None


class StudyLineClassifier(LineClassifier):
    name = "Study Classifier"
    blank_label = StudyLineLabel.BLANK
    default_label = StudyLineLabel.TEXT
    rules = (
        LineRule("question", StudyLineLabel.QUESTION, lambda w: question_text(w.stripped) is not None),
        LineRule("answer", StudyLineLabel.ANSWER, lambda w: bool(ANSWER_PREFIX_RE.match(w.stripped))),
        LineRule("bullet", StudyLineLabel.BULLET, lambda w: bool(BULLET_LEVEL_RE.match(w.stripped))),
        LineRule("heading", StudyLineLabel.HEADING, lambda w: outline_level(w.stripped) > 0),
    )
