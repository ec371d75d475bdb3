"""
Journal line classifier.

A TIMESTAMP line starts a new entry. Only short lines that are mostly a
date or time count; a sentence that merely mentions "today" does not.
"""

import re
from enum import Enum

from notesmith.classification.base import (
    LineClassifier,
    LineRule,
    LineWindow,
    MARKDOWN_HEADER_RE,
    is_all_caps,
)

TIMESTAMP_PATTERNS = (
    re.compile(r"\b(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?|aug(?:ust)?|"
               r"sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}",
               re.IGNORECASE),
    re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?\b", re.IGNORECASE),
    re.compile(r"\b(?:today|yesterday|tomorrow|last (?:week|month|year)|this (?:morning|afternoon|evening))\b",
               re.IGNORECASE),
)

MAX_TIMESTAMP_LINE = 50

TITLE_SMALL_WORDS = {'a', 'an', 'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to',
                     'for', 'of', 'with', 'by'}


class JournalLineLabel(str, Enum):
    BLANK = "blank"
    TIMESTAMP = "timestamp"
    TITLE = "title"
    TEXT = "text"


def find_timestamp(line: str) -> re.Match | None:
    """First timestamp match in line, honoring pattern order."""
    for pattern in TIMESTAMP_PATTERNS:
        match = pattern.search(line)
        if match:
            return match
    return None


def is_timestamp_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped or len(stripped) > MAX_TIMESTAMP_LINE:
        return False
    match = find_timestamp(stripped)
    if match is None:
        return False
    # Most of the line must be the timestamp itself (plus a short label)
    return match.start() <= 12 and not stripped.endswith(('.', '?', '!'))


def is_title_case(text: str) -> bool:
    words = [word for word in text.split(' ') if word]
    if not words:
        return False
    titled = [word for word in words
              if re.fullmatch(r"[A-Z][a-z']*[,:]?", word) or word.lower() in TITLE_SMALL_WORDS]
    return len(titled) >= len(words) * 0.7


def is_title(window: LineWindow) -> bool:
    line = window.stripped
    if MARKDOWN_HEADER_RE.match(line):
        return True
    if not 3 < len(line) < 60 or line.endswith(('.', '?', '!', ',')):
        return False
    if line.endswith(':'):
        return True
    return is_all_caps(line) or (is_title_case(line) and len(line.split()) >= 2)


def clean_title(title: str) -> str:
    return re.sub(r"[:\-–—]*$", '', re.sub(r"^#+\s*", '', title)).strip()


class JournalLineClassifier(LineClassifier):
    name = "Journal Classifier"
    blank_label = JournalLineLabel.BLANK
    default_label = JournalLineLabel.TEXT
    rules = (
        LineRule("timestamp", JournalLineLabel.TIMESTAMP, lambda w: is_timestamp_line(w.stripped)),
        LineRule("title", JournalLineLabel.TITLE, is_title),
    )
