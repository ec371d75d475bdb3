"""
Task list line classifier.

Category headers need a recognizable category keyword AND a header shape:
a short colon-terminated line, a short ALL CAPS line, or any line that is
directly followed by a task item (look-ahead).
"""

import re
from enum import Enum

from notesmith.classification.base import (
    COMPLETED_RE,
    LineClassifier,
    LineRule,
    LineWindow,
    MARKDOWN_HEADER_RE,
    is_all_caps,
)
from notesmith.extraction.dates import DUE_DATE_PATTERNS

TASK_ITEM_PATTERNS = (
    re.compile(r"^[-*•]\s+"),
    re.compile(r"^\d+[.)]\s+"),
    re.compile(r"^\[[ xX]\]\s+"),
    re.compile(r"^(?:todo|task|do):\s+", re.IGNORECASE),
    re.compile(r"^→\s+"),
)

CATEGORY_KEYWORDS = (
    'work', 'personal', 'home', 'errands', 'shopping', 'health', 'finance',
    'family', 'projects', 'calls', 'emails', 'meetings',
)

PRIORITY_KEYWORDS = {
    'urgent': ('urgent', 'asap', 'critical', 'emergency', '!!!', 'immediately'),
    'high': ('important', 'high priority', '!!', 'must', 'priority'),
    'low': ('low priority', 'maybe', 'optional', 'when possible', 'someday'),
}


class TaskLineLabel(str, Enum):
    BLANK = "blank"
    CATEGORY_HEADER = "category-header"
    TASK_ITEM = "task-item"
    HEADER = "header"
    PLAIN = "plain"
    # Tags
    COMPLETED = "completed"
    PRIORITY_MARKER = "priority-marker"
    DUE_DATE = "due-date"


def is_task_item(line: str) -> bool:
    stripped = line.strip()
    return any(pattern.match(stripped) for pattern in TASK_ITEM_PATTERNS)


def detect_category(line: str) -> str | None:
    """First category keyword contained in the line, capitalized."""
    lowered = line.lower()
    for keyword in CATEGORY_KEYWORDS:
        if re.search(rf"\b{keyword}\b", lowered):
            return keyword.capitalize()
    return None


def has_priority_keyword(line: str) -> bool:
    lowered = line.lower()
    return any(keyword in lowered for keywords in PRIORITY_KEYWORDS.values() for keyword in keywords)


def is_category_header(window: LineWindow) -> bool:
    line = window.stripped
    if is_task_item(line) or detect_category(line) is None:
        return False
    if MARKDOWN_HEADER_RE.match(line):
        return True
    if len(line) < 30 and line.endswith(':'):
        return True
    if len(line) < 30 and is_all_caps(line):
        return True
    return bool(window.next_stripped) and is_task_item(window.next_stripped)


def is_header(line: str) -> bool:
    """Non-category header: short and either ALL CAPS or colon-terminated."""
    if MARKDOWN_HEADER_RE.match(line):
        return True
    return len(line) < 50 and (is_all_caps(line) or line.endswith(':'))


class TaskLineClassifier(LineClassifier):
    name = "Task Classifier"
    blank_label = TaskLineLabel.BLANK
    default_label = TaskLineLabel.PLAIN
    rules = (
        LineRule("category-header", TaskLineLabel.CATEGORY_HEADER, is_category_header),
        LineRule("task-item", TaskLineLabel.TASK_ITEM, lambda w: is_task_item(w.stripped)),
        LineRule("header", TaskLineLabel.HEADER, lambda w: is_header(w.stripped)),
    )
    tag_rules = (
        LineRule("completed", TaskLineLabel.COMPLETED, lambda w: bool(COMPLETED_RE.search(w.stripped))),
        LineRule("priority", TaskLineLabel.PRIORITY_MARKER, lambda w: has_priority_keyword(w.stripped)),
        LineRule("due-date", TaskLineLabel.DUE_DATE,
                 lambda w: any(pattern.search(w.stripped) for pattern in DUE_DATE_PATTERNS)),
    )
