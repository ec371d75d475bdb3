"""
Research notes line classifier.

Topic lines are detected in a fixed order: markdown header, colon-terminated
line, ALL CAPS line, numbered heading, then a short title-case line.
"""

import re
from enum import Enum

from notesmith.classification.base import (
    LineClassifier,
    LineRule,
    QUOTE_PREFIX_RE,
    is_list_item,
)

SMALL_WORDS = {'a', 'an', 'and', 'as', 'at', 'but', 'by', 'for', 'in', 'of',
               'on', 'or', 'the', 'to', 'with'}
TOPIC_CONNECTORS = {'and', 'or', 'the', 'of', 'in', 'on', 'at', 'to'}

TOPIC_PATTERNS = (
    ('markdown-header', re.compile(r"^#{1,3}\s+(.+)$")),
    ('colon-header', re.compile(r"^(.+):\s*$")),
    ('caps-header', re.compile(r"^[A-Z][A-Z\s]{3,20}$")),
    ('numbered-header', re.compile(r"^\d+\.\s+([^.]+)$")),
)


class ResearchLineLabel(str, Enum):
    BLANK = "blank"
    TOPIC = "topic"
    BLOCK_QUOTE = "block-quote"
    LIST_ITEM = "list-item"
    TEXT = "text"


def capitalize_title(text: str) -> str:
    """Title-case text, keeping small words lowercase unless first or last."""
    words = text.lower().split()
    result = []
    for position, word in enumerate(words):
        if position in (0, len(words) - 1) or word not in SMALL_WORDS:
            word = word[:1].upper() + word[1:]
        result.append(word)
    return ' '.join(result)


def is_likely_topic(line: str) -> bool:
    """Short line where most words are capitalized or connectors."""
    if not 5 < len(line) < 60:
        return False
    if line.endswith(('.', '?', '!', ',', ';')):
        return False
    words = line.split()
    if not words:
        return False
    titled = sum(1 for word in words
                 if (word[:1].isupper() and not word.isupper()) or word.lower() in TOPIC_CONNECTORS)
    # Require at least two capitalized words so a lone "Smith" is never a topic
    capitalized = sum(1 for word in words if word[:1].isupper())
    return capitalized >= 2 and titled >= len(words) * 0.7


def detect_topic(line: str) -> str | None:
    """
    Return the topic name a line introduces, or None.

    Patterns are tried in declared order; the first match wins. The name is
    stripped of header and number prefixes and title-cased.
    """
    stripped = line.strip()
    if not stripped:
        return None

    for _, pattern in TOPIC_PATTERNS:
        match = pattern.match(stripped)
        if not match:
            continue
        raw = match.group(1) if match.groups() else match.group(0)
        name = re.sub(r"^#+\s*", '', raw)
        name = re.sub(r"^\d+\.\s*", '', name).strip()
        if 2 < len(name) < 100:
            return capitalize_title(name)

    if is_likely_topic(stripped):
        return capitalize_title(stripped)
    return None


class ResearchLineClassifier(LineClassifier):
    name = "Research Classifier"
    blank_label = ResearchLineLabel.BLANK
    default_label = ResearchLineLabel.TEXT
    rules = (
        LineRule("topic", ResearchLineLabel.TOPIC, lambda w: detect_topic(w.stripped) is not None),
        LineRule("block-quote", ResearchLineLabel.BLOCK_QUOTE,
                 lambda w: bool(QUOTE_PREFIX_RE.match(w.stripped))),
        LineRule("list-item", ResearchLineLabel.LIST_ITEM, lambda w: is_list_item(w.stripped)),
    )


