"""
Base Line Classifier

Every format engine starts by labeling each input line. A classifier is an
ordered tuple of LineRule objects; the first rule whose matcher accepts the
line decides its primary label. Tag rules are applied afterwards and all of
the ones that match are attached as secondary labels (e.g. a task line that
is also completed and urgent).

Design Principles:
- Deterministic: no scoring at this stage, only rule order.
- Small window: matchers see the line plus its neighbors, which is enough
  for look-ahead headers such as "Produce:" followed by list items.
- Never raise: a matcher that fails is logged and treated as "no match".

Usage:
    classifier = TaskLineClassifier()
    labeled = classifier.classify(text.split('\\n'))
    headers = [l for l in labeled if l.label is TaskLineLabel.CATEGORY_HEADER]
"""

import re
from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from notesmith.logging_config import debug_log

# Shared prefix patterns for list-like lines
BULLET_RE = re.compile(r"^[-*•]\s+")
NUMBERED_RE = re.compile(r"^\d+[.)]\s+")
CHECKBOX_RE = re.compile(r"^(?:[-*•]\s*)?\[[ xX]?\]\s*")
QUOTE_PREFIX_RE = re.compile(r"^>\s*")
MARKDOWN_HEADER_RE = re.compile(r"^(#{1,6})\s+(.+)$")
COMPLETED_RE = re.compile(r"\[[xX]\]|✓|✔|☑")


def strip_list_marker(text: str) -> str:
    """Remove one leading bullet, number, checkbox or quote marker."""
    cleaned = CHECKBOX_RE.sub('', text, count=1)
    if cleaned == text:
        cleaned = BULLET_RE.sub('', text, count=1)
    cleaned = NUMBERED_RE.sub('', cleaned, count=1)
    cleaned = QUOTE_PREFIX_RE.sub('', cleaned, count=1)
    return cleaned.strip()


def is_list_item(text: str) -> bool:
    stripped = text.strip()
    return bool(BULLET_RE.match(stripped) or NUMBERED_RE.match(stripped)
                or CHECKBOX_RE.match(stripped))


def is_all_caps(text: str) -> bool:
    """True when the text has letters and none of them are lowercase."""
    return any(ch.isalpha() for ch in text) and text == text.upper()


@dataclass(frozen=True)
class LineWindow:
    """
    What a matcher can see: the line and its immediate neighbors.

    Attributes:
        index: Zero-based line index.
        text: Raw line.
        stripped: Line without surrounding whitespace.
        prev: Previous raw line, or None at the start.
        next: Next raw line, or None at the end.
    """
    index: int
    text: str
    stripped: str
    prev: str | None
    next: str | None

    @property
    def next_stripped(self) -> str:
        return (self.next or '').strip()


@dataclass(frozen=True)
class LineRule:
    """A named (label, matcher) pair."""
    name: str
    label: Enum
    matcher: Callable[[LineWindow], bool]


@dataclass(frozen=True)
class LabeledLine:
    """
    A classified line.

    Attributes:
        index: Zero-based position in the input.
        text: Raw line.
        stripped: Trimmed line.
        labels: Primary label first, then any tags in tag-rule order.
        indent: Leading whitespace width (tabs count as 4).
        rule: Name of the rule that set the primary label.
    """
    index: int
    text: str
    stripped: str
    labels: tuple[Enum, ...]
    indent: int = 0
    rule: str = ""

    @property
    def label(self) -> Enum:
        return self.labels[0]

    def has(self, label: Enum) -> bool:
        return label in self.labels

    @property
    def is_blank(self) -> bool:
        return not self.stripped


def _indent_width(text: str) -> int:
    width = 0
    for ch in text:
        if ch == ' ':
            width += 1
        elif ch == '\t':
            width += 4
        else:
            break
    return width


class LineClassifier(ABC):
    """
    Ordered-rule line classifier.

    Subclasses set ``rules``, ``tag_rules``, ``blank_label`` and
    ``default_label``. Rule order is the tie-break contract.
    """

    name: str = "Base Classifier"
    rules: tuple[LineRule, ...] = ()
    tag_rules: tuple[LineRule, ...] = ()
    blank_label: Enum
    default_label: Enum

    @property
    def rule_names(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def classify(self, lines: list[str]) -> list[LabeledLine]:
        """
        Label every line.

        Args:
            lines: Raw input lines (no trailing newlines).

        Returns:
            One LabeledLine per input line, in input order.
        """
        labeled = []
        for index, text in enumerate(lines):
            window = LineWindow(
                index=index,
                text=text,
                stripped=text.strip(),
                prev=lines[index - 1] if index > 0 else None,
                next=lines[index + 1] if index + 1 < len(lines) else None,
            )
            labeled.append(self.classify_line(window))
        return labeled

    def classify_line(self, window: LineWindow) -> LabeledLine:
        if not window.stripped:
            return LabeledLine(index=window.index, text=window.text, stripped='',
                               labels=(self.blank_label,), rule='blank')

        primary, rule_name = self.default_label, 'default'
        for rule in self.rules:
            if self._matches(rule, window):
                primary, rule_name = rule.label, rule.name
                break

        tags = tuple(rule.label for rule in self.tag_rules
                     if rule.label is not primary and self._matches(rule, window))

        return LabeledLine(
            index=window.index,
            text=window.text,
            stripped=window.stripped,
            labels=(primary,) + tags,
            indent=_indent_width(window.text),
            rule=rule_name,
        )

    def _matches(self, rule: LineRule, window: LineWindow) -> bool:
        try:
            return bool(rule.matcher(window))
        except (ValueError, TypeError, IndexError, AttributeError) as e:
            debug_log(f"[CLASSIFY] {self.name}/{rule.name} failed on line {window.index}: {e}")
            return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rules={self.rule_names})"
