"""
Ordered pattern policies for entity extraction.

An ExtractionPolicy is an explicit, ordered list of PatternRule objects,
each pairing a compiled regex (the matcher) with a builder that turns a
match into an entity (the extractor). Extraction runs every rule in
declared order and unions the results; it is not first-match-wins, so one
span can legitimately be reported by two rules.

Design Principles:
- Visible ordering: the rule list *is* the priority contract and can be
  inspected and tested on its own.
- Never raise: a builder that fails on an odd match is logged and skipped.
  The worst case for any input is an empty list.
- Pure: policies hold no per-call state and are safe to share between
  threads.

Usage:
    policy = ExtractionPolicy("emails", [
        PatternRule("email", EMAIL_RE, lambda m: EntityHit(text=m.group(0))),
    ])
    hits = policy.extract("write to ops@example.com")
"""

import re
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, TypeVar

from notesmith.logging_config import debug_log

T = TypeVar('T')


@dataclass(frozen=True)
class PatternRule(Generic[T]):
    """
    One matcher/extractor pair.

    Attributes:
        name: Rule identifier, recorded on hits for traceability.
        pattern: Compiled regular expression.
        build: Turns a match into an entity, or returns None to drop it.
    """
    name: str
    pattern: re.Pattern
    build: Callable[[re.Match], T | None]


class ExtractionPolicy(Generic[T]):
    """
    Ordered list of PatternRules applied as a union.

    Attributes:
        name: Policy name used in debug logging.
        rules: Rules in priority order.
    """

    def __init__(self, name: str, rules: list[PatternRule[T]]):
        self.name = name
        self.rules: tuple[PatternRule[T], ...] = tuple(rules)

    @property
    def rule_names(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def iter_matches(self, text: str) -> Iterator[tuple[PatternRule[T], re.Match]]:
        """Yield (rule, match) for every rule in order, every match in position order."""
        for rule in self.rules:
            for match in rule.pattern.finditer(text):
                yield rule, match

    def extract(self, text: str) -> list[T]:
        """
        Run all rules over text and return every entity built.

        Args:
            text: Text to scan (a line or a whole document).

        Returns:
            Entities in rule order, then match position. Empty on blank input.
        """
        if not text:
            return []

        return list(self._built(text))

    def first(self, text: str) -> T | None:
        """Return the first entity any rule produces, honoring rule order."""
        if not text:
            return None
        return next(self._built(text), None)

    def _built(self, text: str) -> Iterator[T]:
        for rule, match in self.iter_matches(text):
            try:
                entity = rule.build(match)
            except (ValueError, TypeError, IndexError, AttributeError, OverflowError) as e:
                debug_log(f"[EXTRACT] {self.name}/{rule.name} skipped {match.group(0)!r}: {e}")
                continue
            if entity is not None:
                yield entity

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, rules={self.rule_names})"
