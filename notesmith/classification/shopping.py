"""
Shopping list line classifier.

A line naming a store section ("Produce", "Dairy:") is a category header
when it is short and followed by an item or a blank line, or when it ends
with a colon.
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

# Store sections in walking order
STORE_LAYOUT_ORDER = (
    'Produce',
    'Dairy',
    'Meat & Seafood',
    'Deli',
    'Bakery',
    'Pantry',
    'Canned Goods',
    'Snacks',
    'Beverages',
    'Frozen',
    'Health & Beauty',
    'Household',
    'Other',
)

# Header spellings that map onto a store section
SECTION_ALIASES = {
    'meat': 'Meat & Seafood',
    'seafood': 'Meat & Seafood',
    'fruit': 'Produce',
    'vegetables': 'Produce',
    'veggies': 'Produce',
    'drinks': 'Beverages',
    'canned': 'Canned Goods',
    'toiletries': 'Health & Beauty',
    'cleaning': 'Household',
}

_SECTION_NAMES = {section.lower() for section in STORE_LAYOUT_ORDER}

ITEM_PATTERNS = (
    re.compile(r"^[-*•]\s+"),
    re.compile(r"^\d+[.)]\s+"),
    re.compile(r"^\[[ xX]\]\s+"),
    re.compile(r"^\d+(?:\.\d+)?\s*(?:lbs?|oz|gallons?|pieces?)\b", re.IGNORECASE),
)


class ShoppingLineLabel(str, Enum):
    BLANK = "blank"
    CATEGORY_HEADER = "category-header"
    ITEM = "item"
    HEADER = "header"
    PLAIN = "plain"
    # Tags
    CHECKED = "checked"


def is_shopping_item(line: str) -> bool:
    stripped = line.strip()
    return any(pattern.match(stripped) for pattern in ITEM_PATTERNS)


def detect_section(line: str) -> str | None:
    """Store section named by a header line, or None."""
    lowered = re.sub(r"^#+\s*", '', line.strip()).rstrip(':').strip().lower()
    for section in STORE_LAYOUT_ORDER:
        if section.lower() in lowered:
            return section
    for alias, section in SECTION_ALIASES.items():
        if re.search(rf"\b{alias}\b", lowered):
            return section
    return None


def is_category_header(window: LineWindow) -> bool:
    line = window.stripped
    if is_shopping_item(line) or detect_section(line) is None:
        return False
    if MARKDOWN_HEADER_RE.match(line) or line.endswith(':'):
        return True
    # Bare short lines only count when they are exactly a section name,
    # otherwise "Frozen pizza" would open a section
    bare = line.lower()
    if 2 < len(line) < 25 and (bare in _SECTION_NAMES or bare in SECTION_ALIASES):
        following = window.next_stripped
        return not following or is_shopping_item(following)
    return False


def is_header(line: str) -> bool:
    return is_all_caps(line) or line.endswith(':') or len(line) < 3


class ShoppingLineClassifier(LineClassifier):
    name = "Shopping Classifier"
    blank_label = ShoppingLineLabel.BLANK
    default_label = ShoppingLineLabel.PLAIN
    rules = (
        LineRule("category-header", ShoppingLineLabel.CATEGORY_HEADER, is_category_header),
        LineRule("item", ShoppingLineLabel.ITEM, lambda w: is_shopping_item(w.stripped)),
        LineRule("header", ShoppingLineLabel.HEADER, lambda w: is_header(w.stripped)),
    )
    tag_rules = (
        LineRule("checked", ShoppingLineLabel.CHECKED, lambda w: bool(COMPLETED_RE.search(w.stripped))),
    )
