"""
Entity extraction for NoteSmith.

Pure, thread-safe pattern extractors shared by every format engine.

Components:
    PatternRule / ExtractionPolicy - Ordered matcher/extractor pairs (base.py)
    extract_common - Dates, times, URLs, emails, phones, mentions, hashtags
    extract_citations / extract_quotes / extract_sources - Academic entities
    parse_date_text / find_due_date - Date parsing against a reference date
"""

from .base import ExtractionPolicy, PatternRule
from .common import extract_common
from .academic import (
    CITATION_POLICY,
    QUOTE_POLICY,
    SOURCE_POLICY,
    extract_citations,
    extract_quotes,
    extract_sources,
    normalize_quotes,
)
from .dates import find_due_date, format_display_date, parse_date_text, strip_due_date

__all__ = [
    'ExtractionPolicy',
    'PatternRule',
    'extract_common',
    'CITATION_POLICY',
    'QUOTE_POLICY',
    'SOURCE_POLICY',
    'extract_citations',
    'extract_quotes',
    'extract_sources',
    'normalize_quotes',
    'find_due_date',
    'format_display_date',
    'parse_date_text',
    'strip_due_date',
]
