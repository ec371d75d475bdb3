"""
Academic entity extractors: citations, quotes and sources.

Citation styles are tried in a fixed order (APA, MLA, Chicago, Harvard,
custom). All rules run and their hits are unioned, so a span such as
"(Smith, 2023)" is reported once per style rule it satisfies. Callers that
want one citation per span must dedupe themselves; the research organizer
deliberately does not.

Ids are left empty here. The research organizer assigns document-wide ids
("cite-1", "quote-1", "source-1") in discovery order.
"""

import re

from notesmith.extraction.base import ExtractionPolicy, PatternRule
from notesmith.models import (
    Citation,
    CitationSource,
    CitationStyle,
    Quote,
    Source,
    SourceType,
)

# Curly and typographic double quotes are folded to '"' before quote matching
_QUOTE_CHARS = str.maketrans({'“': '"', '”': '"', '„': '"', '«': '"', '»': '"'})


def normalize_quotes(text: str) -> str:
    return text.translate(_QUOTE_CHARS)


def _parse_year(raw: str | None) -> int | None:
    if not raw:
        return None
    digits = re.match(r"\d{4}", raw)
    return int(digits.group(0)) if digits else None


# =============================================================================
# Citations
# =============================================================================

APA_NARRATIVE_RE = re.compile(
    r"([A-Z][A-Za-z'\-]+(?:\s+(?:and|&)\s+[A-Z][A-Za-z'\-]+)?(?:\s+et\s+al\.)?)\s*\((\d{4}[a-z]?)\)")
APA_PARENTHETICAL_RE = re.compile(
    r"\(([^,()]+?(?:\s+et\s+al\.)?),\s*(\d{4}[a-z]?)(?:,\s*(?:p|pp)\.\s*([\d\-–]+))?\)")
APA_AUTHOR_YEAR_RE = re.compile(r"\(([^,()]+),\s*(\d{4}[a-z]?)\)")
MLA_PAGE_RE = re.compile(r"\(([^,()]+)\s+(\d+)\)")
MLA_COMMA_PAGE_RE = re.compile(r"\(([^,()]+),\s*(\d+)\)")
CHICAGO_RE = re.compile(r"\(([^,()]+)\s+(\d{4}[a-z]?),\s*(\d+)\)")
HARVARD_RE = re.compile(r"\(([^,()]+),\s*(\d{4}[a-z]?):\s*(\d+)\)")
NUMERIC_BRACKET_RE = re.compile(r"\[(\d+)\]")


def _citation(style: CitationStyle, title_group: int | None = None, title_prefix: str = "",
              year_group: int | None = 2, has_author: bool = True):
    def build(match: re.Match) -> Citation:
        author = match.group(1).strip() if has_author else None
        year = _parse_year(match.group(year_group)) if year_group else None
        title = f"{title_prefix}{match.group(title_group)}" if title_group else "Unknown"
        return Citation(
            id="",
            text=match.group(0),
            format=style,
            source=CitationSource(title=title, author=author, year=year),
        )
    return build


def _apa_parenthetical(match: re.Match) -> Citation:
    pages = match.group(3)
    return Citation(
        id="",
        text=match.group(0),
        format=CitationStyle.APA,
        source=CitationSource(
            title=f"Page {pages}" if pages else "Unknown",
            author=match.group(1).strip(),
            year=_parse_year(match.group(2)),
        ),
    )


def _mla(match: re.Match) -> Citation | None:
    # "(Smith 2023)" has a year where MLA has a page; leave those to APA rules
    if re.fullmatch(r"\d{4}", match.group(2)):
        return None
    return Citation(
        id="",
        text=match.group(0),
        format=CitationStyle.MLA,
        source=CitationSource(title=f"Page {match.group(2)}", author=match.group(1).strip()),
    )


def _numeric(match: re.Match) -> Citation:
    return Citation(id="", text=match.group(0), format=CitationStyle.CUSTOM,
                    source=CitationSource(title=f"Reference {match.group(1)}"))


CITATION_POLICY: ExtractionPolicy[Citation] = ExtractionPolicy("citations", [
    PatternRule("apa-narrative", APA_NARRATIVE_RE, _citation(CitationStyle.APA)),
    PatternRule("apa-parenthetical", APA_PARENTHETICAL_RE, _apa_parenthetical),
    PatternRule("apa-author-year", APA_AUTHOR_YEAR_RE, _citation(CitationStyle.APA)),
    PatternRule("mla-page", MLA_PAGE_RE, _mla),
    PatternRule("mla-comma-page", MLA_COMMA_PAGE_RE, _mla),
    PatternRule("chicago", CHICAGO_RE, _citation(CitationStyle.CHICAGO, title_group=3, title_prefix="Page ")),
    PatternRule("harvard", HARVARD_RE, _citation(CitationStyle.HARVARD, title_group=3, title_prefix="Page ")),
    PatternRule("numeric-bracket", NUMERIC_BRACKET_RE, _numeric),
])


def extract_citations(text: str) -> list[Citation]:
    """All citations in text, unioned across styles, ids unassigned."""
    return CITATION_POLICY.extract(text)


# =============================================================================
# Quotes
# =============================================================================

ATTRIBUTED_QUOTE_RE = re.compile(r'"([^"]+)"\s*[-–—]\s*([^,\n]+)(?:,\s*([^,\n]+))?')
BLOCK_QUOTE_RE = re.compile(r'^[\s>]*"([^"]+)"\s*$', re.MULTILINE)
PAGE_QUOTE_RE = re.compile(r'"([^"]+)"\s*\(([^)]+)\)')
PLAIN_QUOTE_RE = re.compile(r'"([^"]{20,})"')

LOCATION_RE = re.compile(r"\b(?:p\.|page|pp\.)\s*(\d+(?:[-–]\d+)?)", re.IGNORECASE)
BARE_PAGE_RE = re.compile(r"^\s*(\d+(?:[-–]\d+)?)\s*$")

MIN_QUOTE_CHARS = 10


def _location(text: str | None) -> str | None:
    if not text:
        return None
    found = LOCATION_RE.search(text)
    if found:
        return f"p. {found.group(1)}"
    bare = BARE_PAGE_RE.match(text)
    if bare:
        return f"p. {bare.group(1)}"
    return None


def _quote_text(match: re.Match) -> str | None:
    text = match.group(1).strip()
    return text if len(text) > MIN_QUOTE_CHARS else None


def _attributed_quote(match: re.Match) -> Quote | None:
    text = _quote_text(match)
    if text is None:
        return None
    source = match.group(3).strip() if match.group(3) else None
    return Quote(id="", text=text, author=match.group(2).strip(), source=source,
                 location=_location(source))


def _page_quote(match: re.Match) -> Quote | None:
    text = _quote_text(match)
    if text is None:
        return None
    paren = match.group(2)
    author = None
    author_part = re.match(r"([A-Z][A-Za-z'\-]+(?:\s+et\s+al\.)?)\s*,", paren)
    if author_part:
        author = author_part.group(1)
    return Quote(id="", text=text, author=author, location=_location(paren), notes=paren)


def _bare_quote(match: re.Match) -> Quote | None:
    text = _quote_text(match)
    return Quote(id="", text=text) if text else None


QUOTE_POLICY: ExtractionPolicy[Quote] = ExtractionPolicy("quotes", [
    PatternRule("attributed", ATTRIBUTED_QUOTE_RE, _attributed_quote),
    PatternRule("block", BLOCK_QUOTE_RE, _bare_quote),
    PatternRule("page-parenthetical", PAGE_QUOTE_RE, _page_quote),
    PatternRule("plain", PLAIN_QUOTE_RE, _bare_quote),
])


def extract_quotes(text: str) -> list[Quote]:
    """
    Quotes found in text, one per (rule, span).

    Rules are unioned: the same quoted passage can be reported by several
    rules (the page-parenthetical and plain rules both see
    '"..." (Smith, 2023, p. 45)'), and each hit is kept.
    """
    return QUOTE_POLICY.extract(normalize_quotes(text))


# =============================================================================
# Sources
# =============================================================================

DOI_RE = re.compile(r"(?:doi:|DOI:)\s*(10\.\d+/[^\s]+)")
ACADEMIC_URL_RE = re.compile(
    r"(https?://(?:www\.)?(jstor\.org|pubmed\.ncbi\.nlm\.nih\.gov|ncbi\.nlm\.nih\.gov|"
    r"scholar\.google\.com|researchgate\.net|academia\.edu|arxiv\.org)[^\s]*)", re.IGNORECASE)
ISBN_RE = re.compile(r"ISBN:?\s*([\d-]{10,17})")
JOURNAL_RE = re.compile(
    r"([A-Z][^.\n]+)\.\s*([A-Z][^,\n]+),?\s*(\d+)(?:\((\d+)\))?,?\s*(\d+[-–—]\d+)")


def _doi(match: re.Match) -> Source:
    doi = match.group(1).rstrip('.,;')
    return Source(id="", title=f"DOI: {doi}", type=SourceType.ARTICLE, metadata={'doi': doi})


def _academic_url(match: re.Match) -> Source:
    url = match.group(1).rstrip('.,;)')
    domain = match.group(2).lower()
    return Source(id="", title=f"{domain} Resource", type=SourceType.WEBSITE, metadata={'url': url})


def _isbn(match: re.Match) -> Source | None:
    isbn = match.group(1).strip('-')
    if len(re.sub(r"\D", '', isbn)) not in (10, 13):
        return None
    return Source(id="", title=f"ISBN: {isbn}", type=SourceType.BOOK, metadata={'isbn': isbn})


def _journal(match: re.Match) -> Source:
    metadata = {
        'journal': match.group(2).strip(),
        'volume': match.group(3),
        'pages': match.group(5),
    }
    if match.group(4):
        metadata['issue'] = match.group(4)
    return Source(id="", title=match.group(1).strip(), type=SourceType.JOURNAL, metadata=metadata)


SOURCE_POLICY: ExtractionPolicy[Source] = ExtractionPolicy("sources", [
    PatternRule("doi", DOI_RE, _doi),
    PatternRule("academic-url", ACADEMIC_URL_RE, _academic_url),
    PatternRule("isbn", ISBN_RE, _isbn),
    PatternRule("journal", JOURNAL_RE, _journal),
])


def extract_sources(text: str) -> list[Source]:
    return SOURCE_POLICY.extract(text)
