"""
Common entity extractors shared by every format engine.

Dates, times, URLs, emails, phone numbers, @mentions and #hashtags are
pulled from the whole document regardless of format, so the "common"
block of ExtractedData looks the same no matter which engine ran.

Each extractor is an ExtractionPolicy; extract_common() runs them all
line by line so every hit records the zero-based line it came from.
"""

import re
from dataclasses import replace
from datetime import date, datetime

from notesmith.extraction.base import ExtractionPolicy, PatternRule
from notesmith.extraction.dates import TIME_POLICY, date_policy
from notesmith.models import CommonEntities, EntityHit

EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
URL_RE = re.compile(r"\b((?:https?://|www\.)[^\s<>\"']+)")
PHONE_RE = re.compile(r"(?<!\d)(\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4})(?!\d)")
MENTION_RE = re.compile(r"(?<![\w.])@([A-Za-z0-9_]+)")
HASHTAG_RE = re.compile(r"(?<![\w&])#([A-Za-z0-9_]+)")

# Trailing punctuation that is almost never part of a URL in prose
_URL_TRAILING = '.,;:!?)]}'


def _email(match: re.Match) -> EntityHit:
    return EntityHit(text=match.group(0), value=match.group(1).lower(),
                     start=match.start(), end=match.end(), kind="email")


def _url(match: re.Match) -> EntityHit | None:
    raw = match.group(1).rstrip(_URL_TRAILING)
    if not raw or raw.lower() in ('www.', 'http://', 'https://'):
        return None
    value = raw if raw.lower().startswith('http') else f"https://{raw}"
    return EntityHit(text=raw, value=value, start=match.start(),
                     end=match.start() + len(raw), kind="url")


def _phone(match: re.Match) -> EntityHit | None:
    digits = re.sub(r"\D", '', match.group(1))
    if len(digits) != 10:
        return None
    value = f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return EntityHit(text=match.group(1), value=value, start=match.start(1),
                     end=match.end(1), confidence=0.8, kind="phone")


def _mention(match: re.Match) -> EntityHit:
    return EntityHit(text=match.group(0), value=match.group(1),
                     start=match.start(), end=match.end(), kind="mention")


def _hashtag(match: re.Match) -> EntityHit | None:
    tag = match.group(1)
    if tag.isdigit():
        # "#3" is a list number or issue reference, not a tag
        return None
    return EntityHit(text=match.group(0), value=tag.lower(),
                     start=match.start(), end=match.end(), kind="hashtag")


EMAIL_POLICY = ExtractionPolicy("emails", [PatternRule("email", EMAIL_RE, _email)])
URL_POLICY = ExtractionPolicy("urls", [PatternRule("url", URL_RE, _url)])
PHONE_POLICY = ExtractionPolicy("phone_numbers", [PatternRule("phone", PHONE_RE, _phone)])
MENTION_POLICY = ExtractionPolicy("mentions", [PatternRule("mention", MENTION_RE, _mention)])
HASHTAG_POLICY = ExtractionPolicy("hashtags", [PatternRule("hashtag", HASHTAG_RE, _hashtag)])


def _scan_lines(policy: ExtractionPolicy[EntityHit], lines: list[str]) -> list[EntityHit]:
    hits = []
    for index, line in enumerate(lines):
        for hit in policy.extract(line):
            hits.append(replace(hit, line=index))
    return hits


def extract_common(text: str, reference: datetime | date | None = None) -> CommonEntities:
    """
    Run every common extractor over text.

    Args:
        text: Whole document.
        reference: Anchor for relative or year-less dates (the input timestamp).

    Returns:
        CommonEntities with hits in line order. Empty text yields empty lists.
    """
    if not text or not text.strip():
        return CommonEntities()

    lines = text.split('\n')
    emails = _scan_lines(EMAIL_POLICY, lines)

    # Mentions inside email addresses are already excluded by the lookbehind;
    # drop the domain-part false positives as well.
    email_spans = {(hit.line, hit.start, hit.end) for hit in emails}
    mentions = [
        hit for hit in _scan_lines(MENTION_POLICY, lines)
        if not any(line == hit.line and start <= hit.start < end
                   for line, start, end in email_spans)
    ]

    return CommonEntities(
        dates=_scan_lines(date_policy(reference), lines),
        times=_scan_lines(TIME_POLICY, lines),
        urls=_scan_lines(URL_POLICY, lines),
        emails=emails,
        phone_numbers=_scan_lines(PHONE_POLICY, lines),
        mentions=mentions,
        hashtags=_scan_lines(HASHTAG_POLICY, lines),
    )
