"""
Meeting notes line classifier.

Keyword-prefixed lines ("Attendees:", "Action item:", "Decision:") are
recognized first, then checkbox action items, then section headers. Plain
list items are labeled LIST_ITEM; the organizer decides what they are from
the section they sit in.
"""

import re
from enum import Enum

from notesmith.classification.base import (
    CHECKBOX_RE,
    LineClassifier,
    LineRule,
    MARKDOWN_HEADER_RE,
    is_list_item,
)

ATTENDEES_RE = re.compile(r"^(?:[-*•]\s*)?(?:attendees?|participants?|present)\s*:\s*(.+)$", re.IGNORECASE)
ACTION_RE = re.compile(r"^(?:[-*•]\s*)?(?:action items?|todo|task|follow[- ]?up|@\w+)\s*:\s*(.+)$", re.IGNORECASE)
DECISION_RE = re.compile(r"^(?:[-*•]\s*)?(?:decision|decided|agreed|concluded|resolved|determined)\s*:\s*(.+)$",
                         re.IGNORECASE)
AGENDA_RE = re.compile(r"^(?:[-*•]\s*)?(?:agenda|topics?|discuss(?:ion|ed)?|covered)\s*:\s*(.+)$", re.IGNORECASE)
METADATA_RE = re.compile(
    r"^(?:[-*•]\s*)?(date|when|time|duration|location|room|venue|where|organizer|host|led by|facilitator)\s*:\s*(.+)$",
    re.IGNORECASE)
COLON_HEADER_RE = re.compile(r"^(.+?):\s*$")

# Section headers whose list items get a specific meaning
SECTION_KINDS = (
    ('attendees', re.compile(r"\b(?:attendees?|participants?|present|who)\b", re.IGNORECASE)),
    ('actions', re.compile(r"\b(?:action items?|actions|next steps|to-?dos?|follow[- ]?ups?|tasks)\b",
                           re.IGNORECASE)),
    ('decisions', re.compile(r"\b(?:decisions?|agreements?|outcomes?|resolutions?)\b", re.IGNORECASE)),
    ('agenda', re.compile(r"\b(?:agenda|topics)\b", re.IGNORECASE)),
)


class MeetingLineLabel(str, Enum):
    BLANK = "blank"
    ATTENDEES = "attendees"
    METADATA = "metadata"
    DECISION = "decision"
    ACTION_ITEM = "action-item"
    AGENDA_ITEM = "agenda-item"
    SECTION_HEADER = "section-header"
    LIST_ITEM = "list-item"
    TEXT = "text"


def header_title(line: str) -> str | None:
    """Title of a markdown or colon-terminated header line, else None."""
    stripped = line.strip()
    markdown = MARKDOWN_HEADER_RE.match(stripped)
    if markdown:
        return markdown.group(2).strip().rstrip(':').strip()
    colon = COLON_HEADER_RE.match(stripped)
    if colon and 2 < len(colon.group(1).strip()) < 100:
        return re.sub(r"^[-*•]\s*", '', colon.group(1)).strip()
    return None


def section_kind(title: str) -> str | None:
    """Map a section title to attendees/actions/decisions/agenda, or None."""
    for kind, pattern in SECTION_KINDS:
        if pattern.search(title):
            return kind
    return None


class MeetingLineClassifier(LineClassifier):
    name = "Meeting Classifier"
    blank_label = MeetingLineLabel.BLANK
    default_label = MeetingLineLabel.TEXT
    rules = (
        LineRule("attendees", MeetingLineLabel.ATTENDEES,
                 lambda w: bool(ATTENDEES_RE.match(w.stripped))),
        LineRule("metadata", MeetingLineLabel.METADATA, lambda w: bool(METADATA_RE.match(w.stripped))),
        LineRule("decision", MeetingLineLabel.DECISION, lambda w: bool(DECISION_RE.match(w.stripped))),
        LineRule("action-keyword", MeetingLineLabel.ACTION_ITEM, lambda w: bool(ACTION_RE.match(w.stripped))),
        LineRule("action-checkbox", MeetingLineLabel.ACTION_ITEM, lambda w: bool(CHECKBOX_RE.match(w.stripped))),
        LineRule("agenda", MeetingLineLabel.AGENDA_ITEM, lambda w: bool(AGENDA_RE.match(w.stripped))),
        LineRule("section-header", MeetingLineLabel.SECTION_HEADER, lambda w: header_title(w.stripped) is not None),
        LineRule("list-item", MeetingLineLabel.LIST_ITEM, lambda w: is_list_item(w.stripped)),
    )
