"""
Meeting Notes Formatter

Turns raw meeting notes into a structured summary: header block (title,
date, time, location, organizer), attendees, agenda, action items with
owner/due date/priority, decisions, and the remaining discussion notes
grouped under their headings.

Section context matters: a plain bullet under "Action Items:" is an action
item, the same bullet under "Discussion:" is a note. Explicitly prefixed
lines ("Decision: ...", "@sam: ...") are recognized anywhere.
"""

import re
from datetime import date

from notesmith.classification.base import COMPLETED_RE, LabeledLine, is_list_item, strip_list_marker
from notesmith.classification.meeting import (
    ACTION_RE,
    AGENDA_RE,
    ATTENDEES_RE,
    DECISION_RE,
    METADATA_RE,
    MeetingLineClassifier,
    MeetingLineLabel,
    header_title,
    section_kind,
)
from notesmith.extraction.dates import find_due_date, format_display_date, strip_due_date
from notesmith.formatting.base import (
    BaseFormatEngine,
    BaseOrganizer,
    BaseRenderer,
    OrganizedDocument,
    OrganizerContext,
    clamp_score,
)
from notesmith.logging_config import debug_log
from notesmith.models import (
    ActionItem,
    ActionStatus,
    AgendaItem,
    Decision,
    FormatType,
    MeetingInfo,
    MeetingNotesData,
    MeetingSection,
    Priority,
)

DEFAULT_SECTION = "General Discussion"
DEFAULT_TITLE = "Meeting Notes"
MAX_AGENDA_ITEMS = 20

PRIORITY_PATTERNS = (
    (Priority.URGENT, re.compile(r"\b(?:urgent|critical|asap|immediately)\b", re.IGNORECASE)),
    (Priority.HIGH, re.compile(r"\b(?:high|important)\b|(?<!low )(?<!medium )\bpriority\b", re.IGNORECASE)),
    (Priority.LOW, re.compile(r"\b(?:low|minor|optional)\b", re.IGNORECASE)),
)
# Only explicit markers are removed from the task text; "important" in prose stays.
PRIORITY_MARKER_RE = re.compile(
    r"\((?:urgent|high|medium|low)(?:\s+priority)?\)|\[(?:urgent|high|medium|low)\]|"
    r"\b(?:high|medium|low)\s+priority\b|\bpriority\s*:\s*\w+|\b(?:urgent|asap)\b:?|!{1,3}",
    re.IGNORECASE)
ASSIGNEE_RE = re.compile(r"(?<![\w.])@([A-Za-z0-9_]+)")
ASSIGNED_TO_RE = re.compile(r"\b(?:assigned to|owner\s*:)\s*([A-Z][a-z]+)", re.IGNORECASE)
TIME_ALLOCATION_RE = re.compile(r"\s*\((\d+\s*(?:min(?:ute)?s?|hours?|hrs?|h))\)", re.IGNORECASE)
ATTENDEE_SPLIT_RE = re.compile(r"[,;:\n]|\s+and\s+")

METADATA_FIELDS = {
    'date': 'date', 'when': 'date',
    'time': 'time',
    'duration': 'duration',
    'location': 'location', 'room': 'location', 'venue': 'location', 'where': 'location',
    'organizer': 'organizer', 'host': 'organizer', 'led by': 'organizer', 'facilitator': 'organizer',
}

PRIORITY_EMOJI = {
    Priority.URGENT: "🔴",
    Priority.HIGH: "🟠",
    Priority.MEDIUM: "🟡",
    Priority.LOW: "🟢",
}


def detect_priority(text: str) -> Priority:
    for priority, pattern in PRIORITY_PATTERNS:
        if pattern.search(text):
            return priority
    return Priority.MEDIUM


def clean_attendee(name: str) -> str:
    name = re.sub(r"^[-*•@\s]+", '', name)
    name = re.sub(r"\s*\([^)]*\)\s*$", '', name)
    return name.strip().rstrip('.')


def parse_attendees(text: str) -> list[str]:
    """Split an attendee line ("Sarah, Mike and @dana") into names."""
    names = []
    for part in ATTENDEE_SPLIT_RE.split(text):
        name = clean_attendee(part)
        if 2 < len(name) < 50:
            names.append(name)
    return names


def parse_action_item(text: str, reference=None) -> ActionItem | None:
    """
    Build an ActionItem from one line of text.

    Extracts the @assignee, due date and priority, then removes them from
    the task text. Returns None when too little text is left.
    """
    status = ActionStatus.COMPLETED if COMPLETED_RE.search(text) else ActionStatus.PENDING
    body = strip_list_marker(text)
    body = COMPLETED_RE.sub('', body).strip()

    assignee = None
    mention = ASSIGNEE_RE.search(body)
    if mention:
        assignee = mention.group(1)
    else:
        assigned = ASSIGNED_TO_RE.search(body)
        if assigned:
            assignee = assigned.group(1)
            body = body.replace(assigned.group(0), '')

    due_date = None
    due = find_due_date(body, reference)
    if due:
        matched, parsed = due
        due_date = parsed.isoformat() if parsed else matched
        body = strip_due_date(body)

    priority = detect_priority(text)
    body = ASSIGNEE_RE.sub('', body)
    body = PRIORITY_MARKER_RE.sub('', body)
    body = re.sub(r"^[:\-,\s]+|[:\-,\s]+$", '', body)
    body = re.sub(r"\s{2,}", ' ', body).strip()

    if len(body) <= 3:
        return None
    return ActionItem(task=body, assignee=assignee, due_date=due_date, priority=priority, status=status)


class MeetingNotesOrganizer(BaseOrganizer):
    name = "Meeting Organizer"

    def organize(self, lines: list[LabeledLine], context: OrganizerContext) -> OrganizedDocument:
        data = MeetingNotesData()
        counts = {'attendees': 0, 'agenda': 0, 'actions': 0, 'decisions': 0}
        title_index = self._title_line(lines, data.meeting)

        kind = None
        section = None

        def add_note(text):
            nonlocal section
            if section is None:
                section = MeetingSection(title=DEFAULT_SECTION)
                data.sections.append(section)
            section.notes.append(text)

        for line in lines:
            if line.is_blank or line.index == title_index:
                continue
            label = line.label

            if label is MeetingLineLabel.ATTENDEES:
                names = parse_attendees(ATTENDEES_RE.match(line.stripped).group(1))
                counts['attendees'] += self._add_attendees(data, names)
                kind = None
            elif label is MeetingLineLabel.METADATA:
                match = METADATA_RE.match(line.stripped)
                self._set_metadata(data.meeting, match.group(1).lower(), match.group(2).strip())
            elif label is MeetingLineLabel.DECISION:
                counts['decisions'] += self._add_decision(data, DECISION_RE.match(line.stripped).group(1))
            elif label is MeetingLineLabel.ACTION_ITEM:
                prefixed = ACTION_RE.match(line.stripped)
                text = line.stripped
                if prefixed and not prefixed.group(0).lstrip('-*• ').startswith('@'):
                    text = prefixed.group(1)
                counts['actions'] += self._add_action(data, text, context)
            elif label is MeetingLineLabel.AGENDA_ITEM:
                counts['agenda'] += self._add_agenda(data, AGENDA_RE.match(line.stripped).group(1))
                kind = 'agenda'
            elif label is MeetingLineLabel.SECTION_HEADER:
                title = header_title(line.stripped)
                kind = section_kind(title)
                if kind is None:
                    section = MeetingSection(title=title)
                    data.sections.append(section)
                    if 5 < len(title) < 100:
                        counts['agenda'] += self._add_agenda(data, title)
            elif kind == 'attendees':
                counts['attendees'] += self._add_attendees(data, parse_attendees(strip_list_marker(line.stripped)))
            elif kind == 'actions':
                counts['actions'] += self._add_action(data, line.stripped, context)
            elif kind == 'decisions':
                counts['decisions'] += self._add_decision(data, strip_list_marker(line.stripped))
            elif kind == 'agenda' and label is MeetingLineLabel.LIST_ITEM:
                counts['agenda'] += self._add_agenda(data, strip_list_marker(line.stripped))
            else:
                cleaned = strip_list_marker(line.stripped)
                if cleaned:
                    add_note(cleaned)

        counts['attendees'] += self._add_attendees(
            data, [hit.value for hit in context.common.mentions if hit.value])
        self._fill_from_entities(data.meeting, context)
        data.sections = [s for s in data.sections if s.notes]
        if title_index >= 0 and not (data.sections or data.agenda_items or data.action_items or data.decisions):
            # The title line is all there is; keep it as discussion too
            data.sections.append(MeetingSection(title=DEFAULT_SECTION, notes=[data.meeting.title]))
        data.agenda_items = data.agenda_items[:MAX_AGENDA_ITEMS]
        note_count = sum(len(s.notes) for s in data.sections)

        kept = (len(data.attendees) + len(data.agenda_items) + len(data.action_items) + len(data.decisions))
        extracted = sum(counts.values())
        has_content = any(not line.is_blank for line in lines)

        debug_log(f"[MEETING] {len(data.attendees)} attendees, {len(data.agenda_items)} agenda items, "
                  f"{len(data.action_items)} actions, {len(data.decisions)} decisions")

        return OrganizedDocument(
            data=data,
            confidence=self._confidence(data, context.scoring) if has_content else 0,
            item_count=len(data.action_items) + len(data.decisions) + note_count,
            entries=len(data.agenda_items) + len(data.action_items) + len(data.decisions) + len(data.sections),
            items_extracted=max(extracted, kept),
            duplicates_removed=max(0, extracted - kept),
            auxiliary_sections=sum(1 for block in (data.attendees, data.agenda_items,
                                                   data.action_items, data.decisions) if block),
        )

    @staticmethod
    def _title_line(lines: list[LabeledLine], meeting: MeetingInfo) -> int:
        first = next((line for line in lines if not line.is_blank), None)
        if first is None:
            return -1
        candidate = re.sub(r"^#+\s*", '', first.stripped).strip()
        if candidate and len(candidate) < 100 and ':' not in candidate and not is_list_item(first.stripped):
            meeting.title = candidate
            return first.index
        return -1

    @staticmethod
    def _add_attendees(data: MeetingNotesData, names: list[str]) -> int:
        known = {name.lower() for name in data.attendees}
        for name in names:
            if name.lower() not in known:
                known.add(name.lower())
                data.attendees.append(name)
        return len(names)

    @staticmethod
    def _add_agenda(data: MeetingNotesData, text: str) -> int:
        title = text.strip().rstrip(':').strip()
        if not title:
            return 0
        allocation = TIME_ALLOCATION_RE.search(title)
        time_allocation = None
        if allocation:
            time_allocation = allocation.group(1)
            title = title.replace(allocation.group(0), '').strip()
        if all(item.title.lower() != title.lower() for item in data.agenda_items):
            data.agenda_items.append(AgendaItem(title=title, time_allocation=time_allocation))
        return 1

    @staticmethod
    def _add_action(data: MeetingNotesData, text: str, context: OrganizerContext) -> int:
        item = parse_action_item(text, context.reference)
        if item is None:
            return 0
        if all(existing.task.lower() != item.task.lower() for existing in data.action_items):
            data.action_items.append(item)
        return 1

    @staticmethod
    def _add_decision(data: MeetingNotesData, text: str) -> int:
        description = text.strip()
        if len(description) <= 5:
            return 0
        if all(d.description.lower() != description.lower() for d in data.decisions):
            data.decisions.append(Decision(description=description))
        return 1

    @staticmethod
    def _set_metadata(meeting: MeetingInfo, key: str, value: str) -> None:
        field_name = METADATA_FIELDS.get(key)
        if field_name and getattr(meeting, field_name) is None:
            setattr(meeting, field_name, value)

    @staticmethod
    def _fill_from_entities(meeting: MeetingInfo, context: OrganizerContext) -> None:
        if meeting.date is None and context.common.dates:
            hit = context.common.dates[0]
            meeting.date = hit.value or hit.text
        if meeting.time is None and context.common.times:
            hit = context.common.times[0]
            meeting.time = hit.value or hit.text

    @staticmethod
    def _confidence(data: MeetingNotesData, scoring: dict) -> int:
        score = scoring.get('base', 40)
        score += min(scoring.get('attendee_cap', 20), scoring.get('per_attendee', 5) * len(data.attendees))
        score += min(scoring.get('action_item_cap', 20), scoring.get('per_action_item', 5) * len(data.action_items))
        score += min(scoring.get('decision_cap', 10), scoring.get('per_decision', 5) * len(data.decisions))
        score += min(scoring.get('agenda_cap', 10), scoring.get('per_agenda_item', 2) * len(data.agenda_items))
        return clamp_score(score)


class MeetingNotesRenderer(BaseRenderer):
    name = "Meeting Renderer"

    def render(self, document: OrganizedDocument) -> str:
        data: MeetingNotesData = document.data
        meeting = data.meeting
        out = [f"# {meeting.title or DEFAULT_TITLE}\n"]

        details = [
            ("Date", meeting.date), ("Time", meeting.time), ("Duration", meeting.duration),
            ("Location", meeting.location), ("Organizer", meeting.organizer),
        ]
        detail_lines = [f"**{label}:** {value}" for label, value in details if value]
        if detail_lines:
            out.extend(detail_lines)
            out.append("")

        if data.attendees:
            out.append("## 📋 Attendees\n")
            out.extend(f"- {name}" for name in data.attendees)
            out.append("")

        if data.agenda_items:
            out.append("## 📌 Agenda\n")
            for number, item in enumerate(data.agenda_items, 1):
                suffix = f" ({item.time_allocation})" if item.time_allocation else ""
                out.append(f"{number}. **{item.title}**{suffix}")
            out.append("")

        if data.action_items:
            out.append("## ✅ Action Items\n")
            for number, item in enumerate(data.action_items, 1):
                out.append(f"{number}. {self._action_line(item, document.reference)}")
            out.append("")

        if data.decisions:
            out.append("## 💡 Decisions Made\n")
            out.extend(f"- {decision.description}" for decision in data.decisions)
            out.append("")

        for section in data.sections:
            out.append(f"## {section.title}\n")
            out.extend(f"- {note}" for note in section.notes)
            out.append("")

        return '\n'.join(out).strip()

    @staticmethod
    def _action_line(item: ActionItem, reference) -> str:
        marker = "✔️" if item.status is ActionStatus.COMPLETED else PRIORITY_EMOJI[item.priority]
        line = f"{marker} {item.task}"
        if item.assignee:
            line += f" @{item.assignee}"
        if item.due_date:
            line += f" - *Due: {_display_due(item.due_date, reference)}*"
        return line


def _display_due(value: str, reference) -> str:
    try:
        return format_display_date(date.fromisoformat(value), reference)
    except ValueError:
        return value


class MeetingNotesEngine(BaseFormatEngine):
    format_type = FormatType.MEETING_NOTES
    classifier_class = MeetingLineClassifier
    organizer_class = MeetingNotesOrganizer
    renderer_class = MeetingNotesRenderer
