"""
Document model for NoteSmith.

Every formatting run produces one FormattedOutput: the rendered text plus
an ExtractedData payload. ExtractedData.format_specific is a tagged union;
each variant carries its FormatType in the class-level ``format`` tag and
consumers dispatch on that tag (see ``FORMAT_DATA_TYPES``).

Ownership rules:
- Research citations, quotes and sources live in the flat lists of
  ResearchNotesData. ResearchTopic only holds their ids.
- Shopping and task categories hold item/task ids, never copies.
- Study topics reference outline sections and definitions by id.

Input/output records are frozen. Entity records are plain dataclasses that
organizers fill in while they work; once wrapped in a FormattedOutput they
are treated as read-only.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Union


class FormatType(str, Enum):
    """The six supported document categories."""
    MEETING_NOTES = "meeting-notes"
    TASK_LISTS = "task-lists"
    SHOPPING_LISTS = "shopping-lists"
    JOURNAL_NOTES = "journal-notes"
    RESEARCH_NOTES = "research-notes"
    STUDY_NOTES = "study-notes"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    FormatType.MEETING_NOTES: "Meeting Notes",
    FormatType.TASK_LISTS: "Task Lists",
    FormatType.SHOPPING_LISTS: "Shopping Lists",
    FormatType.JOURNAL_NOTES: "Journal/Notes",
    FormatType.RESEARCH_NOTES: "Research Notes",
    FormatType.STUDY_NOTES: "Study Notes",
}


class InputSource(str, Enum):
    TYPE = "type"
    PASTE = "paste"
    UPLOAD = "upload"


class Priority(str, Enum):
    """Priority tiers shared by action items and tasks (highest first in SORT_ORDER)."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """0 for urgent up to 3 for low; lower sorts first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.URGENT: 0, Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}


# =============================================================================
# Input
# =============================================================================

@dataclass(frozen=True)
class InputMetadata:
    """
    Where the text came from and when.

    ``timestamp`` is also the reference point for relative dates such as
    "tomorrow" or "next Friday", which keeps formatting reproducible.
    """
    source: InputSource = InputSource.PASTE
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    size: int | None = None
    file_name: str | None = None


@dataclass(frozen=True)
class TextInput:
    """Raw text handed to a format engine."""
    content: str
    metadata: InputMetadata = field(default_factory=InputMetadata)

    @property
    def size(self) -> int:
        return self.metadata.size if self.metadata.size is not None else len(self.content)

    @classmethod
    def from_text(cls, content: str, timestamp: datetime | None = None,
                  source: InputSource = InputSource.PASTE) -> 'TextInput':
        """Convenience constructor filling in size and (optionally) a fixed timestamp."""
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        return cls(content=content, metadata=InputMetadata(
            source=source, timestamp=timestamp, size=len(content)))


# =============================================================================
# Common entities
# =============================================================================

@dataclass
class EntityHit:
    """
    One pattern match.

    Attributes:
        text: Matched span exactly as it appears in the input.
        value: Normalized value (ISO date, lowercase email, ...) or None
               when normalization failed.
        start/end: Character offsets within the scanned text.
        line: Zero-based line index the hit came from (-1 if unknown).
        confidence: Pattern confidence, 0..1.
        kind: Name of the rule that produced the hit.
    """
    text: str
    value: str | None = None
    start: int = 0
    end: int = 0
    line: int = -1
    confidence: float = 1.0
    kind: str = ""


@dataclass
class CommonEntities:
    dates: list[EntityHit] = field(default_factory=list)
    times: list[EntityHit] = field(default_factory=list)
    urls: list[EntityHit] = field(default_factory=list)
    emails: list[EntityHit] = field(default_factory=list)
    phone_numbers: list[EntityHit] = field(default_factory=list)
    mentions: list[EntityHit] = field(default_factory=list)
    hashtags: list[EntityHit] = field(default_factory=list)

    def total(self) -> int:
        return (len(self.dates) + len(self.times) + len(self.urls) + len(self.emails)
                + len(self.phone_numbers) + len(self.mentions) + len(self.hashtags))


# =============================================================================
# Research notes
# =============================================================================

class CitationStyle(str, Enum):
    APA = "apa"
    MLA = "mla"
    CHICAGO = "chicago"
    HARVARD = "harvard"
    CUSTOM = "custom"


@dataclass
class CitationSource:
    title: str = ""
    author: str | None = None
    year: int | None = None
    publication: str | None = None
    url: str | None = None


@dataclass
class Citation:
    id: str
    text: str
    format: CitationStyle
    source: CitationSource = field(default_factory=CitationSource)
    line: int = -1


@dataclass
class Quote:
    id: str
    text: str
    author: str | None = None
    source: str | None = None
    location: str | None = None
    notes: str | None = None
    line: int = -1


class SourceType(str, Enum):
    BOOK = "book"
    ARTICLE = "article"
    WEBSITE = "website"
    JOURNAL = "journal"
    REPORT = "report"
    OTHER = "other"


@dataclass
class Source:
    id: str
    title: str
    type: SourceType = SourceType.OTHER
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ResearchTopic:
    """A research entry. Citations and quotes are referenced by id only."""
    name: str
    description: str = ""
    citation_ids: list[str] = field(default_factory=list)
    quote_ids: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


@dataclass
class ResearchNotesData:
    format: ClassVar[FormatType] = FormatType.RESEARCH_NOTES
    citations: list[Citation] = field(default_factory=list)
    quotes: list[Quote] = field(default_factory=list)
    topics: list[ResearchTopic] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)

    def citation(self, citation_id: str) -> Citation | None:
        return next((c for c in self.citations if c.id == citation_id), None)

    def quote(self, quote_id: str) -> Quote | None:
        return next((q for q in self.quotes if q.id == quote_id), None)


# =============================================================================
# Meeting notes
# =============================================================================

class ActionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


@dataclass
class AgendaItem:
    title: str
    description: str | None = None
    time_allocation: str | None = None
    presenter: str | None = None


@dataclass
class ActionItem:
    task: str
    assignee: str | None = None
    due_date: str | None = None
    priority: Priority = Priority.MEDIUM
    status: ActionStatus = ActionStatus.PENDING


@dataclass
class Decision:
    description: str
    decision_maker: str | None = None
    rationale: str | None = None
    timeline: str | None = None


@dataclass
class MeetingInfo:
    title: str | None = None
    date: str | None = None
    time: str | None = None
    duration: str | None = None
    location: str | None = None
    organizer: str | None = None


@dataclass
class MeetingSection:
    """Discussion notes collected under one heading."""
    title: str
    notes: list[str] = field(default_factory=list)


@dataclass
class MeetingNotesData:
    format: ClassVar[FormatType] = FormatType.MEETING_NOTES
    attendees: list[str] = field(default_factory=list)
    agenda_items: list[AgendaItem] = field(default_factory=list)
    action_items: list[ActionItem] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    meeting: MeetingInfo = field(default_factory=MeetingInfo)
    sections: list[MeetingSection] = field(default_factory=list)


# =============================================================================
# Task lists
# =============================================================================

class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class Task:
    id: str
    description: str
    priority: Priority = Priority.MEDIUM
    due_date: str | None = None
    due_text: str | None = None
    category: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    notes: str | None = None
    line: int = -1


@dataclass
class TaskCategory:
    name: str
    task_ids: list[str] = field(default_factory=list)
    priority: int = 0


@dataclass
class TaskListStats:
    total: int = 0
    completed: int = 0
    pending: int = 0
    overdue: int = 0


@dataclass
class TaskListsData:
    format: ClassVar[FormatType] = FormatType.TASK_LISTS
    categories: list[TaskCategory] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    stats: TaskListStats = field(default_factory=TaskListStats)


# =============================================================================
# Shopping lists
# =============================================================================

@dataclass
class ShoppingItem:
    id: str
    name: str
    quantity: str | None = None
    unit: str | None = None
    category: str = "Other"
    notes: str | None = None
    checked: bool = False


@dataclass
class ShoppingCategory:
    name: str
    section: str | None = None
    item_ids: list[str] = field(default_factory=list)
    order: int = 0


@dataclass
class ShoppingListStats:
    total_items: int = 0
    total_categories: int = 0
    duplicates_removed: int = 0


@dataclass
class ShoppingListsData:
    format: ClassVar[FormatType] = FormatType.SHOPPING_LISTS
    categories: list[ShoppingCategory] = field(default_factory=list)
    items: list[ShoppingItem] = field(default_factory=list)
    stats: ShoppingListStats = field(default_factory=ShoppingListStats)


# =============================================================================
# Journal notes
# =============================================================================

class Mood(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    MIXED = "mixed"


@dataclass
class JournalEntry:
    id: str
    content: str
    timestamp: str | None = None
    timestamp_text: str | None = None
    title: str | None = None
    mood: Mood | None = None
    tags: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    quotes: list[str] = field(default_factory=list)
    paragraphs: list[str] = field(default_factory=list)


@dataclass
class JournalNotesData:
    format: ClassVar[FormatType] = FormatType.JOURNAL_NOTES
    entries: list[JournalEntry] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    mood: Mood | None = None
    topics: list[str] = field(default_factory=list)


# =============================================================================
# Study notes
# =============================================================================

class QuestionType(str, Enum):
    DEFINITION = "definition"
    EXPLANATION = "explanation"
    EXAMPLE = "example"
    ANALYSIS = "analysis"
    COMPARISON = "comparison"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Importance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class OutlineSection:
    id: str
    level: int
    title: str
    content: str = ""
    subsections: list['OutlineSection'] = field(default_factory=list)

    def walk(self):
        """Yield this section and every nested subsection, depth first."""
        yield self
        for child in self.subsections:
            yield from child.walk()


@dataclass
class QAPair:
    question: str
    answer: str
    type: QuestionType = QuestionType.EXPLANATION
    difficulty: Difficulty | None = None
    topics: list[str] = field(default_factory=list)


@dataclass
class Definition:
    id: str
    term: str
    definition: str
    context: str | None = None
    example: str | None = None
    related_terms: list[str] = field(default_factory=list)


@dataclass
class StudyTopic:
    name: str
    importance: Importance = Importance.MEDIUM
    section_ids: list[str] = field(default_factory=list)
    definition_ids: list[str] = field(default_factory=list)


@dataclass
class StudyNotesData:
    format: ClassVar[FormatType] = FormatType.STUDY_NOTES
    outline: list[OutlineSection] = field(default_factory=list)
    qa_pairs: list[QAPair] = field(default_factory=list)
    definitions: list[Definition] = field(default_factory=list)
    topics: list[StudyTopic] = field(default_factory=list)

    def all_sections(self) -> list[OutlineSection]:
        return [section for root in self.outline for section in root.walk()]


# =============================================================================
# Output
# =============================================================================

FormatSpecificData = Union[
    MeetingNotesData,
    TaskListsData,
    ShoppingListsData,
    JournalNotesData,
    ResearchNotesData,
    StudyNotesData,
]

FORMAT_DATA_TYPES: dict[FormatType, type] = {
    FormatType.MEETING_NOTES: MeetingNotesData,
    FormatType.TASK_LISTS: TaskListsData,
    FormatType.SHOPPING_LISTS: ShoppingListsData,
    FormatType.JOURNAL_NOTES: JournalNotesData,
    FormatType.RESEARCH_NOTES: ResearchNotesData,
    FormatType.STUDY_NOTES: StudyNotesData,
}


def empty_data_for(format_type: FormatType) -> FormatSpecificData:
    """Return the empty tagged-union variant for a format."""
    return FORMAT_DATA_TYPES[FormatType(format_type)]()


@dataclass
class ExtractedData:
    format_specific: FormatSpecificData
    common: CommonEntities = field(default_factory=CommonEntities)

    @property
    def format(self) -> FormatType:
        return self.format_specific.format


@dataclass(frozen=True)
class ProcessingStats:
    """
    Counters describing one formatting run.

    Invariant: items_extracted >= duplicates_removed >= 0.
    """
    lines_processed: int = 0
    patterns_matched: int = 0
    items_extracted: int = 0
    duplicates_removed: int = 0
    changes_applied: int = 0

    def __post_init__(self):
        for name in ('lines_processed', 'patterns_matched', 'items_extracted',
                     'duplicates_removed', 'changes_applied'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.items_extracted < self.duplicates_removed:
            raise ValueError("items_extracted must be >= duplicates_removed")


@dataclass(frozen=True)
class ProcessingMetadata:
    processed_at: datetime
    duration: float
    confidence: int
    item_count: int
    stats: ProcessingStats


@dataclass(frozen=True)
class FormattedOutput:
    format: FormatType
    content: str
    metadata: ProcessingMetadata
    data: ExtractedData
    warnings: tuple[str, ...] = ()
