"""
Format engines for NoteSmith.

One engine per FormatType. Every engine runs the same pipeline
(sanitize → classify → organize → render) with its own organizer and
renderer, and returns a FormattedOutput.

Components:
    BaseFormatEngine / BaseOrganizer / BaseRenderer - Shared contracts (base.py)
    ResearchNotesEngine, MeetingNotesEngine, TaskListEngine,
    ShoppingListEngine, JournalNotesEngine, StudyNotesEngine - Per-format engines
    format_text / get_engine / FORMAT_ENGINES - Facade (facade.py)
    detect_format / FormatDetectionResult - Format suggestion (detection.py)

Usage Example:
    from notesmith.formatting import format_text
    from notesmith.models import FormatType, TextInput

    output = format_text(TextInput.from_text("- [ ] Call dentist tomorrow"), FormatType.TASK_LISTS)
    print(output.content)
"""

from .base import (
    BaseFormatEngine,
    BaseOrganizer,
    BaseRenderer,
    OrganizedDocument,
    OrganizerContext,
    clamp_score,
)
from .research import ResearchNotesEngine, ResearchNotesOrganizer, ResearchNotesRenderer
from .meeting import MeetingNotesEngine, MeetingNotesOrganizer, MeetingNotesRenderer
from .tasks import TaskListEngine, TaskListOrganizer, TaskListRenderer
from .shopping import ShoppingListEngine, ShoppingListOrganizer, ShoppingListRenderer
from .journal import JournalNotesEngine, JournalNotesOrganizer, JournalNotesRenderer
from .study import StudyNotesEngine, StudyNotesOrganizer, StudyNotesRenderer
from .facade import FORMAT_ENGINES, format_text, get_engine, resolve_format
from .detection import FormatDetectionResult, detect_format

__all__ = [
    # Contracts
    'BaseFormatEngine',
    'BaseOrganizer',
    'BaseRenderer',
    'OrganizedDocument',
    'OrganizerContext',
    'clamp_score',
    # Engines
    'ResearchNotesEngine',
    'ResearchNotesOrganizer',
    'ResearchNotesRenderer',
    'MeetingNotesEngine',
    'MeetingNotesOrganizer',
    'MeetingNotesRenderer',
    'TaskListEngine',
    'TaskListOrganizer',
    'TaskListRenderer',
    'ShoppingListEngine',
    'ShoppingListOrganizer',
    'ShoppingListRenderer',
    'JournalNotesEngine',
    'JournalNotesOrganizer',
    'JournalNotesRenderer',
    'StudyNotesEngine',
    'StudyNotesOrganizer',
    'StudyNotesRenderer',
    # Facade
    'FORMAT_ENGINES',
    'format_text',
    'get_engine',
    'resolve_format',
    # Detection
    'FormatDetectionResult',
    'detect_format',
]
