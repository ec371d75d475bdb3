"""
Line classification for NoteSmith.

Each format has its own label set and ordered rule list; the first rule
that matches a line decides its label.

Components:
    LineClassifier / LineRule / LabeledLine - Shared machinery (base.py)
    ResearchLineClassifier, MeetingLineClassifier, TaskLineClassifier,
    ShoppingLineClassifier, JournalLineClassifier, StudyLineClassifier
"""

from .base import LabeledLine, LineClassifier, LineRule, LineWindow
from .research import ResearchLineClassifier, ResearchLineLabel
from .meeting import MeetingLineClassifier, MeetingLineLabel
from .tasks import TaskLineClassifier, TaskLineLabel
from .shopping import ShoppingLineClassifier, ShoppingLineLabel
from .journal import JournalLineClassifier, JournalLineLabel
from .study import StudyLineClassifier, StudyLineLabel

__all__ = [
    'LabeledLine',
    'LineClassifier',
    'LineRule',
    'LineWindow',
    'ResearchLineClassifier',
    'ResearchLineLabel',
    'MeetingLineClassifier',
    'MeetingLineLabel',
    'TaskLineClassifier',
    'TaskLineLabel',
    'ShoppingLineClassifier',
    'ShoppingLineLabel',
    'JournalLineClassifier',
    'JournalLineLabel',
    'StudyLineClassifier',
    'StudyLineLabel',
]
