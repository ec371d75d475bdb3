"""
Format Engine Facade

Single entry point used by callers and by the worker layer:

    output = format_text(TextInput.from_text(raw), FormatType.TASK_LISTS)

Engines are looked up in FORMAT_ENGINES by FormatType. Each call builds a
fresh engine, so callers never share mutable state through the facade.
"""

from notesmith.errors import ErrorCode, WorkerError
from notesmith.formatting.base import BaseFormatEngine, ProgressCallback
from notesmith.formatting.journal import JournalNotesEngine
from notesmith.formatting.meeting import MeetingNotesEngine
from notesmith.formatting.research import ResearchNotesEngine
from notesmith.formatting.shopping import ShoppingListEngine
from notesmith.formatting.study import StudyNotesEngine
from notesmith.formatting.tasks import TaskListEngine
from notesmith.logging_config import debug_log
from notesmith.models import FormattedOutput, FormatType, TextInput

FORMAT_ENGINES: dict[FormatType, type[BaseFormatEngine]] = {
    FormatType.MEETING_NOTES: MeetingNotesEngine,
    FormatType.TASK_LISTS: TaskListEngine,
    FormatType.SHOPPING_LISTS: ShoppingListEngine,
    FormatType.JOURNAL_NOTES: JournalNotesEngine,
    FormatType.RESEARCH_NOTES: ResearchNotesEngine,
    FormatType.STUDY_NOTES: StudyNotesEngine,
}


def resolve_format(format_type) -> FormatType:
    """
    Coerce a FormatType or its string value.

    Raises:
        WorkerError: UNSUPPORTED_FORMAT for anything else.
    """
    try:
        return FormatType(format_type)
    except ValueError:
        raise WorkerError(
            f"Unsupported format: {format_type!r}",
            ErrorCode.UNSUPPORTED_FORMAT,
            context={'format': str(format_type)},
        ) from None


def get_engine(format_type) -> BaseFormatEngine:
    """Build the engine for a format."""
    return FORMAT_ENGINES[resolve_format(format_type)]()


def format_text(text_input: TextInput, format_type, context=None,
                on_progress: ProgressCallback | None = None) -> FormattedOutput:
    """
    Format ``text_input`` as ``format_type``.

    Args:
        text_input: Raw text plus metadata.
        format_type: FormatType or its string value ("task-lists", ...).
        context: Optional CancellationContext checked at each checkpoint.
        on_progress: Optional callback(percent, step).

    Raises:
        WorkerError: UNSUPPORTED_FORMAT for an unknown format, and the
            cancellation errors raised by the context.
    """
    engine = get_engine(format_type)
    debug_log(f"[FACADE] Formatting {text_input.size} chars as {engine.format_type.value}")
    return engine.format(text_input, context=context, on_progress=on_progress)
