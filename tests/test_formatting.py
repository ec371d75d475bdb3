"""
Tests for the formatting facade and the behavior every engine shares:
determinism, empty input, progress checkpoints, cancellation and input
truncation.
"""

import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.errors import ErrorCode, TaskCancelledError, TaskTimeoutError, WorkerError
from notesmith.formatting import FORMAT_ENGINES, format_text, get_engine, resolve_format
from notesmith.models import FormatType, TextInput
from notesmith.parallel import CancellationContext
from notesmith.parallel.cancellation import CancellationReason

REFERENCE = datetime(2024, 3, 6, 9, 0)

MIXED_TEXT = (
    "Project Kickoff\n"
    "Attendees: Sarah, Mike\n"
    "- [ ] Draft the plan by Friday\n"
    "- 2 lbs apples\n"
    "Osmosis: the movement of water across a membrane.\n"
    "As shown by Smith (2023), results vary.\n"
    "I felt great about it today."
)


PLAIN_LINE = "we talked about the budget and the roadmap"

DEFAULT_NAMES = {
    FormatType.RESEARCH_NOTES: "Introduction",
    FormatType.MEETING_NOTES: "General Discussion",
    FormatType.TASK_LISTS: "Tasks",
    FormatType.SHOPPING_LISTS: "Other",
    FormatType.JOURNAL_NOTES: "Journal Entry",
    FormatType.STUDY_NOTES: "Introduction",
}

# format -> names of the top-level entries in its payload
DEFAULT_ENTRY_NAMES = {
    FormatType.RESEARCH_NOTES: lambda data: [topic.name for topic in data.topics],
    FormatType.MEETING_NOTES: lambda data: [section.title for section in data.sections],
    FormatType.TASK_LISTS: lambda data: [category.name for category in data.categories],
    FormatType.SHOPPING_LISTS: lambda data: [category.name for category in data.categories],
    FormatType.JOURNAL_NOTES: lambda data: [entry.title for entry in data.entries],
    FormatType.STUDY_NOTES: lambda data: [section.title for section in data.outline],
}


def text_input(content):
    return TextInput.from_text(content, timestamp=REFERENCE)


class TestFacade:
    """Test format_text() and engine lookup."""

    def test_every_format_has_an_engine(self):
        """All six formats are registered."""
        assert set(FORMAT_ENGINES) == set(FormatType)

    def test_string_format_accepted(self):
        """The format's string value works as well as the enum."""
        output = format_text(text_input("- [ ] Call the bank"), "task-lists")
        assert output.format is FormatType.TASK_LISTS
        assert get_engine("study-notes").format_type is FormatType.STUDY_NOTES

    def test_unknown_format_rejected(self):
        """Unknown formats raise UNSUPPORTED_FORMAT."""
        with pytest.raises(WorkerError) as exc_info:
            format_text(text_input("hello"), "bogus")
        assert exc_info.value.code is ErrorCode.UNSUPPORTED_FORMAT
        with pytest.raises(WorkerError):
            resolve_format(None)


@pytest.mark.parametrize("format_type", list(FormatType))
class TestEveryEngine:
    """Invariants that hold for all six formats."""

    def test_deterministic_output(self, format_type):
        """Same input and timestamp give the same content and data."""
        first = format_text(text_input(MIXED_TEXT), format_type)
        second = format_text(text_input(MIXED_TEXT), format_type)
        assert first.content == second.content
        assert first.data == second.data
        assert first.metadata.confidence == second.metadata.confidence

    def test_payload_matches_format(self, format_type):
        """The tagged payload carries the requested format."""
        output = format_text(text_input(MIXED_TEXT), format_type)
        assert output.format is format_type
        assert output.data.format_specific.format is format_type

    def test_confidence_bounds(self, format_type):
        """Confidence is an int in [0, 100]."""
        confidence = format_text(text_input(MIXED_TEXT), format_type).metadata.confidence
        assert isinstance(confidence, int)
        assert 0 <= confidence <= 100

    @pytest.mark.parametrize("content", ["", "   \n\t\n  "])
    def test_empty_input_never_raises(self, format_type, content):
        """Blank input yields a valid output with zero confidence."""
        output = format_text(text_input(content), format_type)
        assert output.metadata.confidence == 0
        assert output.metadata.item_count == 0
        assert output.metadata.stats.lines_processed == 0
        assert isinstance(output.content, str)

    def test_unstructured_line_gets_default_entry(self, format_type):
        """A single line with no structure becomes one entry under the default name."""
        output = format_text(text_input(PLAIN_LINE), format_type)
        assert DEFAULT_ENTRY_NAMES[format_type](output.data.format_specific) == [DEFAULT_NAMES[format_type]]
        assert output.metadata.item_count >= 1
        assert output.metadata.stats.patterns_matched >= 1

    def test_progress_checkpoints(self, format_type):
        """Progress is reported at 0, 20, 40, 60, 80 and 100 percent."""
        seen = []
        format_text(text_input(MIXED_TEXT), format_type, on_progress=lambda percent, step: seen.append(percent))
        assert seen == [0, 20, 40, 60, 80, 100]


class TestCancellation:
    """Test cooperative cancellation at checkpoints."""

    def test_pre_cancelled_context_raises(self):
        """A cancelled context stops the engine at the first checkpoint."""
        context = CancellationContext("task-1")
        context.cancel()
        with patch('notesmith.formatting.tasks.TaskListRenderer.render') as render:
            with pytest.raises(TaskCancelledError):
                format_text(text_input("- [ ] a task"), FormatType.TASK_LISTS, context=context)
        render.assert_not_called()

    def test_timeout_reason_raises_timeout(self):
        """A context cancelled for timeout raises TaskTimeoutError."""
        context = CancellationContext()
        context.cancel(CancellationReason.TIMEOUT)
        with pytest.raises(TaskTimeoutError) as exc_info:
            format_text(text_input("text"), FormatType.JOURNAL_NOTES, context=context)
        assert exc_info.value.code is ErrorCode.TIMEOUT

    def test_cancel_between_checkpoints(self):
        """Cancelling from a progress callback stops at the next checkpoint."""
        context = CancellationContext()
        seen = []

        def on_progress(percent, step):
            seen.append(percent)
            if percent == 40:
                context.cancel()

        with pytest.raises(TaskCancelledError):
            format_text(text_input(MIXED_TEXT), FormatType.MEETING_NOTES, context=context, on_progress=on_progress)
        assert seen == [0, 20, 40]


class TestInputLimits:
    """Test oversized input handling."""

    def test_oversized_input_truncated_with_warning(self):
        """Input over the limit is cut and a warning is attached."""
        with patch('notesmith.formatting.base.MAX_INPUT_CHARS', 17):
            output = format_text(text_input("- [ ] first task\n- [ ] second task"), FormatType.TASK_LISTS)
        assert any("truncated" in message for message in output.warnings)
        assert [task.description for task in output.data.format_specific.tasks] == ["first task"]

    def test_stats_count_non_blank_lines(self):
        """lines_processed ignores blank lines."""
        output = format_text(text_input("- [ ] one\n\n- [ ] two"), FormatType.TASK_LISTS)
        assert output.metadata.stats.lines_processed == 2
