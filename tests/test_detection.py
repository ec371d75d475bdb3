"""
Tests for format detection.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.formatting import detect_format
from notesmith.formatting.detection import score_format
from notesmith.models import FormatType


class TestDetectFormat:
    """Test format suggestions for typical inputs."""

    def test_checkbox_list_is_task_list(self):
        """Several checkboxes point at task lists."""
        result = detect_format("- [ ] Finish the report\n- [ ] Call the bank\n- [x] Pay rent")
        assert result.suggested_format is FormatType.TASK_LISTS
        assert "Task Lists" in result.reasoning

    def test_quantities_and_food_are_shopping(self):
        """Quantities plus grocery words point at shopping lists."""
        text = "- 2 lbs apples\n- 1 bottle juice\n- 3 kg potatoes\n- milk\n- bread\n- eggs"
        assert detect_format(text).suggested_format is FormatType.SHOPPING_LISTS

    def test_personal_prose_is_journal(self):
        """First-person prose falls through to journal notes."""
        result = detect_format("I felt calm today and I think the walk helped me a lot.")
        assert result.suggested_format is FormatType.JOURNAL_NOTES

    def test_empty_text(self):
        """No text means journal notes with zero confidence."""
        result = detect_format("")
        assert result.suggested_format is FormatType.JOURNAL_NOTES
        assert result.confidence == 0.0
        assert result.reasoning == "No text provided"
        assert detect_format(None).confidence == 0.0

    def test_every_format_scored(self):
        """Scores cover all six formats and stay within [0, 1]."""
        result = detect_format("Agenda: budget\nAttendees: Sarah Lee, Mike Chen")
        assert set(result.scores) == set(FormatType)
        assert all(0.0 <= score <= 1.0 for score in result.scores.values())

    def test_journal_base_score(self):
        """Journal notes start from a base score so prose has a home."""
        assert score_format(FormatType.JOURNAL_NOTES, "x") >= 0.3
        assert score_format(FormatType.TASK_LISTS, "x") == 0.0
