"""
Tests for TextSanitizer.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.sanitization import TextSanitizer


class TestTextSanitizer:
    """Test each cleanup stage."""

    def setup_method(self):
        self.sanitizer = TextSanitizer()

    def test_line_endings_normalized(self):
        """CRLF and bare CR become LF and are counted."""
        text, stats = self.sanitizer.sanitize("a\r\nb\r\nc")
        assert text == "a\nb\nc"
        assert stats["line_endings_normalized"] == 2

    def test_zero_width_removed(self):
        """Zero-width spaces inside words are dropped."""
        text, _ = self.sanitizer.sanitize("word\u200bword")
        assert text == "wordword"

    def test_control_characters_removed(self):
        """Control characters do not survive."""
        text, _ = self.sanitizer.sanitize("alpha\x07beta")
        assert "\x07" not in text
        assert text.startswith("alpha")

    def test_mojibake_fixed(self):
        """Mis-decoded UTF-8 is repaired."""
        text, stats = self.sanitizer.sanitize("donâ€™t")
        assert "â€" not in text
        assert text.startswith("don")
        assert stats["mojibake_fixed"] > 0

    def test_compatibility_forms_folded(self):
        """Full-width digits fold to ASCII."""
        text, _ = self.sanitizer.sanitize("\uff11\uff12 eggs")
        assert text == "12 eggs"

    def test_trailing_whitespace_trimmed(self):
        """Trailing spaces are removed so header checks see the colon."""
        text, stats = self.sanitizer.sanitize("Produce:   \n- apples")
        assert text == "Produce:\n- apples"
        assert stats["trailing_spaces_trimmed"] == 1

    def test_indentation_preserved(self):
        """Leading indentation stays; inner space runs collapse."""
        text, _ = self.sanitizer.sanitize("    - nested    item")
        assert text == "    - nested item"

    def test_empty_text(self):
        """Empty input returns unchanged with zero counts."""
        text, stats = self.sanitizer.sanitize("")
        assert text == ""
        assert all(count == 0 for count in stats.values())

    def test_encoding_repair_can_be_disabled(self):
        """With fix_encoding=False the ftfy stage is skipped and logged."""
        sanitizer = TextSanitizer(fix_encoding=False)
        sanitizer.sanitize("plain text")
        assert any("SKIPPED" in entry for entry in sanitizer.get_log())
