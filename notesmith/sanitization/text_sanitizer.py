"""
TextSanitizer: Clean raw note text before line classification.

Pasted and uploaded notes arrive with copy/paste debris that breaks the
line-oriented pattern matching downstream:
1. Mojibake from mis-decoded uploads: donâ€™t → don't
2. Windows and old-Mac line endings (\\r\\n, \\r)
3. Control and zero-width characters hidden inside words
4. Compatibility forms (ligatures, full-width digits, non-breaking spaces)
5. Trailing whitespace that defeats "ends with ':'" header checks

Uses ftfy for encoding recovery + unicodedata for character classification.
Newlines and leading indentation are always preserved; classifiers rely on
them.
"""

import re
import time
import unicodedata

import ftfy

ZERO_WIDTH_CHARS = '\u200b\u200c\u200d\u2060\ufeff'


class TextSanitizer:
    """
    Sanitize note text for reliable pattern matching.

    Performs a multi-stage cleanup:
    1. Normalize line endings
    2. Fix mojibake using ftfy
    3. Normalize Unicode (NFKC form)
    4. Remove control, private-use and zero-width characters
    5. Trim trailing whitespace per line
    """

    def __init__(self, fix_encoding: bool = True):
        """
        Initialize the sanitizer.

        Args:
            fix_encoding: If True (default), run ftfy mojibake recovery.
        """
        self.fix_encoding = fix_encoding
        self.sanitization_log = []

    def sanitize(self, text: str) -> tuple[str, dict]:
        """
        Sanitize text and return cleaned text + statistics.

        Args:
            text: Raw note text.

        Returns:
            (cleaned_text, stats_dict) where stats_dict contains:
            - line_endings_normalized: Count of \\r\\n / \\r replaced
            - mojibake_fixed: Count of characters changed by ftfy
            - control_chars_removed: Count of control/format characters removed
            - zero_width_removed: Count of zero-width characters removed
            - trailing_spaces_trimmed: Count of lines with trailing whitespace
        """
        self.sanitization_log = []
        stats = {
            "line_endings_normalized": 0,
            "mojibake_fixed": 0,
            "control_chars_removed": 0,
            "zero_width_removed": 0,
            "trailing_spaces_trimmed": 0,
        }
        if not text:
            return text, stats

        stages = [
            ("Line ending normalization", self._normalize_line_endings, "line_endings_normalized"),
            ("Mojibake recovery (ftfy)", self._fix_mojibake, "mojibake_fixed"),
            ("Unicode normalization (NFKC)", self._normalize_unicode, None),
            ("Problematic character removal", self._clean_problematic_chars, None),
            ("Trailing whitespace trim", self._trim_trailing, "trailing_spaces_trimmed"),
        ]

        for label, stage, stat_key in stages:
            if stage == self._fix_mojibake and not self.fix_encoding:
                self._log(f"{label} (SKIPPED - disabled)")
                continue
            start = time.perf_counter()
            original_len = len(text)
            text, counts = stage(text)
            if stat_key is not None:
                stats[stat_key] = counts
            elif isinstance(counts, dict):
                stats.update(counts)
            duration = time.perf_counter() - start
            self._log(f"{label}: {duration:.3f}s | Input: {original_len} | Output: {len(text)} "
                      f"| Delta: {len(text) - original_len:+d}")

        return text, stats

    def _normalize_line_endings(self, text: str) -> tuple[str, int]:
        count = text.count('\r\n') + text.replace('\r\n', '').count('\r')
        return text.replace('\r\n', '\n').replace('\r', '\n'), count

    def _fix_mojibake(self, text: str) -> tuple[str, int]:
        """
        Fix mojibake (encoding corruption) using ftfy.

        Examples:
            'donâ€™t' → "don't"
            'cafÃ©' → 'café'
        """
        original = text
        text = ftfy.fix_text(text)
        fixes = sum(1 for a, b in zip(original, text) if a != b) + abs(len(original) - len(text))
        if fixes > 0:
            self._log(f"Fixed {fixes} mojibake/encoding corruption characters")
        return text, fixes

    def _normalize_unicode(self, text: str) -> tuple[str, int]:
        """NFKC folds ligatures, full-width forms and non-breaking spaces."""
        return unicodedata.normalize('NFKC', text), 0

    def _clean_problematic_chars(self, text: str) -> tuple[str, dict]:
        """
        Remove control, format, private-use and zero-width characters.

        Newlines and tabs are kept.
        """
        cleaned = []
        control_removed = 0
        zero_width_removed = 0

        for char in text:
            if char in '\n\t':
                cleaned.append(char)
                continue
            if char in ZERO_WIDTH_CHARS:
                zero_width_removed += 1
                continue
            category = unicodedata.category(char)
            if category == 'Cc':
                # Stray control characters usually separated two words
                control_removed += 1
                cleaned.append(' ')
            elif category[0] == 'C':
                control_removed += 1
            else:
                cleaned.append(char)

        if control_removed > 0:
            self._log(f"Removed {control_removed} control characters")
        if zero_width_removed > 0:
            self._log(f"Removed {zero_width_removed} zero-width characters")

        return ''.join(cleaned), {
            "control_chars_removed": control_removed,
            "zero_width_removed": zero_width_removed,
        }

    def _trim_trailing(self, text: str) -> tuple[str, int]:
        lines = text.split('\n')
        trimmed = [line.rstrip() for line in lines]
        changed = sum(1 for before, after in zip(lines, trimmed) if before != after)
        # Collapse runs of inner spaces, keeping leading indentation intact
        trimmed = [re.sub(r"(?<=\S) {2,}(?=\S)", ' ', line) for line in trimmed]
        return '\n'.join(trimmed), changed

    def _log(self, message: str) -> None:
        """Log sanitization actions for debugging."""
        self.sanitization_log.append(message)

    def get_log(self) -> list[str]:
        """Return the sanitization log."""
        return self.sanitization_log.copy()
