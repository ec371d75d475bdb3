"""
Input sanitization for NoteSmith.

Cleans pasted or uploaded text (encoding repair, Unicode normalization,
control-character removal) before the format engines split it into lines.
"""

from .text_sanitizer import TextSanitizer

__all__ = ['TextSanitizer']
