"""
User Preferences Manager for NoteSmith

Persists the preferences that shape formatting and pool sizing:
- default_format: format used when auto-detection is off
- auto_detect_format: let detect_format() pick the format
- resource_usage_pct: share of CPU cores the pool may use (25-100)
- user_defined_max_workers: fixed worker count (1-8), or None for automatic
- recent_formats: most recently used formats, newest first

Stored as JSON. Unknown keys survive a load/save round trip untouched.
"""

import json
from pathlib import Path
from typing import Any, Callable

from notesmith.config import USER_PREFERENCES_FILE
from notesmith.logging_config import debug_log
from notesmith.models import FormatType

DEFAULT_PREFERENCES = {
    "default_format": FormatType.JOURNAL_NOTES.value,
    "auto_detect_format": True,
    "resource_usage_pct": 75,
    "user_defined_max_workers": None,
    "recent_formats": [],
}
MAX_RECENT_FORMATS = 5

_FORMAT_VALUES = tuple(f.value for f in FormatType)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# key -> (check, message shown when the check fails)
_VALIDATORS: dict[str, tuple[Callable[[Any], bool], str]] = {
    "default_format": (lambda v: v in _FORMAT_VALUES, f"must be one of {list(_FORMAT_VALUES)}"),
    "auto_detect_format": (lambda v: isinstance(v, bool), "must be a bool"),
    "resource_usage_pct": (lambda v: _is_int(v) and 25 <= v <= 100, "must be 25-100"),
    "user_defined_max_workers": (lambda v: v is None or (_is_int(v) and 1 <= v <= 8), "must be 1-8 or None"),
}


class UserPreferencesManager:
    """
    Reads and writes preferences at ``preferences_file``. Callers own the
    instance and pass it to PoolConfig.from_preferences().

    A missing or unreadable file gives the defaults; a failed save is
    logged and the in-memory value is kept.
    """

    def __init__(self, preferences_file: Path = USER_PREFERENCES_FILE):
        self.preferences_file = Path(preferences_file)
        self._preferences = self._load()

    def _load(self) -> dict[str, Any]:
        prefs = {**DEFAULT_PREFERENCES, "recent_formats": []}
        if not self.preferences_file.exists():
            return prefs
        try:
            stored = json.loads(self.preferences_file.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            debug_log(f"[PREFS] Could not read {self.preferences_file.name}, using defaults: {e}")
            return prefs
        if isinstance(stored, dict):
            prefs.update(stored)
        return prefs

    def _save(self) -> None:
        try:
            self.preferences_file.parent.mkdir(parents=True, exist_ok=True)
            self.preferences_file.write_text(json.dumps(self._preferences, indent=2), encoding='utf-8')
        except OSError as e:
            debug_log(f"[PREFS] Could not save {self.preferences_file.name}: {e}")

    # =========================================================================
    # Formats
    # =========================================================================

    def get_default_format(self) -> FormatType:
        """The stored default format; journal notes if the stored value is unknown."""
        try:
            return FormatType(self._preferences.get("default_format"))
        except ValueError:
            return FormatType.JOURNAL_NOTES

    def set_default_format(self, format_type) -> None:
        self.set("default_format", FormatType(format_type).value)

    def record_format_use(self, format_type) -> None:
        """Move a format to the front of recent_formats."""
        value = FormatType(format_type).value
        recent = [f for f in self._preferences.get("recent_formats", []) if f != value]
        self._preferences["recent_formats"] = [value, *recent][:MAX_RECENT_FORMATS]
        self._save()

    def get_recent_formats(self) -> list[FormatType]:
        return [FormatType(v) for v in self._preferences.get("recent_formats", []) if v in _FORMAT_VALUES]

    # =========================================================================
    # Generic access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        return self._preferences.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Store a preference and save.

        Raises:
            ValueError: ``value`` is invalid for a known key.
        """
        validator = _VALIDATORS.get(key)
        if validator is not None:
            check, message = validator
            if not check(value):
                raise ValueError(f"{key} {message}, got {value!r}")
        self._preferences[key] = value
        self._save()

