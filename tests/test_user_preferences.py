"""
Tests for UserPreferencesManager and the resource-based worker sizing.
"""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.models import FormatType
from notesmith.parallel import PoolConfig
from notesmith.system_resources import (
    BYTES_PER_GB,
    get_optimal_workers,
    get_resource_snapshot,
    get_resource_summary,
    get_system_resources,
)
from notesmith.user_preferences import DEFAULT_PREFERENCES, MAX_RECENT_FORMATS, UserPreferencesManager


@pytest.fixture
def prefs(tmp_path):
    return UserPreferencesManager(tmp_path / "config" / "user_preferences.json")


def fake_memory(available_gb=8, total_gb=16, percent=50.0):
    return MagicMock(available=available_gb * BYTES_PER_GB, total=total_gb * BYTES_PER_GB, percent=percent)


class TestUserPreferences:
    """Test loading, validation and persistence."""

    def test_defaults_without_file(self, prefs):
        """A missing file gives the defaults."""
        assert prefs.get_default_format() is FormatType.JOURNAL_NOTES
        assert prefs.get("resource_usage_pct") == 75
        assert prefs.get("user_defined_max_workers") is None
        assert prefs.get("missing", "fallback") == "fallback"

    def test_set_persists(self, prefs):
        """Values are written to disk and read back by a new manager."""
        prefs.set_default_format("study-notes")
        prefs.set("resource_usage_pct", 50)
        reloaded = UserPreferencesManager(prefs.preferences_file)
        assert reloaded.get_default_format() is FormatType.STUDY_NOTES
        assert reloaded.get("resource_usage_pct") == 50

    @pytest.mark.parametrize("key,value", [
        ("default_format", "poetry"),
        ("resource_usage_pct", 10),
        ("resource_usage_pct", "75"),
        ("user_defined_max_workers", 9),
        ("auto_detect_format", "yes"),
    ])
    def test_invalid_values_rejected(self, prefs, key, value):
        """Known keys are validated."""
        with pytest.raises(ValueError):
            prefs.set(key, value)

    def test_corrupted_file_gives_defaults(self, tmp_path):
        """Unreadable JSON falls back to the defaults."""
        path = tmp_path / "user_preferences.json"
        path.write_text("{not json", encoding='utf-8')
        assert UserPreferencesManager(path).get("resource_usage_pct") == 75

    def test_unknown_stored_format(self, tmp_path):
        """An unknown stored format reads as journal notes."""
        path = tmp_path / "user_preferences.json"
        path.write_text(json.dumps({"default_format": "poetry"}), encoding='utf-8')
        assert UserPreferencesManager(path).get_default_format() is FormatType.JOURNAL_NOTES

    def test_recent_formats(self, prefs):
        """Recent formats are most-recent first, unique and capped."""
        for format_type in list(FormatType) + [FormatType.TASK_LISTS]:
            prefs.record_format_use(format_type)
        recent = prefs.get_recent_formats()
        assert recent[0] is FormatType.TASK_LISTS
        assert len(recent) == MAX_RECENT_FORMATS
        assert len(set(recent)) == len(recent)


class TestWorkerSizing:
    """Test get_optimal_workers() and PoolConfig.from_preferences()."""

    @patch('notesmith.system_resources.os.cpu_count', return_value=8)
    @patch('notesmith.system_resources.psutil.virtual_memory')
    def test_cpu_share_limits_workers(self, virtual_memory, cpu_count, prefs):
        """Workers follow the CPU share when RAM is plentiful."""
        virtual_memory.return_value = fake_memory()
        prefs.set("resource_usage_pct", 50)
        assert get_optimal_workers(max_workers=8, preferences=prefs) == 4
        assert get_optimal_workers(max_workers=2, preferences=prefs) == 2

    @patch('notesmith.system_resources.os.cpu_count', return_value=8)
    @patch('notesmith.system_resources.psutil.virtual_memory')
    def test_ram_limits_workers(self, virtual_memory, cpu_count, prefs):
        """Low memory caps the worker count, never below min_workers."""
        virtual_memory.return_value = fake_memory(available_gb=0.25)
        assert get_optimal_workers(task_ram_gb=0.1, max_workers=8, preferences=prefs) == 2
        assert get_optimal_workers(task_ram_gb=1.0, max_workers=8, preferences=prefs) == 1

    @patch('notesmith.system_resources.os.cpu_count', return_value=4)
    @patch('notesmith.system_resources.psutil.virtual_memory')
    def test_summary(self, virtual_memory, cpu_count, prefs):
        """The summary names cores, RAM and the usage setting."""
        virtual_memory.return_value = fake_memory(available_gb=12)
        assert get_resource_summary(prefs) == "4 cores, 12.0 GB RAM available (75% usage setting)"

    @patch('notesmith.system_resources.psutil.Process')
    @patch('notesmith.system_resources.psutil.cpu_percent', return_value=12.5)
    @patch('notesmith.system_resources.psutil.virtual_memory')
    def test_snapshot(self, virtual_memory, cpu_percent, process, prefs):
        """Snapshots report host memory and process RSS."""
        virtual_memory.return_value = fake_memory(percent=42.0)
        process.return_value.memory_info.return_value = MagicMock(rss=256 * 1024 ** 2)
        snapshot = get_resource_snapshot()
        assert snapshot.cpu_percent == 12.5
        assert snapshot.memory_percent == 42.0
        assert snapshot.process_rss_mb == 256.0

    def test_pool_config_uses_override(self, prefs):
        """A user worker override wins over the resource calculation."""
        prefs.set("user_defined_max_workers", 3)
        config = PoolConfig.from_preferences(prefs, max_queue_size=10)
        assert config.max_workers == 3
        assert config.min_workers == 1
        assert config.max_queue_size == 10

    @patch('notesmith.system_resources.get_optimal_workers', return_value=2)
    def test_pool_config_from_resources(self, optimal, prefs):
        """Without an override the resource-based count is used."""
        assert PoolConfig.from_preferences(prefs).max_workers == 2
        optimal.assert_called_once()

    @patch('notesmith.system_resources.os.cpu_count', return_value=8)
    @patch('notesmith.system_resources.psutil.virtual_memory')
    def test_sizing_without_preferences_uses_default_share(self, virtual_memory, cpu_count):
        """No preferences object means the default usage share, not a stored file."""
        virtual_memory.return_value = fake_memory()
        assert get_system_resources().resource_usage_pct == DEFAULT_PREFERENCES["resource_usage_pct"]
        assert get_optimal_workers(max_workers=8) == 6

    def test_pool_config_requires_preferences(self):
        """Pool sizing from preferences needs a caller-owned manager."""
        with pytest.raises(TypeError):
            PoolConfig.from_preferences()
