"""
Tests for the scoring configuration: the packaged scoring.yaml and the
fallback to built-in constants.
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import notesmith
from notesmith import config


@pytest.fixture(autouse=True)
def reload_scoring():
    yield
    config.load_scoring_configs()


class TestScoringConfig:
    """Test loading confidence constants."""

    def test_scoring_file_ships_inside_package(self):
        """scoring.yaml lives in the notesmith package directory."""
        assert config.SCORING_CONFIG_FILE.parent == Path(notesmith.__file__).parent
        assert config.SCORING_CONFIG_FILE.is_file()

    def test_packaged_file_covers_every_format(self):
        """The packaged file has a section per built-in format."""
        data = yaml.safe_load(config.SCORING_CONFIG_FILE.read_text(encoding='utf-8'))
        assert set(data['scoring']) == set(config.DEFAULT_SCORING)

    def test_overrides_merge_over_defaults(self, tmp_path):
        """Values in the file replace defaults; omitted keys keep them."""
        override = tmp_path / "scoring.yaml"
        override.write_text("scoring:\n  task-lists:\n    base: 42\n", encoding='utf-8')
        with patch.object(config, 'SCORING_CONFIG_FILE', override):
            config.load_scoring_configs()
        scoring = config.get_scoring_config('task-lists')
        assert scoring['base'] == 42
        assert scoring['volume_bonus'] == config.DEFAULT_SCORING['task-lists']['volume_bonus']

    def test_missing_file_uses_defaults(self, tmp_path):
        """Without a file the built-in constants are used."""
        with patch.object(config, 'SCORING_CONFIG_FILE', tmp_path / "missing.yaml"):
            config.load_scoring_configs()
        assert config.get_scoring_config('research-notes') == config.DEFAULT_SCORING['research-notes']

    def test_unknown_format_gets_empty_dict(self):
        """Formats with no constants get an empty dict."""
        assert config.get_scoring_config('poetry') == {}
