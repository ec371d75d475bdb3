"""
Tests for the history and template collaborator shapes.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.collaborators import (
    FULL_DATA_THRESHOLD_CHARS,
    FormatHistoryEntry,
    FormatTemplate,
    HistorySearchOptions,
    HistoryService,
    SortDirection,
    TemplateCategory,
    TemplateMetadata,
    TemplateSearchOptions,
    history_entry_from_output,
    input_hash,
)
from notesmith.formatting import format_text
from notesmith.models import FormatType, TextInput

NOW = datetime(2024, 3, 6, 9, 0, tzinfo=timezone.utc)


class InMemoryHistory:
    """List-backed HistoryService used to check the protocol and search shapes."""

    def __init__(self):
        self.entries = {}

    def add_entry(self, entry):
        self.entries[entry.id] = entry
        return entry.id

    def get_entries(self, options):
        matched = [entry for entry in self.entries.values() if options.matches(entry)]
        matched.sort(key=options.sort_key, reverse=options.sort_direction.value == "desc")
        start = (options.page - 1) * options.limit
        return matched[start:start + options.limit], len(matched)

    def get_entry(self, entry_id):
        return self.entries.get(entry_id)

    def update_entry(self, entry_id, patch):
        for name, value in patch.items():
            setattr(self.entries[entry_id], name, value)

    def delete_entry(self, entry_id):
        self.entries.pop(entry_id, None)

    def get_stats(self):
        raise NotImplementedError


def make_entry(content, format_type=FormatType.TASK_LISTS, **overrides):
    text_input = TextInput.from_text(content)
    output = format_text(text_input, format_type)
    overrides.setdefault('timestamp', NOW)
    return history_entry_from_output(output, text_input, **overrides)


class TestHistoryEntries:
    """Test building history entries from outputs."""

    def test_entry_fields(self):
        """Previews, hash, size and processing info come from the run."""
        entry = make_entry("- [ ] Call the bank", worker_id="worker-1")
        assert entry.format is FormatType.TASK_LISTS
        assert entry.input_preview == "- [ ] Call the bank"
        assert entry.input_hash == input_hash("- [ ] Call the bank")
        assert entry.input_size == len("- [ ] Call the bank")
        assert entry.processing.worker_used == "worker-1"
        assert 0 < entry.processing.confidence <= 100
        assert entry.processing.item_count == 1
        assert entry.storage_ref is None
        assert not entry.needs_full_storage

    def test_long_input_previewed_and_stored_out_of_line(self):
        """Large inputs get a truncated preview and a storage reference."""
        content = "I walked along the river today. " * (FULL_DATA_THRESHOLD_CHARS // 20)
        entry = make_entry(content, FormatType.JOURNAL_NOTES, id="abc")
        assert entry.input_preview.endswith("...")
        assert len(entry.input_preview) <= 203
        assert entry.storage_ref == "full-data-abc"
        assert entry.needs_full_storage

    def test_overrides_applied(self):
        """Known fields can be overridden; unknown ones raise."""
        entry = make_entry("- milk", FormatType.SHOPPING_LISTS, tags=["groceries"], favorited=True)
        assert entry.tags == ["groceries"]
        assert entry.favorited
        with pytest.raises(TypeError):
            make_entry("- milk", FormatType.SHOPPING_LISTS, colour="blue")


class TestHistorySearch:
    """Test HistorySearchOptions filters and sorting."""

    def setup_method(self):
        self.history = InMemoryHistory()
        self.old = make_entry("- [ ] Pay rent", id="old", timestamp=NOW - timedelta(days=3))
        self.shop = make_entry("- 2 lbs apples", FormatType.SHOPPING_LISTS, id="shop", tags=["groceries"])
        self.fav = make_entry("- [ ] Call the bank", id="fav", favorited=True,
                              timestamp=NOW + timedelta(hours=1))
        for entry in (self.old, self.shop, self.fav):
            self.history.add_entry(entry)

    def ids(self, **options):
        entries, total = self.history.get_entries(HistorySearchOptions(**options))
        assert total == len(entries)
        return [entry.id for entry in entries]

    def test_protocol(self):
        """A plain class with the right methods satisfies HistoryService."""
        assert isinstance(self.history, HistoryService)

    def test_default_sort_newest_first(self):
        """Entries come back newest first."""
        assert self.ids() == ["fav", "shop", "old"]

    def test_filters(self):
        """Query, format, tag, favorite and date filters narrow the results."""
        assert self.ids(query="APPLES") == ["shop"]
        assert self.ids(formats=(FormatType.TASK_LISTS,)) == ["fav", "old"]
        assert self.ids(tags=("groceries",)) == ["shop"]
        assert self.ids(favorites_only=True) == ["fav"]
        assert self.ids(date_start=NOW - timedelta(days=1), date_end=NOW) == ["shop"]

    def test_sort_by_format_ascending(self):
        """Any supported field can drive the sort."""
        assert self.ids(sort_field="format", sort_direction=SortDirection.ASC)[0] == "shop"

    def test_invalid_options(self):
        """Unknown sort fields and bad paging are rejected."""
        with pytest.raises(ValueError):
            HistorySearchOptions(sort_field="colour")
        with pytest.raises(ValueError):
            HistorySearchOptions(page=0)

    def test_entry_is_dataclass(self):
        """Entries are mutable records services can patch."""
        self.history.update_entry("fav", {'notes': "called"})
        assert isinstance(self.history.get_entry("fav"), FormatHistoryEntry)
        assert self.ids(query="called") == ["fav"]


class TestTemplateSearch:
    """Test TemplateSearchOptions.matches()."""

    def setup_method(self):
        self.minutes = FormatTemplate(
            id="t1", name="Weekly Minutes", format=FormatType.MEETING_NOTES,
            category=TemplateCategory.BUSINESS, tags=["team"],
            metadata=TemplateMetadata(is_official=True, rating=4.5),
        )
        self.flashcards = FormatTemplate(
            id="t2", name="Flashcards", format=FormatType.STUDY_NOTES,
            category=TemplateCategory.EDUCATIONAL, description="Terms and definitions",
        )

    def test_query_matches_name_and_description(self):
        """Queries search names, descriptions and tags."""
        options = TemplateSearchOptions(query="definitions")
        assert not options.matches(self.minutes)
        assert options.matches(self.flashcards)

    def test_category_and_format_filters(self):
        """Category and format filters exclude other templates."""
        options = TemplateSearchOptions(categories=(TemplateCategory.BUSINESS,),
                                        formats=(FormatType.MEETING_NOTES,))
        assert options.matches(self.minutes)
        assert not options.matches(self.flashcards)

    def test_official_and_rating_filters(self):
        """Unrated templates count as zero."""
        options = TemplateSearchOptions(official_only=True, min_rating=4.0)
        assert options.matches(self.minutes)
        assert not options.matches(self.flashcards)
        assert not TemplateSearchOptions(min_rating=1.0).matches(self.flashcards)
