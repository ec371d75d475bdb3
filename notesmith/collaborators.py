"""
Persistence collaborator contracts.

NoteSmith does not store anything. History and template storage belong to
the application embedding it; this module only fixes the shapes those
services exchange with the core and the interfaces they implement.

Components:
    HistoryService / TemplateService - typing.Protocol interfaces
    FormatHistoryEntry, HistorySearchOptions, HistoryStats - history shapes
    FormatTemplate, TemplateSearchOptions - template shapes
    history_entry_from_output() - builds an entry from a FormattedOutput

Usage:
    entry = history_entry_from_output(output, text_input, worker_id="worker-1")
    history_service.add_entry(entry)
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from notesmith.config import PREVIEW_CHARS
from notesmith.models import FormattedOutput, FormatType, TextInput

# Inputs or outputs longer than this are stored out of line by history services
FULL_DATA_THRESHOLD_CHARS = 10_000


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TemplateCategory(str, Enum):
    BUSINESS = "business"
    ACADEMIC = "academic"
    PERSONAL = "personal"
    CREATIVE = "creative"
    TECHNICAL = "technical"
    EDUCATIONAL = "educational"
    PRODUCTIVITY = "productivity"
    CUSTOM = "custom"


# =============================================================================
# History
# =============================================================================

@dataclass(frozen=True)
class HistoryProcessingInfo:
    duration: float
    confidence: int
    item_count: int
    worker_used: str | None = None


@dataclass
class FormatHistoryEntry:
    """
    One past formatting run, as persisted by a HistoryService.

    Attributes:
        input_hash: sha256 of the full input; services deduplicate on it.
        input_preview / output_preview: First PREVIEW_CHARS characters.
        storage_ref: Key of the full input/output when stored out of line.
    """
    id: str
    timestamp: datetime
    format: FormatType
    input_preview: str
    input_hash: str
    input_size: int
    output_preview: str
    processing: HistoryProcessingInfo
    tags: list[str] = field(default_factory=list)
    notes: str | None = None
    favorited: bool = False
    template_id: str | None = None
    storage_ref: str | None = None

    @property
    def needs_full_storage(self) -> bool:
        return self.storage_ref is not None


@dataclass(frozen=True)
class HistorySearchOptions:
    """
    Filters, sort and paging for HistoryService.get_entries().

    ``matches()`` applies the filters to one entry, so services backed by
    plain lists can share the semantics.
    """
    query: str | None = None
    formats: tuple[FormatType, ...] = ()
    date_start: datetime | None = None
    date_end: datetime | None = None
    tags: tuple[str, ...] = ()
    favorites_only: bool = False
    min_confidence: int | None = None
    sort_field: str = "timestamp"
    sort_direction: SortDirection = SortDirection.DESC
    page: int = 1
    limit: int = 20

    def __post_init__(self):
        if self.sort_field not in ("timestamp", "format", "confidence", "size"):
            raise ValueError(f"Unknown sort field: {self.sort_field}")
        if self.page < 1 or self.limit < 1:
            raise ValueError("page and limit must be >= 1")

    def matches(self, entry: FormatHistoryEntry) -> bool:
        if self.query:
            needle = self.query.lower()
            haystacks = [entry.input_preview, entry.output_preview, entry.notes or '', *entry.tags]
            if not any(needle in text.lower() for text in haystacks):
                return False
        if self.formats and entry.format not in self.formats:
            return False
        if self.date_start is not None and entry.timestamp < self.date_start:
            return False
        if self.date_end is not None and entry.timestamp > self.date_end:
            return False
        if self.tags and not set(self.tags) & set(entry.tags):
            return False
        if self.favorites_only and not entry.favorited:
            return False
        if self.min_confidence is not None and entry.processing.confidence < self.min_confidence:
            return False
        return True

    def sort_key(self, entry: FormatHistoryEntry):
        return {
            "timestamp": entry.timestamp,
            "format": entry.format.value,
            "confidence": entry.processing.confidence,
            "size": entry.input_size,
        }[self.sort_field]


@dataclass(frozen=True)
class HistoryStats:
    total_transformations: int = 0
    by_format: dict[FormatType, int] = field(default_factory=dict)
    most_used_format: FormatType | None = None
    average_confidence: float = 0.0
    total_processing_time: float = 0.0
    storage_used: int = 0
    recent_activity: int = 0
    top_tags: list[tuple[str, int]] = field(default_factory=list)


def _preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def input_hash(content: str) -> str:
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def history_entry_from_output(output: FormattedOutput, text_input: TextInput,
                              worker_id: str | None = None, **overrides) -> FormatHistoryEntry:
    """
    Build the history entry a HistoryService would persist for one run.

    Args:
        output: The formatted result.
        text_input: The input it was produced from.
        worker_id: Worker that produced it, when run through the pool.
        **overrides: Field values to set instead of the derived ones
            (tags, notes, favorited, template_id, ...).
    """
    entry_id = overrides.pop('id', None) or uuid.uuid4().hex
    entry = FormatHistoryEntry(
        id=entry_id,
        timestamp=overrides.pop('timestamp', None) or datetime.now(timezone.utc),
        format=output.format,
        input_preview=_preview(text_input.content),
        input_hash=input_hash(text_input.content),
        input_size=len(text_input.content),
        output_preview=_preview(output.content),
        processing=HistoryProcessingInfo(
            duration=output.metadata.duration,
            confidence=output.metadata.confidence,
            item_count=output.metadata.item_count,
            worker_used=worker_id,
        ),
    )
    if len(text_input.content) > FULL_DATA_THRESHOLD_CHARS or len(output.content) > FULL_DATA_THRESHOLD_CHARS:
        entry.storage_ref = f"full-data-{entry_id}"
    for name, value in overrides.items():
        if not hasattr(entry, name):
            raise TypeError(f"FormatHistoryEntry has no field {name!r}")
        setattr(entry, name, value)
    return entry


@runtime_checkable
class HistoryService(Protocol):
    def add_entry(self, entry: FormatHistoryEntry) -> str: ...

    def get_entries(self, options: HistorySearchOptions) -> tuple[list[FormatHistoryEntry], int]: ...

    def get_entry(self, entry_id: str) -> FormatHistoryEntry | None: ...

    def update_entry(self, entry_id: str, patch: dict[str, Any]) -> None: ...

    def delete_entry(self, entry_id: str) -> None: ...

    def get_stats(self) -> HistoryStats: ...


# =============================================================================
# Templates
# =============================================================================

@dataclass
class TemplateRule:
    name: str
    pattern: str
    replacement: str
    enabled: bool = True


@dataclass
class TemplateConfig:
    enable_pattern_recognition: bool = True
    enable_data_extraction: bool = True
    enable_content_analysis: bool = True
    include_metadata: bool = True
    include_confidence: bool = True
    theme: str = "detailed"
    custom_headers: list[str] = field(default_factory=list)
    custom_footers: list[str] = field(default_factory=list)
    format_specific: dict[str, Any] = field(default_factory=dict)
    custom_rules: list[TemplateRule] = field(default_factory=list)


@dataclass
class TemplateMetadata:
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    created_by: str | None = None
    version: int = 1
    usage_count: int = 0
    rating: float | None = None
    is_public: bool = False
    is_official: bool = False


@dataclass
class FormatTemplate:
    id: str
    name: str
    format: FormatType
    category: TemplateCategory = TemplateCategory.CUSTOM
    description: str | None = None
    config: TemplateConfig = field(default_factory=TemplateConfig)
    sample_input: str | None = None
    output_preview: str | None = None
    tags: list[str] = field(default_factory=list)
    metadata: TemplateMetadata = field(default_factory=TemplateMetadata)


@dataclass(frozen=True)
class TemplateSearchOptions:
    query: str | None = None
    categories: tuple[TemplateCategory, ...] = ()
    formats: tuple[FormatType, ...] = ()
    tags: tuple[str, ...] = ()
    public_only: bool = False
    official_only: bool = False
    min_rating: float | None = None
    sort_field: str = "name"
    sort_direction: SortDirection = SortDirection.ASC
    page: int = 1
    limit: int = 20

    def matches(self, template: FormatTemplate) -> bool:
        if self.query:
            needle = self.query.lower()
            haystacks = [template.name, template.description or '', *template.tags]
            if not any(needle in text.lower() for text in haystacks):
                return False
        if self.categories and template.category not in self.categories:
            return False
        if self.formats and template.format not in self.formats:
            return False
        if self.tags and not set(self.tags) & set(template.tags):
            return False
        if self.public_only and not template.metadata.is_public:
            return False
        if self.official_only and not template.metadata.is_official:
            return False
        if self.min_rating is not None and (template.metadata.rating or 0) < self.min_rating:
            return False
        return True


@runtime_checkable
class TemplateService(Protocol):
    def create_template(self, template: FormatTemplate) -> str: ...

    def get_templates(self, options: TemplateSearchOptions) -> tuple[list[FormatTemplate], int]: ...

    def get_template(self, template_id: str) -> FormatTemplate | None: ...

    def update_template(self, template_id: str, patch: dict[str, Any]) -> None: ...

    def delete_template(self, template_id: str) -> None: ...
