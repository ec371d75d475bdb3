"""
Base Format Engine Classes

Defines the organizer/renderer contracts and the BaseFormatEngine that runs
one formatting pass:

    sanitize → split → classify → organize (extractors run inline) → render → stats

Design Principles:
- One engine per FormatType; each wires a classifier, an organizer and a
  renderer. Engines hold no per-call state and are safe to share between
  worker threads.
- Cooperative cancellation: the optional CancellationContext is checked at
  every progress checkpoint (0/20/40/60/80/100) and nowhere else.
- Pure output: everything except processed_at/duration is a function of the
  TextInput (relative dates resolve against its timestamp).

Example:
    class ShoppingListEngine(BaseFormatEngine):
        format_type = FormatType.SHOPPING_LISTS
        classifier_class = ShoppingLineClassifier
        organizer_class = ShoppingListOrganizer
        renderer_class = ShoppingListRenderer

    output = ShoppingListEngine().format(TextInput.from_text("- milk"))
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from notesmith.classification.base import LabeledLine, LineClassifier
from notesmith.config import (
    LARGE_INPUT_WARNING_CHARS,
    MAX_INPUT_CHARS,
    PROGRESS_CHECKPOINTS,
    get_scoring_config,
)
from notesmith.extraction.common import extract_common
from notesmith.logging_config import Timer, debug_log, warning
from notesmith.models import (
    CommonEntities,
    ExtractedData,
    FormatSpecificData,
    FormattedOutput,
    FormatType,
    ProcessingMetadata,
    ProcessingStats,
    TextInput,
)
from notesmith.sanitization import TextSanitizer

ProgressCallback = Callable[[int, str], None]


def clamp_score(score: float) -> int:
    """Clamp a confidence score to [0, 100] and round to an int."""
    return int(round(max(0.0, min(100.0, score))))


@dataclass
class OrganizerContext:
    """
    Per-call inputs an organizer needs besides the labeled lines.

    Attributes:
        reference: Anchor for relative dates (the input timestamp).
        common: Common entities already extracted from the whole text.
        scoring: Confidence constants for this format.
    """
    reference: datetime
    common: CommonEntities = field(default_factory=CommonEntities)
    scoring: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrganizedDocument:
    """
    What an organizer hands to its renderer.

    Attributes:
        data: The tagged-union payload for ExtractedData.format_specific.
        confidence: Integer score in [0, 100].
        item_count: Headline item count for ProcessingMetadata.
        entries: Number of entries/sections built (patterns_matched).
        items_extracted: Format-specific entities extracted, before dedup.
        duplicates_removed: Items merged away during deduplication.
        auxiliary_sections: Extra aggregate sections the renderer emits.
        reference: Anchor date, for renderers that print relative dates.
        warnings: Non-fatal observations surfaced on the output.
    """
    data: FormatSpecificData
    confidence: int = 0
    item_count: int = 0
    entries: int = 0
    items_extracted: int = 0
    duplicates_removed: int = 0
    auxiliary_sections: int = 0
    reference: datetime | None = None
    warnings: list[str] = field(default_factory=list)


class BaseOrganizer(ABC):
    """Builds the document model for one format from labeled lines."""

    name: str = "Base Organizer"

    @abstractmethod
    def organize(self, lines: list[LabeledLine], context: OrganizerContext) -> OrganizedDocument:
        """
        Assemble, deduplicate, sort and score.

        Args:
            lines: Every input line with its labels, blanks included.
            context: Reference date, common entities and scoring constants.

        Returns:
            OrganizedDocument. Empty input must give confidence 0.
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class BaseRenderer(ABC):
    """Turns an OrganizedDocument into text. Must be pure."""

    name: str = "Base Renderer"

    @abstractmethod
    def render(self, document: OrganizedDocument) -> str:
        pass


class BaseFormatEngine(ABC):
    """
    Runs the full pipeline for one FormatType.

    Attributes:
        format_type: FormatType this engine produces.
        classifier_class / organizer_class / renderer_class: Default parts,
            replaceable per instance through the constructor.
    """

    format_type: FormatType
    classifier_class: type[LineClassifier]
    organizer_class: type[BaseOrganizer]
    renderer_class: type[BaseRenderer]

    def __init__(self, sanitizer: TextSanitizer | None = None,
                 classifier: LineClassifier | None = None,
                 organizer: BaseOrganizer | None = None,
                 renderer: BaseRenderer | None = None):
        self.sanitizer = sanitizer or TextSanitizer()
        self.classifier = classifier or self.classifier_class()
        self.organizer = organizer or self.organizer_class()
        self.renderer = renderer or self.renderer_class()

    def format(self, text_input: TextInput, context=None,
               on_progress: ProgressCallback | None = None) -> FormattedOutput:
        """
        Format one input.

        Args:
            text_input: Raw text plus metadata.
            context: Optional CancellationContext; checked at each checkpoint.
            on_progress: Optional callback(percent, step) per checkpoint.

        Returns:
            FormattedOutput. Empty or unstructured input yields a minimal
            valid output with confidence 0, never an exception.

        Raises:
            TaskCancelledError / TaskTimeoutError: when the context is
                cancelled before a checkpoint.
        """
        checkpoints = iter(PROGRESS_CHECKPOINTS)
        tag = self.format_type.value

        def checkpoint():
            percent, step = next(checkpoints)
            if context is not None:
                context.throw_if_cancelled()
            if on_progress is not None:
                on_progress(percent, step)

        with Timer(f"[ENGINE] {tag}", auto_log=False) as timer:
            checkpoint()  # 0: Starting
            content, warnings = self._prepare_content(text_input.content)

            checkpoint()  # 20: Splitting lines
            text, _ = self.sanitizer.sanitize(content)
            lines = text.split('\n') if text.strip() else []
            reference = self._reference_date(text_input)

            checkpoint()  # 40: Classifying lines
            labeled = self.classifier.classify(lines)

            checkpoint()  # 60: Organizing document
            common = extract_common(text, reference)
            organizer_context = OrganizerContext(
                reference=reference,
                common=common,
                scoring=self._scoring(),
            )
            document = self.organizer.organize(labeled, organizer_context)
            document.reference = reference

            checkpoint()  # 80: Rendering output
            rendered = self.renderer.render(document)

            lines_processed = sum(1 for line in lines if line.strip())
            stats = ProcessingStats(
                lines_processed=lines_processed,
                patterns_matched=document.entries,
                items_extracted=document.items_extracted + common.total(),
                duplicates_removed=document.duplicates_removed,
                changes_applied=document.entries + document.auxiliary_sections,
            )
            confidence = document.confidence if lines_processed else 0
            item_count = document.item_count if lines_processed else 0

            checkpoint()  # 100: Complete

        debug_log(f"[ENGINE] {tag}: {lines_processed} lines, {document.entries} entries, "
                  f"confidence {confidence} in {timer.duration_ms:.1f}ms")

        return FormattedOutput(
            format=self.format_type,
            content=rendered,
            metadata=ProcessingMetadata(
                processed_at=datetime.now(timezone.utc),
                duration=timer.duration_ms,
                confidence=confidence,
                item_count=item_count,
                stats=stats,
            ),
            data=ExtractedData(format_specific=document.data, common=common),
            warnings=tuple(warnings + document.warnings),
        )

    def _prepare_content(self, content: str) -> tuple[str, list[str]]:
        warnings = []
        if content is None:
            content = ''
        if len(content) > MAX_INPUT_CHARS:
            message = f"Input truncated from {len(content)} to {MAX_INPUT_CHARS} characters"
            warning(f"[ENGINE] {self.format_type.value}: {message}")
            warnings.append(message)
            content = content[:MAX_INPUT_CHARS]
        elif len(content) > LARGE_INPUT_WARNING_CHARS:
            debug_log(f"[ENGINE] {self.format_type.value}: large input ({len(content)} chars)")
        return content, warnings

    @staticmethod
    def _reference_date(text_input: TextInput) -> datetime:
        timestamp = text_input.metadata.timestamp
        return timestamp.replace(tzinfo=None) if timestamp.tzinfo else timestamp

    def _scoring(self) -> dict[str, Any]:
        return get_scoring_config(self.format_type.value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(format={self.format_type.value!r})"
