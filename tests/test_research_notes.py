"""
Tests for the research notes engine: topic grouping, document-wide
citation/quote ids and rendering.
"""

import sys
from datetime import datetime
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.formatting import ResearchNotesEngine
from notesmith.models import CitationStyle, FormatType, ResearchNotesData, TextInput

REFERENCE = datetime(2024, 3, 6, 9, 0)

SAMPLE = (
    "## Climate Impacts\n"
    "Smith et al. (2023) found that \"rising temperatures affect yields\" (Smith, 2023, p. 45).\n"
    "\n"
    "## Methods\n"
    "- Survey of 40 farms"
)


def run(text):
    output = ResearchNotesEngine().format(TextInput.from_text(text, timestamp=REFERENCE))
    return output, output.data.format_specific


class TestResearchNotesEngine:
    """Test the research notes pipeline end to end."""

    def test_topics_from_headers(self):
        """Markdown headers open topic entries in input order."""
        _, data = run(SAMPLE)
        assert [topic.name for topic in data.topics] == ["Climate Impacts", "Methods"]

    def test_document_wide_ids(self):
        """Citations and quotes get cite-N / quote-N ids in the flat lists."""
        _, data = run(SAMPLE)
        assert [c.id for c in data.citations] == ["cite-1", "cite-2"]
        assert all(c.format is CitationStyle.APA for c in data.citations)
        assert [q.id for q in data.quotes] == ["quote-1", "quote-2"]

    def test_topics_reference_by_id(self):
        """Topics hold ids that resolve against the flat lists."""
        _, data = run(SAMPLE)
        climate = data.topics[0]
        assert climate.citation_ids == ["cite-1", "cite-2"]
        assert climate.quote_ids == ["quote-1", "quote-2"]
        assert all(data.citation(cid) is not None for cid in climate.citation_ids)
        assert data.quote("quote-1").author == "Smith"

    def test_short_entry_keeps_original_lines(self):
        """Short entries keep their raw lines as notes."""
        _, data = run(SAMPLE)
        methods = data.topics[1]
        assert methods.description == "Survey of 40 farms"
        assert "- Survey of 40 farms" in methods.notes

    def test_rendered_sections(self):
        """Topic headers, quotes and the citation index are rendered."""
        output, _ = run(SAMPLE)
        assert output.content.startswith("# 📚 Research Notes")
        assert "## Climate Impacts" in output.content
        assert '> "rising temperatures affect yields" — Smith (p. 45)' in output.content
        assert "## 📖 Citations" in output.content

    def test_plain_text_gets_introduction(self):
        """Text with no topic line becomes a single Introduction entry."""
        _, data = run("we looked at the soil samples and found nothing unusual.")
        assert [topic.name for topic in data.topics] == ["Introduction"]

    def test_empty_input(self):
        """Empty text gives no topics and zero confidence."""
        output, data = run("")
        assert isinstance(data, ResearchNotesData)
        assert data.topics == []
        assert output.metadata.confidence == 0
        assert output.format is FormatType.RESEARCH_NOTES

    def test_confidence_in_range(self):
        """Confidence is an integer between 0 and 100."""
        output, _ = run(SAMPLE)
        assert isinstance(output.metadata.confidence, int)
        assert 0 < output.metadata.confidence <= 100
