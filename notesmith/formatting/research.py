"""
Research Notes Formatter

Groups research notes into topic entries and pulls out the academic
apparatus: citations, quotes and bibliographic sources.

Pipeline:
1. Topic lines (markdown header, "Topic:", ALL CAPS, "1. Topic", short
   title-case line) close the current entry and open a new one.
2. Every other line is scanned for citations, quotes and sources, cleaned
   of list/quote markers and appended to the entry content.
3. Citations, quotes and sources get document-wide ids (cite-N, quote-N,
   source-N); entries keep only the ids.

Content with no topic line at all lands in a single "Introduction" entry.
"""

import re
from dataclasses import dataclass, field, replace

from notesmith.classification.base import LabeledLine, strip_list_marker
from notesmith.classification.research import ResearchLineClassifier, ResearchLineLabel, detect_topic
from notesmith.extraction.academic import extract_citations, extract_quotes, extract_sources
from notesmith.formatting.base import (
    BaseFormatEngine,
    BaseOrganizer,
    BaseRenderer,
    OrganizedDocument,
    OrganizerContext,
    clamp_score,
)
from notesmith.logging_config import debug_log
from notesmith.models import Citation, FormatType, Quote, ResearchNotesData, ResearchTopic, Source

DEFAULT_TOPIC = "Introduction"
SHORT_CONTENT_CHARS = 50


@dataclass
class _EntryBuffer:
    """Working state for the entry being accumulated."""
    topic: str
    parts: list[str] = field(default_factory=list)
    original_lines: list[str] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    quotes: list[Quote] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)

    @property
    def has_content(self) -> bool:
        return bool(self.parts)


class ResearchNotesOrganizer(BaseOrganizer):
    name = "Research Organizer"

    def organize(self, lines: list[LabeledLine], context: OrganizerContext) -> OrganizedDocument:
        finished: list[tuple[_EntryBuffer, str]] = []
        current = _EntryBuffer(topic=DEFAULT_TOPIC)

        for line in lines:
            if line.is_blank:
                continue
            if line.label is ResearchLineLabel.TOPIC:
                if current.has_content:
                    finished.append((current, self._finalize_content(current)))
                current = _EntryBuffer(topic=detect_topic(line.stripped) or DEFAULT_TOPIC)
                continue

            current.original_lines.append(line.stripped)
            current.citations.extend(replace(c, line=line.index) for c in extract_citations(line.stripped))
            current.quotes.extend(replace(q, line=line.index) for q in extract_quotes(line.stripped))
            current.sources.extend(extract_sources(line.stripped))

            cleaned = strip_list_marker(line.stripped)
            if cleaned:
                current.parts.append(cleaned)

        if current.has_content:
            finished.append((current, self._finalize_content(current)))

        data = ResearchNotesData()
        for entry, content in finished:
            topic = ResearchTopic(name=entry.topic, description=content)
            for citation in entry.citations:
                citation = replace(citation, id=f"cite-{len(data.citations) + 1}")
                data.citations.append(citation)
                topic.citation_ids.append(citation.id)
            for quote in entry.quotes:
                quote = replace(quote, id=f"quote-{len(data.quotes) + 1}")
                data.quotes.append(quote)
                topic.quote_ids.append(quote.id)
            for source in entry.sources:
                data.sources.append(replace(source, id=f"source-{len(data.sources) + 1}"))
            if len(content) < SHORT_CONTENT_CHARS:
                topic.notes = [text for text in entry.original_lines if text]
            data.topics.append(topic)

        debug_log(f"[RESEARCH] {len(data.topics)} entries, {len(data.citations)} citations, "
                  f"{len(data.quotes)} quotes, {len(data.sources)} sources")

        entities = len(data.citations) + len(data.quotes) + len(data.sources)
        return OrganizedDocument(
            data=data,
            confidence=self._confidence(data, context.scoring),
            item_count=len(data.topics),
            entries=len(data.topics),
            items_extracted=entities,
            auxiliary_sections=int(bool(data.citations)) + int(bool(data.sources)),
        )

    @staticmethod
    def _finalize_content(entry: _EntryBuffer) -> str:
        content = '\n\n'.join(entry.parts)
        return re.sub(r"\n{3,}", '\n\n', content).strip()

    @staticmethod
    def _confidence(data: ResearchNotesData, scoring: dict) -> int:
        if not data.topics:
            return 0
        score = scoring.get('base', 40)
        score += min(scoring.get('citation_cap', 30), scoring.get('per_citation', 5) * len(data.citations))
        score += min(scoring.get('quote_cap', 20), scoring.get('per_quote', 3) * len(data.quotes))
        if len(data.topics) > 1:
            score += min(scoring.get('topic_cap', 15), scoring.get('per_topic', 3) * len(data.topics))
        min_chars = scoring.get('academic_entry_min_chars', 100)
        if any(len(topic.description) > min_chars and (topic.citation_ids or topic.quote_ids)
               for topic in data.topics):
            score += scoring.get('academic_entry_bonus', 10)
        return clamp_score(score)


class ResearchNotesRenderer(BaseRenderer):
    name = "Research Renderer"

    def render(self, document: OrganizedDocument) -> str:
        data: ResearchNotesData = document.data
        out = ["# 📚 Research Notes\n"]

        for topic in data.topics:
            out.append(f"## {topic.name}\n")
            if topic.description:
                out.append(topic.description + "\n")

            quotes = [q for q in (data.quote(qid) for qid in topic.quote_ids) if q]
            if quotes:
                out.append("### Key Quotes\n")
                out.extend(self._quote_line(quote) for quote in quotes)
                out.append("")

            citations = [c for c in (data.citation(cid) for cid in topic.citation_ids) if c]
            if citations:
                out.append("### Citations\n")
                out.extend(f"- {citation.text}" for citation in citations)
                out.append("")

            if topic.notes:
                out.append("### Research Notes\n")
                out.extend(f"- {note}" for note in topic.notes)
                out.append("")

        if data.citations:
            out.append("\n## 📖 Citations\n")
            for number, citation in enumerate(data.citations, 1):
                author = citation.source.author or "Unknown Author"
                year = citation.source.year or "n.d."
                out.append(f"{number}. {citation.text} - {author} ({year})")
            out.append("")

        if data.sources:
            out.append("## 📚 References\n")
            for number, source in enumerate(data.sources, 1):
                out.append(f"{number}. {source.title} ({source.type.value})")
                if source.metadata:
                    details = ', '.join(f"{key}: {value}" for key, value in source.metadata.items())
                    out.append(f"   *{details}*")
            out.append("")

        out.append(f"\n---\n**Summary:** {len(data.topics)} research sections • "
                   f"{len(data.citations)} citations • {len(data.quotes)} quotes • "
                   f"{len(data.sources)} sources")
        return '\n'.join(out)

    @staticmethod
    def _quote_line(quote: Quote) -> str:
        line = f'> "{quote.text}"'
        if quote.author:
            line += f" — {quote.author}"
            if quote.source:
                line += f", {quote.source}"
        if quote.location:
            line += f" ({quote.location})"
        return line


class ResearchNotesEngine(BaseFormatEngine):
    format_type = FormatType.RESEARCH_NOTES
    classifier_class = ResearchLineClassifier
    organizer_class = ResearchNotesOrganizer
    renderer_class = ResearchNotesRenderer
