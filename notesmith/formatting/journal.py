"""
Journal Notes Formatter

Splits free-form journal text into dated entries and enriches each entry
with insights, quotes, a mood reading and tags.

Entry boundaries are timestamp lines ("March 3, 2024", "2024-03-03",
"Yesterday"). Text without any timestamp becomes a single "Journal Entry".
Paragraphs are kept (blank-line separated) and their sentences re-punctuated.

Aggregates across entries:
- Key insights: the first five distinct insight sentences
- Topics: the eight most frequent tags
- Overall mood: positive/negative when more than 60% of moody entries agree
"""

import re
from collections import Counter
from datetime import date

from notesmith.classification.base import LabeledLine
from notesmith.classification.journal import (
    JournalLineClassifier,
    JournalLineLabel,
    clean_title,
    find_timestamp,
)
from notesmith.extraction.academic import normalize_quotes
from notesmith.extraction.dates import parse_date_text
from notesmith.formatting.base import (
    BaseFormatEngine,
    BaseOrganizer,
    BaseRenderer,
    OrganizedDocument,
    OrganizerContext,
    clamp_score,
)
from notesmith.logging_config import debug_log
from notesmith.models import FormatType, JournalEntry, JournalNotesData, Mood

DEFAULT_ENTRY_TITLE = "Journal Entry"
MAX_TAGS = 10
MAX_TOPICS = 8
MAX_GLOBAL_INSIGHTS = 5

MOOD_INDICATORS = {
    Mood.POSITIVE: (
        'happy', 'excited', 'joyful', 'grateful', 'blessed', 'amazing', 'wonderful',
        'fantastic', 'great', 'excellent', 'love', 'awesome', 'brilliant', 'thrilled',
        'delighted', 'pleased', 'satisfied', 'content', 'proud', 'accomplished',
        'successful', 'hopeful', 'optimistic', 'cheerful', 'elated',
    ),
    Mood.NEGATIVE: (
        'sad', 'angry', 'frustrated', 'disappointed', 'worried', 'anxious', 'stressed',
        'depressed', 'upset', 'annoyed', 'terrible', 'awful', 'horrible', 'hate',
        'disgusted', 'furious', 'devastated', 'heartbroken', 'overwhelmed', 'exhausted',
        'discouraged', 'hopeless', 'lonely', 'regret', 'guilt',
    ),
}

MOOD_EMOJI = {Mood.POSITIVE: "😊", Mood.NEGATIVE: "😔", Mood.MIXED: "😐"}

INSIGHT_PATTERNS = (
    re.compile(r"\b(?:i (?:realized|learned|discovered|understood|figured out)|it (?:dawned on me|occurred to me)|"
               r"suddenly|insight|epiphany)\b", re.IGNORECASE),
    re.compile(r"\b(?:the lesson is|what i learned|key takeaway|important insight|it's clear that)\b",
               re.IGNORECASE),
    re.compile(r"\b(?:i need to|should|must|have to|going forward|next time)\b", re.IGNORECASE),
    re.compile(r"\b(?:reflection|looking back|in hindsight|thinking about it)\b", re.IGNORECASE),
)

QUOTE_PATTERNS = (
    re.compile(r'"([^"]+)"'),
    re.compile(r"«([^»]+)»"),
    re.compile(r'(?:he|she|they|someone) said[: ]+"([^"]+)"', re.IGNORECASE),
)

HASHTAG_RE = re.compile(r"(?<![\w&])#(\w+)")
CAPITALIZED_WORD_RE = re.compile(r"\b[A-Z][a-z]+\b")
TAG_STOP_WORDS = {'The', 'This', 'That', 'Then', 'When', 'Where'}
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def organize_sentences(text: str) -> str:
    """Re-punctuate a paragraph: every sentence but an unterminated last one ends with a period."""
    sentences = [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]
    if not sentences:
        return text.strip()
    terminated = bool(re.search(r"[.!?]$", text.strip()))
    result = []
    for position, sentence in enumerate(sentences):
        if position == len(sentences) - 1 and not terminated:
            result.append(sentence)
        else:
            result.append(sentence + '.')
    return ' '.join(result)


def extract_insights(text: str) -> list[str]:
    insights = []
    for sentence in SENTENCE_SPLIT_RE.split(text):
        sentence = sentence.strip()
        if any(pattern.search(sentence) for pattern in INSIGHT_PATTERNS):
            cleaned = re.sub(r"^(?:and|but|so|then)\s+", '', sentence, flags=re.IGNORECASE).strip()
            if len(cleaned) > 10:
                insights.append(cleaned)
    return insights


def extract_quotes(text: str) -> list[str]:
    """Quoted speech, deduplicated in order of first appearance."""
    normalized = normalize_quotes(text)
    quotes = []
    for pattern in QUOTE_PATTERNS:
        for match in pattern.finditer(normalized):
            quote = match.group(1).strip()
            if len(quote) > 5 and quote not in quotes:
                quotes.append(quote)
    return quotes


def detect_mood(text: str) -> Mood | None:
    positive = negative = 0
    for word in text.lower().split():
        if any(keyword in word for keyword in MOOD_INDICATORS[Mood.POSITIVE]):
            positive += 1
        if any(keyword in word for keyword in MOOD_INDICATORS[Mood.NEGATIVE]):
            negative += 1
    if positive == 0 and negative == 0:
        return None
    if positive > negative:
        return Mood.POSITIVE
    if negative > positive:
        return Mood.NEGATIVE
    return Mood.MIXED


def extract_tags(text: str) -> list[str]:
    """
    Hashtags plus capitalized words that are not sentence openers.

    Returns at most MAX_TAGS tags, hashtags first, each listed once.
    """
    tags = [f"#{tag.lower()}" for tag in HASHTAG_RE.findall(text)]
    for sentence in SENTENCE_SPLIT_RE.split(text):
        words = sentence.split()
        for word in CAPITALIZED_WORD_RE.findall(' '.join(words[1:])):
            if len(word) > 3 and word not in TAG_STOP_WORDS:
                tags.append(word)
    unique = list(dict.fromkeys(tags))
    return unique[:MAX_TAGS]


def overall_mood(entries: list[JournalEntry]) -> Mood:
    moods = [entry.mood for entry in entries if entry.mood]
    if not moods:
        return Mood.NEUTRAL
    total = len(moods)
    positive = moods.count(Mood.POSITIVE) / total
    negative = moods.count(Mood.NEGATIVE) / total
    if positive > 0.6:
        return Mood.POSITIVE
    if negative > 0.6:
        return Mood.NEGATIVE
    if Mood.MIXED in moods or (positive > 0.3 and negative > 0.3):
        return Mood.MIXED
    return Mood.NEUTRAL


class JournalNotesOrganizer(BaseOrganizer):
    name = "Journal Organizer"

    def organize(self, lines: list[LabeledLine], context: OrganizerContext) -> OrganizedDocument:
        entries: list[JournalEntry] = []
        current: JournalEntry | None = None
        paragraph: list[str] = []

        def complete_paragraph():
            if current is not None and paragraph:
                current.paragraphs.append(organize_sentences(' '.join(paragraph)))
            paragraph.clear()

        def start_entry(**fields) -> JournalEntry:
            entry = JournalEntry(id=f"entry-{len(entries) + 1}", content="", **fields)
            entries.append(entry)
            return entry

        for line in lines:
            if line.is_blank:
                complete_paragraph()
            elif line.label is JournalLineLabel.TIMESTAMP:
                complete_paragraph()
                match = find_timestamp(line.stripped)
                parsed = parse_date_text(match.group(0), context.reference)
                rest = clean_title(line.stripped.replace(match.group(0), '', 1).strip(' -–—:,|'))
                current = start_entry(
                    timestamp=parsed.isoformat() if parsed else None,
                    timestamp_text=match.group(0),
                    title=rest if len(rest) > 3 else None,
                )
            elif line.label is JournalLineLabel.TITLE and (
                    current is None or (not current.title and not current.paragraphs and not paragraph)):
                if current is None:
                    current = start_entry()
                current.title = clean_title(line.stripped)
            else:
                if current is None:
                    current = start_entry(title=DEFAULT_ENTRY_TITLE)
                paragraph.append(line.stripped)
        complete_paragraph()

        entries = [entry for entry in entries if entry.paragraphs]
        for number, entry in enumerate(entries, 1):
            entry.id = f"entry-{number}"
            entry.content = '\n\n'.join(entry.paragraphs)
            entry.insights = extract_insights(entry.content)
            entry.quotes = extract_quotes(entry.content)
            entry.mood = detect_mood(entry.content)
            entry.tags = extract_tags(entry.content)

        data = JournalNotesData(
            entries=entries,
            insights=list(dict.fromkeys(i for entry in entries for i in entry.insights))[:MAX_GLOBAL_INSIGHTS],
            mood=overall_mood(entries),
            topics=self._topics(entries),
        )
        debug_log(f"[JOURNAL] {len(entries)} entries, mood {data.mood.value}, {len(data.topics)} topics")

        insight_count = sum(len(entry.insights) for entry in entries)
        quote_count = sum(len(entry.quotes) for entry in entries)
        return OrganizedDocument(
            data=data,
            confidence=self._confidence(entries, context.scoring),
            item_count=len(entries),
            entries=len(entries),
            items_extracted=insight_count + quote_count + len(data.topics),
            auxiliary_sections=int(bool(data.insights)) + int(bool(data.topics)),
        )

    @staticmethod
    def _topics(entries: list[JournalEntry]) -> list[str]:
        counts = Counter(tag.lstrip('#').lower() for entry in entries for tag in entry.tags)
        return [tag for tag, _ in counts.most_common(MAX_TOPICS)]

    @staticmethod
    def _confidence(entries: list[JournalEntry], scoring: dict) -> int:
        if not entries:
            return 0
        score = scoring.get('base', 50)
        with_timestamp = sum(1 for entry in entries if entry.timestamp_text)
        score += scoring.get('timestamp_weight', 20) * with_timestamp / len(entries)
        insights = sum(len(entry.insights) for entry in entries)
        if insights:
            score += min(scoring.get('insight_cap', 15), scoring.get('per_insight', 3) * insights)
        with_mood = sum(1 for entry in entries if entry.mood)
        score += scoring.get('mood_weight', 10) * with_mood / len(entries)
        if sum(len(entry.paragraphs) for entry in entries) > len(entries):
            score += scoring.get('paragraph_bonus', 5)
        return clamp_score(score)


class JournalNotesRenderer(BaseRenderer):
    name = "Journal Renderer"

    def render(self, document: OrganizedDocument) -> str:
        data: JournalNotesData = document.data
        out = ["# 📓 Journal Entries\n"]

        if data.mood and data.mood is not Mood.NEUTRAL:
            out.append(f"**Overall Mood:** {MOOD_EMOJI[data.mood]} {data.mood.value}\n")

        for number, entry in enumerate(data.entries, 1):
            out.append(self._entry(entry, number))

        if data.insights:
            out.append("\n## 💡 Key Insights\n")
            out.extend(f"• {insight}" for insight in data.insights)
            out.append("")

        if data.topics:
            out.append("## 🏷️ Topics Discussed\n")
            out.append(', '.join(f"#{topic}" for topic in data.topics))
            out.append("")

        out.append(f"\n---\n**Summary:** {len(data.entries)} journal entries processed")
        return '\n'.join(out)

    @staticmethod
    def _entry(entry: JournalEntry, number: int) -> str:
        lines = [f"## {entry.title or f'Entry {number}'}"]
        if entry.timestamp:
            day = date.fromisoformat(entry.timestamp)
            lines.append(f"*{day:%A, %B} {day.day}, {day.year}*\n")
        elif entry.timestamp_text:
            lines.append(f"*{entry.timestamp_text}*\n")
        if entry.mood:
            lines.append(f"**Mood:** {MOOD_EMOJI.get(entry.mood, '')} {entry.mood.value}\n")
        lines.append(entry.content)
        if entry.quotes:
            lines.append("\n**Notable Quotes:**")
            lines.extend(f'> "{quote}"' for quote in entry.quotes)
        if entry.insights:
            lines.append("\n**Key Insights:**")
            lines.extend(f"• {insight}" for insight in entry.insights)
        if entry.tags:
            lines.append(f"\n**Tags:** {', '.join(entry.tags)}")
        lines.append("")
        return '\n'.join(lines)


class JournalNotesEngine(BaseFormatEngine):
    format_type = FormatType.JOURNAL_NOTES
    classifier_class = JournalLineClassifier
    organizer_class = JournalNotesOrganizer
    renderer_class = JournalNotesRenderer
