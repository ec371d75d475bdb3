"""
Study Notes Formatter

Builds a study guide from lecture or reading notes:
- Hierarchical outline from markdown headers, decimal numbering (1.2.3),
  letters, roman numerals, bullets and ALL CAPS headings
- Key definitions ("Osmosis: ...", "Entropy is ...", "Definition of X: ...")
- Study questions: explicit questions with the answer that follows them,
  plus "What is X?" / "Give an example of X." generated from definitions
- Key topics ranked by how often they recur

Content that appears before the first heading goes to an "Introduction"
section so nothing is dropped.
"""

import re
from collections import Counter
from dataclasses import dataclass

from notesmith.classification.base import LabeledLine
from notesmith.classification.study import (
    ANSWER_PREFIX_RE,
    BULLET_LEVEL_RE,
    StudyLineClassifier,
    StudyLineLabel,
    clean_heading,
    outline_level,
    question_text,
)
from notesmith.formatting.base import (
    BaseFormatEngine,
    BaseOrganizer,
    BaseRenderer,
    OrganizedDocument,
    OrganizerContext,
    clamp_score,
)
from notesmith.logging_config import debug_log
from notesmith.models import (
    Definition,
    Difficulty,
    FormatType,
    Importance,
    OutlineSection,
    QAPair,
    QuestionType,
    StudyNotesData,
    StudyTopic,
)

DEFAULT_SECTION = "Introduction"
MAX_QA_PAIRS = 20
MAX_RELATED_TERMS = 3
MAX_TERM_WORDS = 5

DEFINITION_PATTERNS = (
    ('definition-of', re.compile(r"^Definition of\s+([^:]+):\s*(.+)$", re.IGNORECASE)),
    ('colon', re.compile(r"^([A-Z][a-zA-Z\s]+):\s*(.+)$")),
    ('dash', re.compile(r"^([A-Z][a-zA-Z\s]+?)\s+[-–—]\s+(.+)$")),
    ('is', re.compile(r"^([A-Z][a-zA-Z\s]+?)\s+is\s+(.+)$")),
    ('means', re.compile(r"^([A-Z][a-zA-Z\s]+?)\s+means\s+(.+)$")),
    ('refers-to', re.compile(r"^([A-Z][a-zA-Z\s]+?)\s+refers to\s+(.+)$")),
)

EXAMPLE_PATTERNS = (
    re.compile(r"for example[,:]?\s*(.+?)(?:\.|$)", re.IGNORECASE),
    re.compile(r"such as\s+(.+?)(?:\.|$)", re.IGNORECASE),
    re.compile(r"e\.g\.[\s,]*(.+?)(?:\.|$)", re.IGNORECASE),
    re.compile(r"including\s+(.+?)(?:\.|$)", re.IGNORECASE),
)

QUESTION_TYPE_INDICATORS = (
    (QuestionType.DEFINITION, ('what is', 'define', 'meaning of', 'definition')),
    (QuestionType.EXPLANATION, ('how does', 'why does', 'explain', 'describe')),
    (QuestionType.EXAMPLE, ('give an example', 'provide example', 'such as', 'for instance')),
    (QuestionType.ANALYSIS, ('analyze', 'compare', 'contrast', 'evaluate', 'assess')),
    (QuestionType.COMPARISON, ('difference between', 'similar to')),
)

IMPORTANCE_KEYWORDS = (
    (Importance.HIGH, ('important', 'critical', 'key', 'essential', 'fundamental', 'major', 'primary', 'main')),
    (Importance.MEDIUM, ('significant', 'notable', 'relevant', 'useful', 'consider', 'remember', 'note')),
    (Importance.LOW, ('minor', 'secondary', 'additional', 'supplementary', 'optional', 'bonus')),
)
_IMPORTANCE_RANK = {Importance.HIGH: 2, Importance.MEDIUM: 1, Importance.LOW: 0}

DIFFICULTY_EMOJI = {Difficulty.EASY: "🟢", Difficulty.MEDIUM: "🟡", Difficulty.HARD: "🔴"}
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


@dataclass
class _FlatSection:
    section: OutlineSection
    body: list[str]


def find_example(definition: str) -> str | None:
    for pattern in EXAMPLE_PATTERNS:
        match = pattern.search(definition)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def related_terms(term: str, all_terms: list[str]) -> list[str]:
    """Other terms sharing a word (longer than 3 letters) with this one."""
    words = term.lower().split()
    related = []
    for other in all_terms:
        if other == term.lower():
            continue
        other_words = other.split()
        if any(len(word) > 3 and any(o in word or word in o for o in other_words) for word in words):
            related.append(other)
    return related[:MAX_RELATED_TERMS]


def match_definition(line: str) -> tuple[str, str] | None:
    """(term, definition) for a definition-shaped line, else None."""
    text = BULLET_LEVEL_RE.sub(r"\1", line.strip())
    for _, pattern in DEFINITION_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        term, definition = match.group(1).strip(), match.group(2).strip()
        if len(term) < 50 and len(term.split()) <= MAX_TERM_WORDS and len(definition) > 10:
            return term, definition
    return None


def question_type(question: str) -> QuestionType:
    lowered = question.lower()
    for kind, indicators in QUESTION_TYPE_INDICATORS:
        if any(indicator in lowered for indicator in indicators):
            return kind
    return QuestionType.EXPLANATION


def estimate_difficulty(question: str, answer: str) -> Difficulty:
    lowered = question.lower()
    if 'define' in lowered or 'what is' in lowered:
        return Difficulty.EASY
    if len(question.split()) > 10 or len(answer.split()) > 50:
        return Difficulty.HARD
    if 'analyze' in lowered or 'compare' in lowered:
        return Difficulty.HARD
    return Difficulty.MEDIUM


def topics_from_text(text: str) -> list[str]:
    """Capitalized words plus words longer than four letters that repeat; at most five."""
    topics = [word.lower() for word in re.findall(r"\b[A-Z][a-z]+\b", text) if len(word) > 3]
    counts = Counter(word for word in text.lower().split() if len(word) > 4)
    topics.extend(word for word, count in counts.items() if count > 1)
    return list(dict.fromkeys(topics))[:5]


def first_sentences(text: str, count: int = 3) -> str:
    sentences = [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]
    return '. '.join(sentences[:count]).strip()


class StudyNotesOrganizer(BaseOrganizer):
    name = "Study Organizer"

    def organize(self, lines: list[LabeledLine], context: OrganizerContext) -> OrganizedDocument:
        flat = self._flat_outline(lines)
        outline = self._hierarchy([item.section for item in flat])
        definitions = self._definitions(lines, flat)
        qa_pairs = self._qa_pairs(lines, definitions)
        topics = self._topics(outline, definitions, qa_pairs)

        data = StudyNotesData(outline=outline, qa_pairs=qa_pairs, definitions=definitions, topics=topics)
        total_sections = len(flat)
        debug_log(f"[STUDY] {total_sections} sections, {len(definitions)} definitions, "
                  f"{len(qa_pairs)} questions, {len(topics)} topics")

        return OrganizedDocument(
            data=data,
            confidence=self._confidence(data, context.scoring),
            item_count=total_sections,
            entries=total_sections,
            items_extracted=len(definitions) + len(qa_pairs) + len(topics),
            auxiliary_sections=int(bool(definitions)) + int(bool(qa_pairs)) + int(bool(topics)),
        )

    @staticmethod
    def _flat_outline(lines: list[LabeledLine]) -> list[_FlatSection]:
        flat: list[_FlatSection] = []
        for line in lines:
            if line.is_blank:
                continue
            if line.label in (StudyLineLabel.HEADING, StudyLineLabel.BULLET):
                level = outline_level(line.stripped)
                section = OutlineSection(id=f"section-{len(flat) + 1}", level=level,
                                         title=clean_heading(line.stripped))
                flat.append(_FlatSection(section=section, body=[]))
                continue
            if not flat:
                flat.append(_FlatSection(section=OutlineSection(id="section-1", level=1, title=DEFAULT_SECTION),
                                         body=[]))
            flat[-1].body.append(line.stripped)

        for item in flat:
            item.section.content = '\n'.join(item.body)
        return flat

    @staticmethod
    def _hierarchy(sections: list[OutlineSection]) -> list[OutlineSection]:
        roots: list[OutlineSection] = []
        stack: list[OutlineSection] = []
        for section in sections:
            while stack and stack[-1].level >= section.level:
                stack.pop()
            if stack:
                stack[-1].subsections.append(section)
            else:
                roots.append(section)
            stack.append(section)
        return roots

    @staticmethod
    def _definitions(lines: list[LabeledLine], flat: list[_FlatSection]) -> list[Definition]:
        section_titles = {}
        for item in flat:
            for body_line in item.body:
                section_titles.setdefault(body_line, item.section.title)

        found: dict[str, Definition] = {}
        for line in lines:
            if line.is_blank or line.label in (StudyLineLabel.QUESTION, StudyLineLabel.ANSWER):
                continue
            matched = match_definition(line.stripped)
            if matched is None:
                continue
            term, text = matched
            if term.lower() in found:
                continue
            found[term.lower()] = Definition(
                id=f"def-{len(found) + 1}",
                term=term,
                definition=text,
                context=section_titles.get(line.stripped),
                example=find_example(text),
            )

        terms = list(found)
        for definition in found.values():
            definition.related_terms = related_terms(definition.term, terms)
        return list(found.values())

    @staticmethod
    def _qa_pairs(lines: list[LabeledLine], definitions: list[Definition]) -> list[QAPair]:
        pairs: list[QAPair] = []
        for position, line in enumerate(lines):
            if line.label is not StudyLineLabel.QUESTION:
                continue
            question = question_text(line.stripped)
            answer_lines = []
            for following in lines[position + 1:]:
                if following.is_blank:
                    if answer_lines:
                        break
                    continue
                if following.label in (StudyLineLabel.QUESTION, StudyLineLabel.HEADING):
                    break
                prefixed = ANSWER_PREFIX_RE.match(following.stripped)
                answer_lines.append(prefixed.group(1) if prefixed else following.stripped)
            answer = first_sentences(' '.join(answer_lines))
            if question and 10 < len(answer) < 300:
                pairs.append(QAPair(
                    question=question,
                    answer=answer,
                    type=question_type(question),
                    difficulty=estimate_difficulty(question, answer),
                    topics=topics_from_text(f"{question} {answer}"),
                ))

        for definition in definitions:
            pairs.append(QAPair(question=f"What is {definition.term}?", answer=definition.definition,
                                type=QuestionType.DEFINITION, difficulty=Difficulty.EASY,
                                topics=[definition.term.lower()]))
            if definition.example:
                pairs.append(QAPair(question=f"Give an example of {definition.term}.",
                                    answer=definition.example, type=QuestionType.EXAMPLE,
                                    difficulty=Difficulty.MEDIUM, topics=[definition.term.lower()]))

        unique: dict[str, QAPair] = {}
        for pair in pairs:
            unique.setdefault(pair.question.lower(), pair)
        return list(unique.values())[:MAX_QA_PAIRS]

    @staticmethod
    def _topics(outline: list[OutlineSection], definitions: list[Definition],
                qa_pairs: list[QAPair]) -> list[StudyTopic]:
        topics: dict[str, StudyTopic] = {}
        counts: Counter = Counter()
        keyword_importance: dict[str, Importance] = {}

        def topic(name: str) -> StudyTopic:
            if name not in topics:
                topics[name] = StudyTopic(name=name)
            return topics[name]

        for root in outline:
            for section in root.walk():
                name = section.title.lower()
                topic(name).section_ids.append(section.id)
                counts[name] += 1
                content = f"{section.title} {section.content}".lower()
                for importance, keywords in IMPORTANCE_KEYWORDS:
                    if any(re.search(rf"\b{keyword}\b", content) for keyword in keywords):
                        keyword_importance.setdefault(name, importance)
                        break

        for definition in definitions:
            name = definition.term.lower()
            topic(name).definition_ids.append(definition.id)
            counts[name] += 1

        for pair in qa_pairs:
            for name in pair.topics:
                topic(name)
                counts[name] += 1

        for name, study_topic in topics.items():
            count = counts[name]
            by_count = Importance.HIGH if count > 3 else Importance.MEDIUM if count > 1 else Importance.LOW
            by_keyword = keyword_importance.get(name, Importance.LOW)
            study_topic.importance = max(by_count, by_keyword, key=_IMPORTANCE_RANK.get)

        return sorted(topics.values(), key=lambda t: -_IMPORTANCE_RANK[t.importance])

    @staticmethod
    def _confidence(data: StudyNotesData, scoring: dict) -> int:
        if not (data.outline or data.definitions or data.qa_pairs):
            return 0
        score = scoring.get('base', 50)
        if data.outline:
            score += min(scoring.get('outline_cap', 20), scoring.get('per_outline_item', 3) * len(data.outline))
        if data.definitions:
            score += min(scoring.get('definition_cap', 15), scoring.get('per_definition', 2) * len(data.definitions))
        if data.qa_pairs:
            score += min(scoring.get('qa_cap', 15), scoring.get('per_qa_pair', 1) * len(data.qa_pairs))
        if any(section.subsections for section in data.outline):
            score += scoring.get('hierarchy_bonus', 10)
        return clamp_score(score)


class StudyNotesRenderer(BaseRenderer):
    name = "Study Renderer"

    def render(self, document: OrganizedDocument) -> str:
        data: StudyNotesData = document.data
        out = ["# 📚 Study Guide\n"]

        if data.outline:
            out.append("## 📋 Study Outline\n")
            out.extend(self._section(section, 1) for section in data.outline)
            out.append("")

        if data.definitions:
            out.append("## 📖 Key Definitions\n")
            for definition in data.definitions:
                out.append(f"### {definition.term}\n")
                out.append(f"{definition.definition}\n")
                if definition.example:
                    out.append(f"**Example:** {definition.example}\n")
                if definition.related_terms:
                    out.append(f"**Related terms:** {', '.join(definition.related_terms)}\n")
                out.append("")

        if data.qa_pairs:
            out.append("## ❓ Study Questions\n")
            for number, pair in enumerate(data.qa_pairs, 1):
                emoji = DIFFICULTY_EMOJI[pair.difficulty or Difficulty.MEDIUM]
                out.append(f"### Q{number}: {pair.question} {emoji}\n")
                out.append(f"**Answer:** {pair.answer}\n")
                if pair.topics:
                    out.append(f"**Topics:** {', '.join(pair.topics)}\n")
                out.append("")

        if data.topics:
            out.append("## 🎯 Key Topics\n")
            groups = (
                (Importance.HIGH, "### 🔥 High Priority\n", "- **{}**"),
                (Importance.MEDIUM, "### 📌 Medium Priority\n", "- {}"),
                (Importance.LOW, "### 📝 Review\n", "- {}"),
            )
            for importance, heading, template in groups:
                names = [t.name for t in data.topics if t.importance is importance]
                if names:
                    out.append(heading)
                    out.extend(template.format(name) for name in names)
                    out.append("")

        total = len(data.all_sections())
        out.append(f"\n---\n**Summary:** {total} sections • {len(data.definitions)} definitions • "
                   f"{len(data.qa_pairs)} study questions")
        return '\n'.join(out)

    def _section(self, section: OutlineSection, depth: int) -> str:
        indent = '  ' * (depth - 1)
        bullet = '###' if depth == 1 else '-' if depth == 2 else '  •'
        result = f"{indent}{bullet} {section.title}\n"
        if section.content.strip():
            result += f"{'  ' * depth}{section.content}\n\n"
        for child in section.subsections:
            result += self._section(child, depth + 1)
        return result


class StudyNotesEngine(BaseFormatEngine):
    format_type = FormatType.STUDY_NOTES
    classifier_class = StudyLineClassifier
    organizer_class = StudyNotesOrganizer
    renderer_class = StudyNotesRenderer
