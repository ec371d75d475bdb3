"""
Tests for the study notes engine: outline hierarchy, definitions,
question/answer pairs and topic ranking.
"""

import sys
from datetime import datetime
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.formatting import StudyNotesEngine
from notesmith.formatting.study import (
    estimate_difficulty,
    find_example,
    match_definition,
    question_type,
)
from notesmith.models import Difficulty, QuestionType, StudyNotesData, TextInput

REFERENCE = datetime(2024, 3, 6, 9, 0)

SAMPLE = (
    "# Cell Biology\n"
    "Osmosis: the movement of water across a membrane, for example in plant roots.\n"
    "## Transport\n"
    "Diffusion is the spread of particles from high to low concentration.\n"
    "Q: Why does active transport need energy?\n"
    "A: It moves molecules against their gradient using ATP."
)


def run(text):
    output = StudyNotesEngine().format(TextInput.from_text(text, timestamp=REFERENCE))
    return output, output.data.format_specific


class TestStudyHelpers:
    """Test definition, example and question helpers."""

    def test_definition_shapes(self):
        """'Term is ...' and 'Term: ...' lines are definitions."""
        assert match_definition("Entropy is the measure of disorder in a system") == (
            "Entropy", "the measure of disorder in a system")
        assert match_definition("- Osmosis: movement of water across a membrane")[0] == "Osmosis"

    def test_short_definition_rejected(self):
        """Definitions of ten characters or fewer are ignored."""
        assert match_definition("Osmosis: short") is None

    def test_find_example(self):
        """'for example' clauses are pulled out."""
        assert find_example("water moves, for example in plant roots.") == "in plant roots"

    def test_question_classification(self):
        """Indicator phrases decide type; 'what is' questions are easy."""
        assert question_type("Compare mitosis and meiosis?") is QuestionType.ANALYSIS
        assert question_type("What is ATP?") is QuestionType.DEFINITION
        assert estimate_difficulty("What is ATP?", "An energy carrier") is Difficulty.EASY


class TestStudyNotesEngine:
    """Test the study notes pipeline end to end."""

    def test_outline_hierarchy(self):
        """A level-2 heading nests under the preceding level-1 heading."""
        _, data = run(SAMPLE)
        assert data.outline[0].title == "Cell Biology"
        assert data.outline[0].subsections[0].title == "Transport"

    def test_definitions_with_context(self):
        """Definitions record the section they appear in and any example."""
        _, data = run(SAMPLE)
        terms = {d.term: d for d in data.definitions}
        assert set(terms) == {"Osmosis", "Diffusion"}
        assert terms["Osmosis"].context == "Cell Biology"
        assert terms["Osmosis"].example == "in plant roots"
        assert terms["Diffusion"].context == "Transport"

    def test_qa_pairs(self):
        """Explicit questions get their answers; definitions generate questions."""
        _, data = run(SAMPLE)
        by_question = {pair.question: pair for pair in data.qa_pairs}
        explicit = by_question["Why does active transport need energy?"]
        assert explicit.type is QuestionType.EXPLANATION
        assert "ATP" in explicit.answer
        assert "What is Osmosis?" in by_question
        assert "Give an example of Osmosis." in by_question

    def test_questions_unique(self):
        """Each question text appears once."""
        _, data = run(SAMPLE)
        questions = [pair.question.lower() for pair in data.qa_pairs]
        assert len(questions) == len(set(questions))

    def test_rendered_content(self):
        """Outline, definitions and questions are rendered."""
        output, _ = run(SAMPLE)
        assert "## 📋 Study Outline" in output.content
        assert "### Osmosis" in output.content
        assert "## ❓ Study Questions" in output.content

    def test_text_without_headings_gets_introduction(self):
        """Leading content with no heading goes to an Introduction section."""
        _, data = run("Photosynthesis turns light into chemical energy in plants.")
        assert data.outline[0].title == "Introduction"

    def test_empty_input(self):
        """Empty text gives an empty guide with zero confidence."""
        output, data = run("")
        assert isinstance(data, StudyNotesData)
        assert data.outline == []
        assert output.metadata.confidence == 0
