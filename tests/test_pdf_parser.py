# FILE: tests/test_pdf_parser.py

import fitz
import pytest

from core.errors import ValidationError
from core.pdf_parser import PaperPDFParser

SAMPLE_PAPER = """
Section: Physics
1. A body at rest stays at rest unless
acted on by a net force. This is
A) Newton's first law
B) Newton's second law
C) Newton's third law
D) Hooke's law
Answer: A
Explanation: Also called the law of inertia.

2. The SI unit of force is
A) Joule
B) Newton
C) Watt
D) Pascal
Ans: B
Marks: +3/-1

Section: Chemistry
3. Which of these are noble gases?
A) Neon
B) Nitrogen
C) Argon
D) Oxygen
Answer: A, C

4. A question with no key
A) yes
B) no
"""


@pytest.fixture
def parser():
    return PaperPDFParser()


def test_parses_questions_with_sections_and_keys(parser):
    paper = parser.parse_text(SAMPLE_PAPER, paper_id="mock-1", exam_type="neet", duration_seconds=600)

    assert paper.paper_id == "mock-1"
    assert paper.duration_seconds == 600
    assert [q.id for q in paper.questions] == ["mock-1-q1", "mock-1-q2", "mock-1-q3"]
    assert paper.subjects == ["Physics", "Chemistry"]

    first = paper.questions[0]
    assert first.text == "A body at rest stays at rest unless acted on by a net force. This is"
    assert first.options["A"] == "Newton's first law"
    assert first.correct_options == frozenset({"A"})
    assert first.explanation == "Also called the law of inertia."

    assert paper.questions[2].correct_options == frozenset({"A", "C"})


def test_marks_line_overrides_default_marking(parser):
    paper = parser.parse_text(SAMPLE_PAPER, paper_id="mock-1", exam_type="neet")

    assert paper.questions[0].marking.correct == 4.0
    assert paper.questions[0].marking.incorrect == -1.0
    assert paper.questions[1].marking.correct == 3.0
    assert paper.questions[1].marking.incorrect == -1.0


def test_default_duration_comes_from_config(parser):
    paper = parser.parse_text(SAMPLE_PAPER, paper_id="mock-1", exam_type="neet")
    assert paper.duration_seconds == 120 * 60


def test_questions_without_key_are_skipped_and_counted(parser):
    parser.parse_text(SAMPLE_PAPER, paper_id="mock-1", exam_type="neet")

    stats = parser.get_stats()
    assert stats["questions"] == 3
    assert stats["skipped_no_answer"] == 1


def test_subject_line_tags_only_its_question(parser):
    text = """
    Section: Biology
    1. Powerhouse of the cell?
    Subject: Botany
    A) Mitochondria
    B) Nucleus
    Answer: A
    2. Basic unit of life?
    A) Cell
    B) Atom
    Answer: A
    """
    paper = parser.parse_text(text, paper_id="bio", exam_type="neet")

    assert [q.subject for q in paper.questions] == ["Botany", "Biology"]


def test_duplicate_numbers_keep_first(parser):
    text = """
    1. First
    A) x
    B) y
    Answer: A
    1. Again
    A) x
    B) y
    Answer: B
    """
    paper = parser.parse_text(text, paper_id="dup", exam_type="jee")

    assert paper.total_questions == 1
    assert paper.questions[0].text == "First"
    assert parser.get_stats()["skipped_duplicate"] == 1


def test_no_usable_questions_is_rejected(parser):
    with pytest.raises(ValidationError):
        parser.parse_text("Just a cover page\nwith no questions", paper_id="empty", exam_type="jee")


def test_parse_pdf_reads_text_with_pymupdf(tmp_path, parser):
    pdf_path = tmp_path / "sample_paper.pdf"
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "1. The SI unit of force is\nA) Joule\nB) Newton\nAnswer: B", fontsize=11)
    doc.save(pdf_path)
    doc.close()

    paper = parser.parse_pdf(pdf_path, paper_id="pdf-1", exam_type="jee", duration_seconds=300)

    assert paper.title == "sample_paper"
    assert paper.total_questions == 1
    assert paper.questions[0].correct_options == frozenset({"B"})
    assert parser.get_stats()["pages"] == 1
