"""
Question Paper PDF Parser
Imports a question paper with an inline answer key into a TestDefinition

Expected layout (one item per line, as PyMuPDF extracts it):

    Section: Physics
    1. A body at rest stays at rest unless ...
    A) Newton's first law
    B) Newton's second law
    Answer: A
    Marks: +4/-1
    Explanation: ...
"""

import fitz
from pathlib import Path
from typing import Dict, List, Optional
import logging
import re

from config.settings import EXAM_CONFIG
from core.errors import ValidationError
from core.test_definition import MarkingScheme, Question, TestDefinition

logger = logging.getLogger(__name__)

QUESTION_RE = re.compile(r'^(?:Q\s*)?(\d{1,4})\s*[\.\):]\s*(.*)$', re.IGNORECASE)
OPTION_RE = re.compile(r'^\(?([A-Ha-h])[\.\)]\s*(.*)$')
ANSWER_RE = re.compile(r'^(?:Ans(?:wer)?|Correct(?:\s*option)?)\s*[:\.\-]?\s*([A-Ha-h](?:\s*[,/]\s*[A-Ha-h])*)\s*$', re.IGNORECASE)
SECTION_RE = re.compile(r'^Section\s*:\s*(.+)$', re.IGNORECASE)
SUBJECT_RE = re.compile(r'^Subject\s*:\s*(.+)$', re.IGNORECASE)
MARKS_RE = re.compile(r'^Marks\s*:\s*\+?(\d+(?:\.\d+)?)\s*/\s*-?(\d+(?:\.\d+)?)\s*$', re.IGNORECASE)
EXPLANATION_RE = re.compile(r'^Explanation\s*:\s*(.*)$', re.IGNORECASE)


class PaperPDFParser:
    """Reads a question paper PDF with PyMuPDF and builds a TestDefinition"""

    def __init__(self, default_marking: Optional[MarkingScheme] = None):
        self.default_marking = default_marking or MarkingScheme()
        self.stats = {
            "pages": 0,
            "blocks": 0,
            "questions": 0,
            "skipped_no_answer": 0,
            "skipped_few_options": 0,
            "skipped_duplicate": 0,
        }

    def parse_pdf(
        self,
        pdf_path: Path,
        paper_id: str,
        exam_type: str,
        duration_seconds: Optional[int] = None,
        title: str = "",
    ) -> TestDefinition:
        pdf_path = Path(pdf_path)
        doc = fitz.open(pdf_path)
        try:
            self.stats["pages"] += len(doc)
            full_text = "\n".join(page.get_text("text") for page in doc)
        finally:
            doc.close()

        logger.info(f"Read {pdf_path.name}: {len(full_text)} characters")
        return self.parse_text(
            full_text,
            paper_id=paper_id,
            exam_type=exam_type,
            duration_seconds=duration_seconds,
            title=title or pdf_path.stem,
        )

    def parse_text(
        self,
        text: str,
        paper_id: str,
        exam_type: str,
        duration_seconds: Optional[int] = None,
        title: str = "",
    ) -> TestDefinition:
        blocks = self._split_blocks(self._clean_text(text))
        self.stats["blocks"] += len(blocks)

        questions: List[Question] = []
        seen = set()

        for block in blocks:
            question = self._build_question(block, paper_id)
            if question is None:
                continue
            if question.id in seen:
                logger.warning(f"Duplicate question number in {paper_id}: {question.id}")
                self.stats["skipped_duplicate"] += 1
                continue
            seen.add(question.id)
            questions.append(question)

        if not questions:
            raise ValidationError(f"No usable questions found for paper {paper_id}")

        self.stats["questions"] += len(questions)
        logger.info(f"Parsed {len(questions)} questions for paper {paper_id}")

        if duration_seconds is None:
            duration_seconds = EXAM_CONFIG.default_duration_minutes * 60

        return TestDefinition(
            paper_id=paper_id,
            exam_type=exam_type,
            title=title,
            duration_seconds=duration_seconds,
            questions=tuple(questions),
        )

    def _clean_text(self, text: str) -> str:
        text = text.replace('\x00', '')
        text = re.sub(r'[\u200b\u200c\u200d\ufeff]', '', text)
        text = re.sub(r'[^\S\n]+', ' ', text)
        return text

    def _split_blocks(self, text: str) -> List[Dict]:
        """Group lines into one dict per numbered question"""
        blocks = []
        current: Optional[Dict] = None
        section = "General"
        last_field = None

        for raw in text.splitlines():
            line = raw.strip()
            if not line:
                continue

            m = SECTION_RE.match(line)
            if m:
                section = m.group(1).strip()
                continue

            m = SUBJECT_RE.match(line)
            if m:
                # Tags the current question only
                if current is not None:
                    current["subject_line"] = m.group(1).strip()
                continue

            m = QUESTION_RE.match(line)
            if m:
                current = {
                    "number": m.group(1),
                    "text": [m.group(2)] if m.group(2) else [],
                    "options": {},
                    "answer": None,
                    "marks": None,
                    "explanation": [],
                    "section": section,
                    "subject_line": None,
                }
                blocks.append(current)
                last_field = "text"
                continue

            if current is None:
                continue

            m = ANSWER_RE.match(line)
            if m:
                current["answer"] = [a.strip().upper() for a in re.split(r'[,/]', m.group(1))]
                last_field = "answer"
                continue

            m = MARKS_RE.match(line)
            if m:
                current["marks"] = (float(m.group(1)), -float(m.group(2)))
                last_field = "marks"
                continue

            m = EXPLANATION_RE.match(line)
            if m:
                current["explanation"].append(m.group(1))
                last_field = "explanation"
                continue

            m = OPTION_RE.match(line)
            if m and last_field in ("text", "option"):
                current["options"][m.group(1).upper()] = m.group(2)
                current["last_option"] = m.group(1).upper()
                last_field = "option"
                continue

            # Continuation of whatever came last
            if last_field == "option":
                key = current["last_option"]
                current["options"][key] = f"{current['options'][key]} {line}".strip()
            elif last_field == "explanation":
                current["explanation"].append(line)
            elif last_field == "text":
                current["text"].append(line)

        return blocks

    def _build_question(self, block: Dict, paper_id: str) -> Optional[Question]:
        if len(block["options"]) < 2:
            logger.debug(f"Question {block['number']} has fewer than two options, skipping")
            self.stats["skipped_few_options"] += 1
            return None

        answer = [a for a in (block["answer"] or []) if a in block["options"]]
        if not answer:
            logger.warning(f"Question {block['number']} in {paper_id} has no usable answer key, skipping")
            self.stats["skipped_no_answer"] += 1
            return None

        marking = self.default_marking
        if block["marks"]:
            marking = MarkingScheme(
                correct=block["marks"][0],
                incorrect=block["marks"][1],
                unattempted=self.default_marking.unattempted,
            )

        explanation = " ".join(block["explanation"]).strip() or None

        return Question(
            id=f"{paper_id}-q{block['number']}",
            text=" ".join(block["text"]).strip(),
            options=dict(sorted(block["options"].items())),
            correct_options=frozenset(answer),
            subject=block["subject_line"] or block["section"],
            marking=marking,
            explanation=explanation,
        )

    def get_stats(self) -> Dict:
        return dict(self.stats)
