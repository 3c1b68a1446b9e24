"""
Analysis Engine Module
Turns a submitted attempt and its paper into a scoring breakdown
by subject and by question
"""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field
from collections import defaultdict
import logging

from config.settings import EXAM_CONFIG
from core.errors import IncompleteDefinition, UnknownAttempt
from core.test_definition import TestDefinition
from engine.attempt_store import NavigationAction
from storage.services import AttemptFetchService, SubmittedAttempt, TestDefinitionLoader

logger = logging.getLogger(__name__)

CORRECT = "correct"
INCORRECT = "incorrect"
UNATTEMPTED = "unattempted"


@dataclass(frozen=True)
class QuestionOutcome:
    """Result for a single question"""
    question_id: str
    subject: str
    selected: Optional[str]
    correct_options: Tuple[str, ...]
    outcome: str
    marks: float
    flagged: bool = False
    time_spent: Optional[int] = None
    difficulty: Optional[str] = None
    visits: int = 0
    first_visit_at: Optional[int] = None  # elapsed seconds
    last_visit_at: Optional[int] = None

    @property
    def is_attempted(self) -> bool:
        return self.outcome != UNATTEMPTED

    @property
    def is_correct(self) -> bool:
        return self.outcome == CORRECT

    def to_dict(self) -> Dict:
        return {
            "question_id": self.question_id,
            "subject": self.subject,
            "selected": self.selected,
            "correct_options": list(self.correct_options),
            "outcome": self.outcome,
            "marks": self.marks,
            "flagged": self.flagged,
            "time_spent": self.time_spent,
            "difficulty": self.difficulty,
            "visits": self.visits,
            "first_visit_at": self.first_visit_at,
            "last_visit_at": self.last_visit_at,
        }


@dataclass(frozen=True)
class SubjectBreakdown:
    total: int = 0
    attempted: int = 0
    correct: int = 0
    incorrect: int = 0
    unattempted: int = 0
    score: float = 0.0
    max_score: float = 0.0
    # None means time was not tracked, which is not the same as zero seconds
    time_spent: Optional[int] = None

    @property
    def accuracy(self) -> float:
        if not self.attempted:
            return 0.0
        return round(self.correct / self.attempted * 100, 1)

    @property
    def attempt_rate(self) -> float:
        if not self.total:
            return 0.0
        return round(self.attempted / self.total * 100, 1)

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "attempted": self.attempted,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "unattempted": self.unattempted,
            "score": self.score,
            "max_score": self.max_score,
            "accuracy": self.accuracy,
            "attempt_rate": self.attempt_rate,
            "time_spent": self.time_spent,
        }


@dataclass(frozen=True)
class AnalysisReport:
    """Derived, read-only analysis of one attempt"""
    attempt_id: str
    paper_id: str
    exam_type: str
    overall: SubjectBreakdown
    subjects: Mapping[str, SubjectBreakdown]
    questions: Tuple[QuestionOutcome, ...] = field(default_factory=tuple)
    total_time_seconds: int = 0
    forced: bool = False
    average_time_per_question: float = 0.0
    difficulties: Mapping[str, SubjectBreakdown] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def score(self) -> float:
        return self.overall.score

    def to_dict(self) -> Dict:
        return {
            "attempt_id": self.attempt_id,
            "paper_id": self.paper_id,
            "exam_type": self.exam_type,
            "overall": self.overall.to_dict(),
            "subjects": {name: s.to_dict() for name, s in self.subjects.items()},
            "difficulties": {name: d.to_dict() for name, d in self.difficulties.items()},
            "questions": [q.to_dict() for q in self.questions],
            "total_time_seconds": self.total_time_seconds,
            "average_time_per_question": self.average_time_per_question,
            "forced": self.forced,
        }


def analyze(attempt: SubmittedAttempt, definition: TestDefinition) -> AnalysisReport:
    """
    Score an attempt against its paper.

    Pure function of its inputs. Every question in the paper is classified
    (a missing answer record means unattempted); an answer for a question the
    paper does not contain raises IncompleteDefinition.
    """
    snapshot = attempt.snapshot

    if snapshot.paper_id != definition.paper_id:
        raise IncompleteDefinition(
            f"Attempt {attempt.attempt_id} is for paper {snapshot.paper_id}, "
            f"not {definition.paper_id}"
        )

    unknown = [qid for qid in snapshot.answers if not definition.has_question(qid)]
    if unknown:
        raise IncompleteDefinition(
            f"Attempt {attempt.attempt_id} answers questions missing from paper "
            f"{definition.paper_id}: {', '.join(sorted(unknown))}"
        )

    visits: Dict[str, List[int]] = defaultdict(list)
    for event in snapshot.navigation:
        if event.action == NavigationAction.VISIT:
            visits[event.question_id].append(event.at_second)

    outcomes = []
    for q in definition.questions:
        record = snapshot.answers.get(q.id)
        selected = record.selected if record else None

        if selected is None:
            outcome, marks = UNATTEMPTED, q.marking.unattempted
        elif q.is_correct(selected):
            outcome, marks = CORRECT, q.marking.correct
        else:
            outcome, marks = INCORRECT, q.marking.incorrect

        time_spent = None
        if snapshot.time_tracked:
            time_spent = record.time_spent if record else 0

        outcomes.append(QuestionOutcome(
            question_id=q.id,
            subject=q.subject,
            selected=selected,
            correct_options=tuple(sorted(q.correct_options)),
            outcome=outcome,
            marks=marks,
            flagged=record.flagged if record else False,
            time_spent=time_spent,
            difficulty=q.difficulty,
            visits=len(visits[q.id]),
            first_visit_at=visits[q.id][0] if visits[q.id] else None,
            last_visit_at=visits[q.id][-1] if visits[q.id] else None,
        ))

    max_marks = {q.id: q.marking.correct for q in definition.questions}
    by_subject: Dict[str, List[QuestionOutcome]] = defaultdict(list)
    by_difficulty: Dict[str, List[QuestionOutcome]] = {}
    for o in outcomes:
        by_subject[o.subject].append(o)
        # Unrated questions only count towards the subject and overall figures
        if o.difficulty:
            by_difficulty.setdefault(o.difficulty, []).append(o)

    subjects = {
        name: _breakdown(by_subject[name], max_marks, snapshot.time_tracked)
        for name in definition.subjects
    }
    difficulties = {
        name: _breakdown(group, max_marks, snapshot.time_tracked)
        for name, group in by_difficulty.items()
    }

    elapsed = snapshot.elapsed_seconds
    total = len(outcomes)

    return AnalysisReport(
        attempt_id=attempt.attempt_id,
        paper_id=definition.paper_id,
        exam_type=definition.exam_type,
        overall=_breakdown(outcomes, max_marks, snapshot.time_tracked),
        subjects=MappingProxyType(subjects),
        questions=tuple(outcomes),
        total_time_seconds=elapsed,
        forced=attempt.forced,
        average_time_per_question=round(elapsed / total, 1) if total > 0 else 0.0,
        difficulties=MappingProxyType(difficulties),
    )


def _breakdown(
    outcomes: List[QuestionOutcome],
    max_marks: Dict[str, float],
    time_tracked: bool,
) -> SubjectBreakdown:
    correct = sum(1 for o in outcomes if o.outcome == CORRECT)
    incorrect = sum(1 for o in outcomes if o.outcome == INCORRECT)
    unattempted = sum(1 for o in outcomes if o.outcome == UNATTEMPTED)

    return SubjectBreakdown(
        total=len(outcomes),
        attempted=correct + incorrect,
        correct=correct,
        incorrect=incorrect,
        unattempted=unattempted,
        score=sum(o.marks for o in outcomes),
        max_score=sum(max_marks[o.question_id] for o in outcomes),
        time_spent=sum(o.time_spent for o in outcomes) if time_tracked else None,
    )


class AnalysisEngine:
    """
    Resolves attempts by identifier and analyzes them.
    Reports are recomputed on every call; nothing is cached here.
    """

    def __init__(self, fetch_service: AttemptFetchService, loader: TestDefinitionLoader):
        self.fetch_service = fetch_service
        self.loader = loader

    async def analyze_attempt_id(self, attempt_id: str) -> AnalysisReport:
        attempt = await self.fetch_service.fetch_submitted_attempt(attempt_id)
        if attempt is None:
            raise UnknownAttempt(f"Attempt {attempt_id} not found")

        definition = self.loader.load_test_definition(
            attempt.snapshot.exam_type, attempt.snapshot.paper_id
        )
        report = analyze(attempt, definition)
        logger.info(
            f"Analyzed attempt {attempt_id}: score {report.score} "
            f"({report.overall.correct}/{report.overall.total} correct)"
        )
        return report

    def analyze(self, attempt: SubmittedAttempt, definition: TestDefinition) -> AnalysisReport:
        return analyze(attempt, definition)


def weak_subjects(
    report: AnalysisReport,
    threshold: float = EXAM_CONFIG.weak_accuracy,
    min_attempted: int = EXAM_CONFIG.min_attempted_for_verdict,
) -> List[Tuple[str, float]]:
    """Subjects with accuracy below threshold, weakest first"""
    weak = [
        (name, s.accuracy) for name, s in report.subjects.items()
        if s.attempted >= min_attempted and s.accuracy < threshold
    ]
    return sorted(weak, key=lambda x: x[1])


def strong_subjects(
    report: AnalysisReport,
    threshold: float = EXAM_CONFIG.strong_accuracy,
    min_attempted: int = EXAM_CONFIG.min_attempted_for_verdict,
) -> List[Tuple[str, float]]:
    """Subjects with accuracy at or above threshold, strongest first"""
    strong = [
        (name, s.accuracy) for name, s in report.subjects.items()
        if s.attempted >= min_attempted and s.accuracy >= threshold
    ]
    return sorted(strong, key=lambda x: -x[1])


def incorrect_questions(report: AnalysisReport) -> List[QuestionOutcome]:
    return [q for q in report.questions if q.outcome == INCORRECT]


def unattempted_questions(report: AnalysisReport) -> List[QuestionOutcome]:
    return [q for q in report.questions if q.outcome == UNATTEMPTED]


def compare_reports(reports: List[AnalysisReport]) -> Dict:
    """Trend of several attempts, in the order given (oldest first)"""
    if len(reports) < 2:
        return {"message": "Need at least 2 attempts for comparison"}

    trends = {
        "attempts": len(reports),
        "score_trend": [],
        "accuracy_trend": [],
        "subject_trends": defaultdict(list),
    }

    for r in reports:
        trends["score_trend"].append({"attempt": r.attempt_id, "score": r.score})
        trends["accuracy_trend"].append({"attempt": r.attempt_id, "accuracy": r.overall.accuracy})
        for subject, data in r.subjects.items():
            trends["subject_trends"][subject].append(data.accuracy)

    first, last = reports[0], reports[-1]
    trends["subject_trends"] = dict(trends["subject_trends"])
    trends["improvement"] = {
        "score": last.score - first.score,
        "accuracy": round(last.overall.accuracy - first.overall.accuracy, 1),
        "attempt_rate": round(last.overall.attempt_rate - first.overall.attempt_rate, 1),
    }

    return trends
