"""
Attempt Store Module
Single source of truth for an in-progress attempt: selected answers,
visited/flagged questions, remaining time and lifecycle phase
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from core.errors import AlreadyInitialized, AttemptFrozen, ValidationError
from core.test_definition import TestDefinition

logger = logging.getLogger(__name__)


class AttemptPhase(Enum):
    UNINITIALIZED = "uninitialized"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class QuestionStatus(Enum):
    NOT_VISITED = "not_visited"
    NOT_ANSWERED = "not_answered"
    ANSWERED = "answered"
    MARKED_FOR_REVIEW = "marked_for_review"
    ANSWERED_AND_MARKED = "answered_and_marked"


class NavigationAction(Enum):
    VISIT = "visit"
    LEAVE = "leave"
    ANSWER = "answer"
    CLEAR = "clear"
    MARK = "mark"
    UNMARK = "unmark"


@dataclass(frozen=True)
class AnswerRecord:
    """Student's state for one question"""
    question_id: str
    selected: Optional[str] = None
    visited: bool = False
    flagged: bool = False
    time_spent: int = 0  # seconds

    @property
    def is_answered(self) -> bool:
        return self.selected is not None

    @property
    def status(self) -> QuestionStatus:
        if self.is_answered and self.flagged:
            return QuestionStatus.ANSWERED_AND_MARKED
        if self.flagged:
            return QuestionStatus.MARKED_FOR_REVIEW
        if self.is_answered:
            return QuestionStatus.ANSWERED
        if self.visited:
            return QuestionStatus.NOT_ANSWERED
        return QuestionStatus.NOT_VISITED

    def to_dict(self) -> Dict:
        return {
            "question_id": self.question_id,
            "selected": self.selected,
            "visited": self.visited,
            "flagged": self.flagged,
            "time_spent": self.time_spent,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "AnswerRecord":
        return cls(
            question_id=str(data["question_id"]),
            selected=data.get("selected"),
            visited=data.get("visited", False),
            flagged=data.get("flagged", False),
            time_spent=int(data.get("time_spent", 0)),
        )


@dataclass(frozen=True)
class NavigationEvent:
    at_second: int  # elapsed seconds since the attempt started
    question_id: str
    action: NavigationAction

    def to_dict(self) -> Dict:
        return {
            "at_second": self.at_second,
            "question_id": self.question_id,
            "action": self.action.value,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "NavigationEvent":
        return cls(
            at_second=int(data["at_second"]),
            question_id=str(data["question_id"]),
            action=NavigationAction(data["action"]),
        )


@dataclass(frozen=True)
class AttemptSnapshot:
    """Immutable copy of an attempt, taken for submission or display"""
    paper_id: str
    exam_type: str
    phase: AttemptPhase
    duration_seconds: int
    remaining_seconds: int
    answers: Mapping[str, AnswerRecord] = field(default_factory=lambda: MappingProxyType({}))
    navigation: Tuple[NavigationEvent, ...] = ()
    time_tracked: bool = False
    current_question_id: Optional[str] = None

    @property
    def elapsed_seconds(self) -> int:
        return self.duration_seconds - self.remaining_seconds

    @property
    def is_frozen(self) -> bool:
        return self.phase == AttemptPhase.SUBMITTED

    @property
    def answered_count(self) -> int:
        return sum(1 for r in self.answers.values() if r.is_answered)

    @property
    def flagged_count(self) -> int:
        return sum(1 for r in self.answers.values() if r.flagged)

    def selected(self, question_id: str) -> Optional[str]:
        record = self.answers.get(question_id)
        return record.selected if record else None

    def to_dict(self) -> Dict:
        return {
            "paper_id": self.paper_id,
            "exam_type": self.exam_type,
            "phase": self.phase.value,
            "duration_seconds": self.duration_seconds,
            "remaining_seconds": self.remaining_seconds,
            "answers": [r.to_dict() for r in self.answers.values()],
            "navigation": [e.to_dict() for e in self.navigation],
            "time_tracked": self.time_tracked,
            "current_question_id": self.current_question_id,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "AttemptSnapshot":
        records = [AnswerRecord.from_dict(r) for r in data.get("answers", [])]
        return cls(
            paper_id=str(data["paper_id"]),
            exam_type=data.get("exam_type", "general"),
            phase=AttemptPhase(data.get("phase", AttemptPhase.SUBMITTED.value)),
            duration_seconds=int(data["duration_seconds"]),
            remaining_seconds=int(data.get("remaining_seconds", 0)),
            answers=MappingProxyType({r.question_id: r for r in records}),
            navigation=tuple(NavigationEvent.from_dict(e) for e in data.get("navigation", [])),
            time_tracked=data.get("time_tracked", False),
            current_question_id=data.get("current_question_id"),
        )


class AttemptStore:
    """
    Owns the mutable state of exactly one attempt.

    Mutators raise instead of returning flags: AttemptFrozen once frozen,
    ValidationError for unknown questions or options. A rejected mutation
    leaves the state untouched.
    """

    def __init__(self):
        self._definition: Optional[TestDefinition] = None
        self._reset_state()

    def _reset_state(self):
        self._phase = AttemptPhase.UNINITIALIZED
        self._answers: Dict[str, AnswerRecord] = {}
        self._navigation: List[NavigationEvent] = []
        self._remaining = 0
        self._current: Optional[str] = None
        self._visit_started_at: Optional[int] = None
        self._time_tracked = False
        self._frozen: Optional[AttemptSnapshot] = None

    @property
    def phase(self) -> AttemptPhase:
        return self._phase

    @property
    def definition(self) -> Optional[TestDefinition]:
        return self._definition

    @property
    def is_frozen(self) -> bool:
        return self._phase == AttemptPhase.SUBMITTED

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def elapsed_seconds(self) -> int:
        if not self._definition:
            return 0
        return self._definition.duration_seconds - self._remaining

    @property
    def current_question_id(self) -> Optional[str]:
        return self._current

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, definition: TestDefinition) -> AttemptSnapshot:
        if self._phase == AttemptPhase.IN_PROGRESS:
            raise AlreadyInitialized(
                f"Attempt on paper {self._definition.paper_id} is still in progress"
            )

        self._definition = definition
        self._reset_state()
        self._phase = AttemptPhase.IN_PROGRESS
        self._remaining = definition.duration_seconds

        logger.info(
            f"Initialized attempt on paper {definition.paper_id} "
            f"({definition.total_questions} questions, {definition.duration_seconds}s)"
        )
        return self.snapshot()

    def reset(self):
        self._definition = None
        self._reset_state()

    def freeze(self) -> AttemptSnapshot:
        """Transition to Submitted. A second call returns the same snapshot."""
        if self._phase == AttemptPhase.SUBMITTED:
            return self._frozen
        if self._phase == AttemptPhase.UNINITIALIZED:
            raise ValidationError("No attempt to freeze")

        if self._current is not None:
            self._charge_current()
            self._log(self._current, NavigationAction.LEAVE)

        self._phase = AttemptPhase.SUBMITTED
        self._frozen = self._build_snapshot()

        logger.info(
            f"Froze attempt on paper {self._definition.paper_id}: "
            f"{self._frozen.answered_count}/{self._definition.total_questions} answered"
        )
        return self._frozen

    def snapshot(self) -> AttemptSnapshot:
        if self._frozen is not None:
            return self._frozen
        return self._build_snapshot()

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def set_answer(self, question_id: str, value: Optional[str]) -> AnswerRecord:
        self._require_live()
        record = self._record(question_id)

        if value is not None:
            question = self._definition.question(question_id)
            if value not in question.options:
                raise ValidationError(f"Option {value!r} does not exist on question {question_id}")

        record = replace(record, selected=value, visited=True)
        self._answers[question_id] = record
        self._log(question_id, NavigationAction.ANSWER if value is not None else NavigationAction.CLEAR)
        return record

    def clear_answer(self, question_id: str) -> AnswerRecord:
        return self.set_answer(question_id, None)

    def toggle_flag(self, question_id: str) -> AnswerRecord:
        self._require_live()
        record = self._record(question_id)

        record = replace(record, flagged=not record.flagged)
        self._answers[question_id] = record
        self._log(question_id, NavigationAction.MARK if record.flagged else NavigationAction.UNMARK)
        return record

    def mark_visited(self, question_id: str) -> AnswerRecord:
        self._require_live()
        record = replace(self._record(question_id), visited=True)
        self._answers[question_id] = record
        return record

    def visit(self, question_id: str) -> AnswerRecord:
        """Move the on-screen question, charging elapsed time to the one left"""
        self._require_live()
        record = self._record(question_id)

        if self._current is not None:
            self._charge_current()
            self._log(self._current, NavigationAction.LEAVE)

        record = replace(self._answers.get(question_id, record), visited=True)
        self._answers[question_id] = record
        self._current = question_id
        self._visit_started_at = self.elapsed_seconds
        self._time_tracked = True
        self._log(question_id, NavigationAction.VISIT)
        return record

    def tick(self, remaining: int):
        self._require_live()
        if not 0 <= remaining <= self._definition.duration_seconds:
            raise ValidationError(
                f"Remaining time {remaining}s outside 0..{self._definition.duration_seconds}"
            )
        self._remaining = remaining

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_live(self):
        if self._phase == AttemptPhase.SUBMITTED:
            raise AttemptFrozen(f"Attempt on paper {self._definition.paper_id} is frozen")
        if self._phase == AttemptPhase.UNINITIALIZED:
            raise ValidationError("No attempt in progress")

    def _record(self, question_id: str) -> AnswerRecord:
        if not self._definition.has_question(question_id):
            raise ValidationError(
                f"Question {question_id} is not part of paper {self._definition.paper_id}"
            )
        return self._answers.get(question_id) or AnswerRecord(question_id=question_id)

    def _charge_current(self):
        if self._current is None or self._visit_started_at is None:
            return
        spent = max(self.elapsed_seconds - self._visit_started_at, 0)
        record = self._answers[self._current]
        self._answers[self._current] = replace(record, time_spent=record.time_spent + spent)
        self._visit_started_at = self.elapsed_seconds

    def _log(self, question_id: str, action: NavigationAction):
        self._navigation.append(NavigationEvent(self.elapsed_seconds, question_id, action))

    def _build_snapshot(self) -> AttemptSnapshot:
        definition = self._definition
        return AttemptSnapshot(
            paper_id=definition.paper_id if definition else "",
            exam_type=definition.exam_type if definition else "",
            phase=self._phase,
            duration_seconds=definition.duration_seconds if definition else 0,
            remaining_seconds=self._remaining,
            answers=MappingProxyType(dict(self._answers)),
            navigation=tuple(self._navigation),
            time_tracked=self._time_tracked,
            current_question_id=self._current,
        )
