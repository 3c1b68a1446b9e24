"""
Session Controller Module
Glue between user intent, the countdown timer and the attempt store.
Owns the submit protocol: at most one submission per attempt, bounded
retries with backoff, and forced submission when time runs out.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from config.settings import SUBMISSION_CONFIG, SubmissionConfig
from core.errors import (
    AlreadyInitialized,
    AttemptFrozen,
    EngineError,
    NetworkError,
    SubmissionFailed,
    ValidationError,
)
from core.test_definition import Question, TestDefinition
from engine.attempt_store import AnswerRecord, AttemptSnapshot, AttemptStore, QuestionStatus
from engine.countdown_timer import CountdownTimer
from engine.scheduler import Scheduler
from storage.services import SubmissionService, SubmittedAttempt

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    UNINITIALIZED = "uninitialized"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    SUBMISSION_FAILED = "submission_failed"


FROZEN_PHASES = (SessionPhase.SUBMITTING, SessionPhase.SUBMITTED, SessionPhase.SUBMISSION_FAILED)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a user action; errors are reported, never raised"""
    ok: bool
    record: Optional[AnswerRecord] = None
    error: Optional[EngineError] = None


@dataclass(frozen=True)
class SessionView:
    """Read-only view handed to the presentation layer"""
    phase: SessionPhase
    snapshot: AttemptSnapshot
    current_index: int
    total_questions: int
    palette: Tuple[Tuple[str, QuestionStatus], ...]
    submitted: Optional[SubmittedAttempt] = None
    last_error: Optional[str] = None

    @property
    def remaining_seconds(self) -> int:
        return self.snapshot.remaining_seconds

    @property
    def answered_count(self) -> int:
        return self.snapshot.answered_count

    @property
    def unanswered_count(self) -> int:
        return self.total_questions - self.answered_count


class SessionController:
    """
    Drives one attempt from start to submission.

    The store and timer are owned exclusively by the controller. Timer
    callbacks that arrive after close() or after submission are ignored.
    """

    def __init__(
        self,
        definition: TestDefinition,
        submission_service: SubmissionService,
        scheduler: Optional[Scheduler] = None,
        config: SubmissionConfig = SUBMISSION_CONFIG,
        spawn: Optional[Callable] = None,
        sleep: Optional[Callable] = None,
    ):
        self.definition = definition
        self.submission_service = submission_service
        self.config = config

        self._store = AttemptStore()
        self._timer = CountdownTimer(scheduler)
        self._scheduler = self._timer.scheduler
        # How a forced submission coroutine gets run from the expiry callback
        self._spawn = spawn or asyncio.ensure_future
        self._sleep = sleep or asyncio.sleep

        self._phase = SessionPhase.UNINITIALIZED
        self._submit_triggered = False
        self._forced = False
        self._closed = False
        self._current_index = 0
        self._frozen: Optional[AttemptSnapshot] = None
        self._submitted: Optional[SubmittedAttempt] = None
        self._last_error: Optional[Exception] = None
        self._expiry_task = None
        self.delivery_attempts = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> SessionView:
        if self._phase != SessionPhase.UNINITIALIZED:
            raise AlreadyInitialized(f"Session for paper {self.definition.paper_id} already started")

        self._store.initialize(self.definition)
        self._phase = SessionPhase.IN_PROGRESS

        if self.definition.questions:
            self._store.visit(self.definition.questions[0].id)

        logger.info(f"Started attempt on paper {self.definition.paper_id}")
        self._timer.start(self.definition.duration_seconds, self._on_tick, self._on_expire)
        return self.view()

    def close(self):
        """Tear down; the timer is cancelled on every exit path"""
        self._timer.cancel()
        if not self._closed and self._phase == SessionPhase.IN_PROGRESS:
            logger.warning(f"Attempt on paper {self.definition.paper_id} closed without submission")
        self._closed = True

    def __enter__(self) -> "SessionController":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def timer_running(self) -> bool:
        return self._timer.running

    @property
    def submitted_attempt(self) -> Optional[SubmittedAttempt]:
        return self._submitted

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Optional[Question]:
        if not self.definition.questions:
            return None
        return self.definition.questions[self._current_index]

    def snapshot(self) -> AttemptSnapshot:
        if self._frozen is not None:
            return self._frozen
        return self._store.snapshot()

    def view(self) -> SessionView:
        snapshot = self.snapshot()
        palette = []
        for q in self.definition.questions:
            record = snapshot.answers.get(q.id)
            palette.append((q.id, record.status if record else QuestionStatus.NOT_VISITED))

        return SessionView(
            phase=self._phase,
            snapshot=snapshot,
            current_index=self._current_index,
            total_questions=self.definition.total_questions,
            palette=tuple(palette),
            submitted=self._submitted,
            last_error=str(self._last_error) if self._last_error else None,
        )

    # ------------------------------------------------------------------
    # Timer wiring
    # ------------------------------------------------------------------

    def _on_tick(self, remaining: int):
        if self._closed or self._phase != SessionPhase.IN_PROGRESS:
            return
        self._store.tick(remaining)

    def _on_expire(self):
        if self._closed or self._submit_triggered:
            return
        logger.info(f"Time is up on paper {self.definition.paper_id}, forcing submission")
        # Edits stop at the deadline, not when the spawned submission first runs
        self._store.freeze()
        self._expiry_task = self._spawn(self._forced_submit())

    async def _forced_submit(self) -> Optional[SubmittedAttempt]:
        try:
            return await self.submit(forced=True)
        except SubmissionFailed as e:
            # Nobody awaits this path; the failure stays visible on the view
            logger.error(f"Forced submission failed: {e}")
            return None

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def select_answer(self, question_id: str, value: Optional[str]) -> MutationResult:
        return self._mutate(self._store.set_answer, question_id, value)

    def clear_answer(self, question_id: str) -> MutationResult:
        return self._mutate(self._store.clear_answer, question_id)

    def flag(self, question_id: str) -> MutationResult:
        return self._mutate(self._store.toggle_flag, question_id)

    def navigate_to(self, index: int) -> MutationResult:
        self._scheduler.sync()
        if not 0 <= index < self.definition.total_questions:
            error = ValidationError(f"Question index {index} out of range")
            logger.warning(str(error))
            return MutationResult(False, error=error)

        question_id = self.definition.questions[index].id

        # Reviewing a frozen attempt moves the cursor only
        if self._phase in FROZEN_PHASES:
            self._current_index = index
            return MutationResult(True, record=self.snapshot().answers.get(question_id))

        result = self._mutate(self._store.visit, question_id)
        if result.ok:
            self._current_index = index
        return result

    def next_question(self) -> MutationResult:
        return self.navigate_to(self._current_index + 1)

    def previous_question(self) -> MutationResult:
        return self.navigate_to(self._current_index - 1)

    def _mutate(self, action, *args) -> MutationResult:
        # A deadline that passed since the last tick wins over this action
        self._scheduler.sync()

        if self._phase in FROZEN_PHASES:
            error = AttemptFrozen(f"Attempt on paper {self.definition.paper_id} is {self._phase.value}")
            logger.warning(f"Ignored {action.__name__}: {error}")
            return MutationResult(False, error=error)

        try:
            record = action(*args)
        except AttemptFrozen as e:
            logger.warning(f"Ignored {action.__name__}: {e}")
            return MutationResult(False, error=e)
        except ValidationError as e:
            logger.warning(f"Rejected {action.__name__}: {e}")
            return MutationResult(False, error=e)

        return MutationResult(True, record=record)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, forced: bool = False) -> Optional[SubmittedAttempt]:
        """
        Freeze and deliver the attempt.

        The idempotency flag is checked and set before the first await, so
        of two triggers racing on the event loop only the first reaches the
        submission service. The loser gets whatever result exists so far.
        """
        if self._phase == SessionPhase.UNINITIALIZED:
            raise ValidationError("Attempt has not started")

        if self._submit_triggered:
            logger.info(f"Submission already {self._phase.value}, ignoring duplicate trigger")
            return self._submitted

        self._submit_triggered = True
        self._forced = forced
        self._timer.cancel()
        self._frozen = self._store.freeze()

        return await self._deliver()

    async def retry_submission(self) -> Optional[SubmittedAttempt]:
        """Manually re-send the preserved snapshot after a failed submission"""
        if self._phase == SessionPhase.SUBMITTED:
            return self._submitted
        if self._phase == SessionPhase.SUBMITTING:
            logger.info("Submission already in flight")
            return None
        if self._phase != SessionPhase.SUBMISSION_FAILED:
            raise ValidationError(f"Nothing to retry while {self._phase.value}")

        logger.info(f"Retrying submission for paper {self.definition.paper_id}")
        return await self._deliver()

    async def _deliver(self) -> SubmittedAttempt:
        self._phase = SessionPhase.SUBMITTING
        max_attempts = max(1, self.config.max_attempts)
        last_error: Optional[Exception] = None
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            self.delivery_attempts += 1
            try:
                submitted = await self.submission_service.submit_attempt(self._frozen, forced=self._forced)
            except NetworkError as e:
                last_error = e
                logger.warning(f"Submission attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts:
                    delay = self.config.backoff_seconds * self.config.backoff_factor ** (attempt - 1)
                    await self._sleep(delay)
                continue
            except ValidationError as e:
                last_error = e
                logger.error(f"Submission rejected by service: {e}")
                break
            except Exception as e:
                last_error = e
                logger.exception(f"Unexpected error from submission service: {e}")
                break

            self._submitted = submitted
            self._phase = SessionPhase.SUBMITTED
            self._last_error = None
            # Live state is no longer needed once the server has acknowledged it
            self._store.reset()
            logger.info(
                f"Submitted attempt {submitted.attempt_id} for paper {self.definition.paper_id}"
                f"{' (time up)' if self._forced else ''}"
            )
            return submitted

        self._phase = SessionPhase.SUBMISSION_FAILED
        self._last_error = last_error
        logger.error(f"Giving up on submission after {attempt} attempt(s): {last_error}")
        raise SubmissionFailed(
            f"Could not submit attempt after {attempt} attempt(s): {last_error}",
            snapshot=self._frozen,
            attempts=attempt,
            cause=last_error,
        ) from last_error
