# FILE: tests/conftest.py

import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path

# Keep settings from creating data directories inside the repository
os.environ.setdefault("EXAM_DATA_DIR", tempfile.mkdtemp(prefix="exam-data-"))

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from core.errors import NetworkError
from core.test_definition import MarkingScheme, Question, TestDefinition
from engine.scheduler import ManualScheduler
from storage.services import SubmissionService, SubmittedAttempt

PLUS4_MINUS1 = MarkingScheme(correct=4.0, incorrect=-1.0, unattempted=0.0)


def make_question(qid, correct, subject="Physics", marking=PLUS4_MINUS1):
    return Question(
        id=qid,
        text=f"Question {qid}",
        options={"A": "alpha", "B": "beta", "C": "gamma", "D": "delta"},
        correct_options=frozenset([correct]),
        subject=subject,
        marking=marking,
    )


class FakeSubmissionService(SubmissionService):
    """Records every call; raises NetworkError for the first `failures` calls"""

    def __init__(self, failures=0, error=None):
        self.failures = failures
        self.error = error or NetworkError("service unavailable")
        self.calls = []

    async def submit_attempt(self, snapshot, forced=False):
        self.calls.append(snapshot)
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return SubmittedAttempt(
            attempt_id=f"attempt-{len(self.calls)}",
            submitted_at=datetime(2024, 1, 1, 10, 0, 0),
            snapshot=snapshot,
            forced=forced,
        )


@pytest.fixture
def three_question_paper():
    """Q1=A, Q2=B, Q3=C, all +4/-1"""
    return TestDefinition(
        paper_id="paper-1",
        exam_type="jee",
        title="Sample Paper",
        duration_seconds=60,
        questions=(
            make_question("Q1", "A"),
            make_question("Q2", "B"),
            make_question("Q3", "C"),
        ),
    )


@pytest.fixture
def two_subject_paper():
    return TestDefinition(
        paper_id="paper-2",
        exam_type="neet",
        duration_seconds=120,
        questions=(
            make_question("P1", "A", subject="Physics"),
            make_question("P2", "B", subject="Physics"),
            make_question("C1", "C", subject="Chemistry"),
            make_question("C2", "D", subject="Chemistry"),
        ),
    )


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def service():
    return FakeSubmissionService()
