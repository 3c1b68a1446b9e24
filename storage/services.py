"""
Collaborator contracts consumed by the attempt engine.

The engine owns no wire format or storage layout; anything that can load a
paper, accept a frozen attempt, or fetch a past one can be plugged in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from core.test_definition import TestDefinition
from engine.attempt_store import AttemptSnapshot


@dataclass(frozen=True)
class SubmittedAttempt:
    """Server-acknowledged result of a submission. Never mutated."""
    attempt_id: str
    submitted_at: datetime
    snapshot: AttemptSnapshot
    forced: bool = False

    @property
    def paper_id(self) -> str:
        return self.snapshot.paper_id

    def to_dict(self) -> Dict:
        return {
            "attempt_id": self.attempt_id,
            "submitted_at": self.submitted_at.isoformat(),
            "forced": self.forced,
            "snapshot": self.snapshot.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "SubmittedAttempt":
        return cls(
            attempt_id=str(data["attempt_id"]),
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
            snapshot=AttemptSnapshot.from_dict(data["snapshot"]),
            forced=data.get("forced", False),
        )


class TestDefinitionLoader(ABC):
    """Loads papers; raises NotFound for unknown ones"""

    __test__ = False

    @abstractmethod
    def load_test_definition(self, exam_type: str, paper_id: str) -> TestDefinition:
        pass


class SubmissionService(ABC):
    """Accepts frozen snapshots; raises NetworkError or ValidationError"""

    @abstractmethod
    async def submit_attempt(self, snapshot: AttemptSnapshot, forced: bool = False) -> SubmittedAttempt:
        pass


class AttemptFetchService(ABC):
    """Resolves attempt identifiers; raises UnknownAttempt"""

    @abstractmethod
    async def fetch_submitted_attempt(self, attempt_id: str) -> SubmittedAttempt:
        pass
