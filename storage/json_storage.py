"""JSON Storage Module for papers and submitted attempts"""

import json
from pathlib import Path
from typing import List, Dict, Optional
from datetime import datetime
from uuid import uuid4
import logging

from config.settings import ATTEMPTS_DIR, PAPERS_DIR
from core.errors import NotFound, UnknownAttempt, ValidationError
from core.test_definition import TestDefinition
from engine.attempt_store import AttemptSnapshot
from storage.services import (
    AttemptFetchService,
    SubmissionService,
    SubmittedAttempt,
    TestDefinitionLoader,
)

logger = logging.getLogger(__name__)


class PaperStorage(TestDefinitionLoader):
    """Papers live at <base>/<exam_type>/<paper_id>.json"""

    def __init__(self, base_dir: Path = PAPERS_DIR):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, exam_type: str, paper_id: str) -> Path:
        return self.base_dir / exam_type / f"{paper_id}.json"

    def save_paper(self, definition: TestDefinition) -> Path:
        path = self._path(definition.exam_type, definition.paper_id)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": "1.0",
            "saved_at": datetime.now().isoformat(),
            **definition.to_dict(),
        }
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info(f"Saved paper {definition.paper_id} ({definition.total_questions} questions) to {path}")
        return path

    def load_test_definition(self, exam_type: str, paper_id: str) -> TestDefinition:
        path = self._path(exam_type, paper_id)
        if not path.exists():
            logger.warning(f"Paper not found: {path}")
            raise NotFound(f"No paper {paper_id} for exam type {exam_type}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return TestDefinition.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to load paper {path}: {e}")
            raise ValidationError(f"Paper {paper_id} is malformed: {e}") from e

    def list_papers(self, exam_type: Optional[str] = None) -> List[Dict]:
        pattern = f"{exam_type}/*.json" if exam_type else "*/*.json"
        papers = []

        for filepath in sorted(self.base_dir.glob(pattern)):
            try:
                with open(filepath, encoding='utf-8') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping unreadable paper {filepath}: {e}")
                continue

            papers.append({
                "paper_id": data["paper_id"],
                "exam_type": data.get("exam_type", filepath.parent.name),
                "title": data.get("title", ""),
                "total_questions": len(data.get("questions", [])),
                "duration_seconds": data.get("duration_seconds"),
            })

        return papers


class AttemptStorage(SubmissionService, AttemptFetchService):
    """
    Handles persistence of submitted attempts.
    Acts as both the submission service and the attempt fetch service
    when the engine runs without a remote backend.
    """

    def __init__(self, base_dir: Path = ATTEMPTS_DIR):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, attempt_id: str) -> Path:
        return self.base_dir / f"{attempt_id}.json"

    def _generate_attempt_id(self) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"attempt_{timestamp}_{uuid4().hex[:8]}"

    async def submit_attempt(self, snapshot: AttemptSnapshot, forced: bool = False) -> SubmittedAttempt:
        if not snapshot.is_frozen:
            raise ValidationError("Only frozen attempts can be submitted")

        attempt = SubmittedAttempt(
            attempt_id=self._generate_attempt_id(),
            submitted_at=datetime.now(),
            snapshot=snapshot,
            forced=forced,
        )
        self.save_attempt(attempt)
        return attempt

    def save_attempt(self, attempt: SubmittedAttempt):
        path = self._path(attempt.attempt_id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(attempt.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info(f"Saved attempt {attempt.attempt_id} for paper {attempt.paper_id}")

    async def fetch_submitted_attempt(self, attempt_id: str) -> SubmittedAttempt:
        return self.load_attempt(attempt_id)

    def load_attempt(self, attempt_id: str) -> SubmittedAttempt:
        path = self._path(attempt_id)
        if not path.exists():
            raise UnknownAttempt(f"Attempt {attempt_id} not found")

        try:
            with open(path, "r", encoding="utf-8") as f:
                return SubmittedAttempt.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to load attempt {path}: {e}")
            raise UnknownAttempt(f"Attempt {attempt_id} is unreadable: {e}") from e

    def list_attempts(self, paper_id: Optional[str] = None) -> List[Dict]:
        """Attempt summaries, oldest first"""
        attempts = []

        for filepath in self.base_dir.glob("*.json"):
            try:
                with open(filepath, encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping unreadable attempt {filepath}: {e}")
                continue

            snapshot = data.get("snapshot", {})
            if paper_id and snapshot.get("paper_id") != paper_id:
                continue

            attempts.append({
                "attempt_id": data["attempt_id"],
                "paper_id": snapshot.get("paper_id"),
                "exam_type": snapshot.get("exam_type"),
                "submitted_at": data["submitted_at"],
                "forced": data.get("forced", False),
            })

        return sorted(attempts, key=lambda x: x["submitted_at"])
