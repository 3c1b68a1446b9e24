"""
HTTP client for a remote test service.

Submits frozen attempts to POST {base}/tests/{paper_id}/attempt and fetches
past ones from GET {base}/attempts/{attempt_id}. Responses may wrap their
payload in a "data" envelope.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from config.settings import API_CONFIG
from core.errors import NetworkError, UnknownAttempt, ValidationError
from core.test_definition import OPTION_KEYS
from engine.attempt_store import AttemptSnapshot
from storage.services import AttemptFetchService, SubmissionService, SubmittedAttempt

logger = logging.getLogger(__name__)


def build_submission_payload(snapshot: AttemptSnapshot, forced: bool = False) -> Dict[str, Any]:
    answers = []
    for record in snapshot.answers.values():
        index = None
        if record.selected is not None and len(record.selected) == 1 and record.selected in OPTION_KEYS:
            index = OPTION_KEYS.index(record.selected)
        answers.append({
            "questionId": record.question_id,
            "answerOptionIndex": index,
            "selected": record.selected,
            "timeSpent": record.time_spent,
        })

    return {
        "testId": snapshot.paper_id,
        "examType": snapshot.exam_type,
        "totalTimeTaken": snapshot.elapsed_seconds,
        "forced": forced,
        "answers": answers,
        "metadata": {
            "answeredQuestions": [r.question_id for r in snapshot.answers.values() if r.is_answered],
            "visitedQuestions": [r.question_id for r in snapshot.answers.values() if r.visited],
            "markedForReview": [r.question_id for r in snapshot.answers.values() if r.flagged],
        },
        "navigationHistory": [
            {"questionId": e.question_id, "action": e.action.value, "atSecond": e.at_second}
            for e in snapshot.navigation
        ],
        "snapshot": snapshot.to_dict(),
    }


def _unwrap(response: httpx.Response) -> Dict[str, Any]:
    body = response.json()
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body


class HttpAttemptService(SubmissionService, AttemptFetchService):
    """Talks to the remote test service with httpx"""

    def __init__(
        self,
        base_url: str = API_CONFIG.base_url,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = API_CONFIG.timeout_seconds,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self):
        await self._client.aclose()

    async def submit_attempt(self, snapshot: AttemptSnapshot, forced: bool = False) -> SubmittedAttempt:
        url = f"{self.base_url}/tests/{snapshot.paper_id}/attempt"
        try:
            response = await self._client.post(url, json=build_submission_payload(snapshot, forced))
        except httpx.TransportError as e:
            raise NetworkError(f"POST {url} failed: {e}") from e

        if response.status_code >= 500:
            raise NetworkError(f"POST {url} returned {response.status_code}")
        if response.status_code >= 400:
            raise ValidationError(f"POST {url} rejected with {response.status_code}: {response.text}")

        # A 2xx we cannot read is not retried: the server may already hold the attempt
        try:
            data = _unwrap(response)
            attempt_id = data.get("attempt_id") or data.get("attemptId") or data.get("_id")
            submitted_at = data.get("submitted_at") or data.get("endTime")
            submitted_at = datetime.fromisoformat(submitted_at) if submitted_at else datetime.now()
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Unreadable acknowledgement from POST {url}: {e}")
            raise ValidationError(f"POST {url} returned an unreadable acknowledgement: {e}") from e

        if not attempt_id:
            raise ValidationError(f"POST {url} returned no attempt id")

        logger.info(f"Remote service accepted attempt {attempt_id}")
        return SubmittedAttempt(
            attempt_id=str(attempt_id),
            submitted_at=submitted_at,
            snapshot=snapshot,
            forced=forced,
        )

    async def fetch_submitted_attempt(self, attempt_id: str) -> SubmittedAttempt:
        url = f"{self.base_url}/attempts/{attempt_id}"
        try:
            response = await self._client.get(url)
        except httpx.TransportError as e:
            raise NetworkError(f"GET {url} failed: {e}") from e

        if response.status_code == 404:
            raise UnknownAttempt(f"Attempt {attempt_id} not found")
        if response.status_code >= 400:
            raise NetworkError(f"GET {url} returned {response.status_code}")

        try:
            return SubmittedAttempt.from_dict(_unwrap(response))
        except (KeyError, TypeError, ValueError) as e:
            raise UnknownAttempt(f"Attempt {attempt_id} could not be decoded: {e}") from e
