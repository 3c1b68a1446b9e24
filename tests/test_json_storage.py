# FILE: tests/test_json_storage.py

import asyncio
import json

import pytest

from core.errors import NotFound, UnknownAttempt, ValidationError
from core.test_definition import TestDefinition
from engine.attempt_store import AttemptStore
from storage.json_storage import AttemptStorage, PaperStorage


@pytest.fixture
def papers(tmp_path):
    return PaperStorage(tmp_path / "papers")


@pytest.fixture
def attempts(tmp_path):
    return AttemptStorage(tmp_path / "attempts")


def frozen_snapshot(paper, answers):
    store = AttemptStore()
    store.initialize(paper)
    for qid, value in answers.items():
        store.set_answer(qid, value)
    store.tick(paper.duration_seconds - 12)
    return store.freeze()


def test_paper_save_and_load(papers, three_question_paper):
    path = papers.save_paper(three_question_paper)

    assert path.name == "paper-1.json"
    assert path.parent.name == "jee"
    assert papers.load_test_definition("jee", "paper-1") == three_question_paper


def test_missing_paper_is_not_found(papers):
    with pytest.raises(NotFound):
        papers.load_test_definition("jee", "nope")


def test_malformed_paper_is_validation_error(papers):
    path = papers.base_dir / "jee" / "broken.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValidationError):
        papers.load_test_definition("jee", "broken")


def test_list_papers_filters_by_exam_type(papers, three_question_paper, two_subject_paper):
    papers.save_paper(three_question_paper)
    papers.save_paper(two_subject_paper)

    everything = papers.list_papers()
    neet_only = papers.list_papers("neet")

    assert {p["paper_id"] for p in everything} == {"paper-1", "paper-2"}
    assert [p["paper_id"] for p in neet_only] == ["paper-2"]
    assert neet_only[0]["total_questions"] == 4


def test_legacy_minutes_field_is_accepted(papers):
    path = papers.base_dir / "fmge" / "old.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({
        "paper_id": "old",
        "exam_type": "fmge",
        "time": 90,
        "questions": [{
            "id": "1",
            "text": "Pick B",
            "options": ["first", "second"],
            "correct_answer": 1,
        }],
    }), encoding="utf-8")

    paper = papers.load_test_definition("fmge", "old")

    assert paper.duration_seconds == 5400
    assert paper.questions[0].options == {"A": "first", "B": "second"}
    assert paper.questions[0].correct_options == frozenset({"B"})


def test_submit_persists_and_fetches(attempts, three_question_paper):
    snapshot = frozen_snapshot(three_question_paper, {"Q1": "A", "Q3": "D"})

    submitted = asyncio.run(attempts.submit_attempt(snapshot, forced=True))
    fetched = asyncio.run(attempts.fetch_submitted_attempt(submitted.attempt_id))

    assert submitted.attempt_id.startswith("attempt_")
    assert fetched == submitted
    assert fetched.snapshot.elapsed_seconds == 12
    assert fetched.forced


def test_submit_rejects_live_snapshot(attempts, three_question_paper):
    store = AttemptStore()
    store.initialize(three_question_paper)

    with pytest.raises(ValidationError):
        asyncio.run(attempts.submit_attempt(store.snapshot()))


def test_unknown_attempt(attempts):
    with pytest.raises(UnknownAttempt):
        asyncio.run(attempts.fetch_submitted_attempt("attempt_missing"))


def test_list_attempts_by_paper(attempts, three_question_paper, two_subject_paper):
    asyncio.run(attempts.submit_attempt(frozen_snapshot(three_question_paper, {"Q1": "A"})))
    asyncio.run(attempts.submit_attempt(frozen_snapshot(two_subject_paper, {"P1": "A"})))
    asyncio.run(attempts.submit_attempt(frozen_snapshot(three_question_paper, {"Q2": "B"})))

    listed = attempts.list_attempts("paper-1")

    assert len(listed) == 2
    assert all(a["paper_id"] == "paper-1" for a in listed)
    assert listed[0]["submitted_at"] <= listed[1]["submitted_at"]
    assert len(attempts.list_attempts()) == 3


def test_paper_without_questions_is_rejected():
    with pytest.raises(ValidationError):
        TestDefinition(paper_id="empty", exam_type="jee", duration_seconds=60, questions=())


def test_saved_paper_without_questions_is_validation_error(papers):
    path = papers.base_dir / "jee" / "empty.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({
        "paper_id": "empty",
        "exam_type": "jee",
        "duration_seconds": 60,
        "questions": [],
    }), encoding="utf-8")

    with pytest.raises(ValidationError):
        papers.load_test_definition("jee", "empty")
