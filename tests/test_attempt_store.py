# FILE: tests/test_attempt_store.py

import pytest

from core.errors import AlreadyInitialized, AttemptFrozen, ValidationError
from engine.attempt_store import (
    AttemptPhase,
    AttemptStore,
    NavigationAction,
    QuestionStatus,
)


@pytest.fixture
def store(three_question_paper):
    s = AttemptStore()
    s.initialize(three_question_paper)
    return s


def test_initialize_creates_fresh_attempt(store):
    snapshot = store.snapshot()

    assert snapshot.phase == AttemptPhase.IN_PROGRESS
    assert snapshot.remaining_seconds == 60
    assert snapshot.elapsed_seconds == 0
    assert dict(snapshot.answers) == {}


def test_initialize_twice_requires_reset(store, three_question_paper):
    with pytest.raises(AlreadyInitialized):
        store.initialize(three_question_paper)

    store.reset()
    store.initialize(three_question_paper)
    assert store.phase == AttemptPhase.IN_PROGRESS


def test_last_write_wins_per_question(store):
    for value in ["A", "B", None, "D", "C"]:
        store.set_answer("Q1", value)
    store.set_answer("Q2", "B")
    store.set_answer("Q1", "A")

    answers = store.snapshot().answers
    assert answers["Q1"].selected == "A"
    assert answers["Q2"].selected == "B"
    assert "Q3" not in answers


def test_set_answer_marks_visited(store):
    record = store.set_answer("Q2", "C")

    assert record.visited
    assert record.status == QuestionStatus.ANSWERED


def test_unknown_question_is_rejected_without_change(store):
    store.set_answer("Q1", "A")
    before = store.snapshot()

    with pytest.raises(ValidationError):
        store.set_answer("Q99", "A")
    with pytest.raises(ValidationError):
        store.toggle_flag("Q99")

    assert store.snapshot() == before


def test_unknown_option_is_rejected(store):
    with pytest.raises(ValidationError):
        store.set_answer("Q1", "Z")
    assert "Q1" not in store.snapshot().answers


def test_flag_toggles_and_combines_with_answer(store):
    store.toggle_flag("Q1")
    assert store.snapshot().answers["Q1"].status == QuestionStatus.MARKED_FOR_REVIEW

    store.set_answer("Q1", "B")
    assert store.snapshot().answers["Q1"].status == QuestionStatus.ANSWERED_AND_MARKED

    store.toggle_flag("Q1")
    assert store.snapshot().answers["Q1"].status == QuestionStatus.ANSWERED


def test_visited_without_answer(store):
    store.mark_visited("Q3")
    assert store.snapshot().answers["Q3"].status == QuestionStatus.NOT_ANSWERED


def test_tick_updates_remaining_within_bounds(store):
    store.tick(42)
    assert store.remaining_seconds == 42
    assert store.elapsed_seconds == 18

    with pytest.raises(ValidationError):
        store.tick(61)
    with pytest.raises(ValidationError):
        store.tick(-1)
    assert store.remaining_seconds == 42


def test_freeze_is_idempotent(store):
    store.set_answer("Q1", "A")

    first = store.freeze()
    second = store.freeze()

    assert first is second
    assert first == second
    assert first.phase == AttemptPhase.SUBMITTED


def test_mutations_after_freeze_fail_and_change_nothing(store):
    store.set_answer("Q1", "A")
    frozen = store.freeze()

    with pytest.raises(AttemptFrozen):
        store.set_answer("Q1", "B")
    with pytest.raises(AttemptFrozen):
        store.toggle_flag("Q2")
    with pytest.raises(AttemptFrozen):
        store.mark_visited("Q3")
    with pytest.raises(AttemptFrozen):
        store.visit("Q3")
    with pytest.raises(AttemptFrozen):
        store.tick(10)

    assert store.snapshot() == frozen
    assert store.snapshot().answers["Q1"].selected == "A"


def test_snapshot_is_not_a_live_reference(store):
    store.set_answer("Q1", "A")
    snapshot = store.snapshot()

    store.set_answer("Q1", "B")
    store.set_answer("Q2", "B")

    assert snapshot.answers["Q1"].selected == "A"
    assert "Q2" not in snapshot.answers
    with pytest.raises(TypeError):
        snapshot.answers["Q3"] = None


def test_mutating_before_initialize_is_rejected():
    store = AttemptStore()
    with pytest.raises(ValidationError):
        store.set_answer("Q1", "A")
    with pytest.raises(ValidationError):
        store.freeze()


def test_visit_charges_time_to_the_question_left(store):
    store.visit("Q1")
    store.tick(50)
    store.visit("Q2")
    store.tick(45)
    store.visit("Q1")
    store.tick(40)
    frozen = store.freeze()

    assert frozen.time_tracked
    assert frozen.answers["Q1"].time_spent == 15
    assert frozen.answers["Q2"].time_spent == 5
    assert frozen.current_question_id == "Q1"

    actions = [(e.question_id, e.action) for e in frozen.navigation]
    assert actions == [
        ("Q1", NavigationAction.VISIT),
        ("Q1", NavigationAction.LEAVE),
        ("Q2", NavigationAction.VISIT),
        ("Q2", NavigationAction.LEAVE),
        ("Q1", NavigationAction.VISIT),
        ("Q1", NavigationAction.LEAVE),
    ]


def test_answer_events_are_logged_with_elapsed_time(store):
    store.tick(55)
    store.set_answer("Q1", "A")
    store.clear_answer("Q1")
    store.toggle_flag("Q1")

    events = store.snapshot().navigation
    assert [e.action for e in events] == [
        NavigationAction.ANSWER,
        NavigationAction.CLEAR,
        NavigationAction.MARK,
    ]
    assert all(e.at_second == 5 for e in events)
    assert not store.snapshot().time_tracked


def test_snapshot_dict_round_trip_keeps_equality(store):
    from engine.attempt_store import AttemptSnapshot

    store.visit("Q2")
    store.set_answer("Q2", "D")
    store.tick(30)
    frozen = store.freeze()

    assert AttemptSnapshot.from_dict(frozen.to_dict()) == frozen
