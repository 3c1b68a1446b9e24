"""
Mock Test Engine - Streamlit UI
Test window with countdown and question palette, and the analysis window
"""

import asyncio
import sys
import time
from pathlib import Path

import streamlit as st

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import EXAM_CONFIG
from core.errors import EngineError, SubmissionFailed
from engine.analysis_engine import AnalysisEngine, incorrect_questions, weak_subjects
from engine.attempt_store import QuestionStatus
from engine.scheduler import ManualScheduler
from engine.session_controller import SessionController, SessionPhase
from storage.json_storage import AttemptStorage, PaperStorage

PALETTE_ICONS = {
    QuestionStatus.NOT_VISITED: "⬜",
    QuestionStatus.NOT_ANSWERED: "🟥",
    QuestionStatus.ANSWERED: "✅",
    QuestionStatus.MARKED_FOR_REVIEW: "🟪",
    QuestionStatus.ANSWERED_AND_MARKED: "☑️",
}


# Page config
st.set_page_config(
    page_title="Mock Test Engine",
    page_icon="📝",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .question-box {
        background: #f8f9fa;
        padding: 1.5rem;
        border-radius: 0.5rem;
        border-left: 4px solid #1f77b4;
        margin: 1rem 0;
    }
</style>
""", unsafe_allow_html=True)


def init_session_state():
    defaults = {
        "current_page": "home",
        "controller": None,
        "scheduler": None,
        "attempt_id": None,
        "confirm_submit": False,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def format_time(seconds: int) -> str:
    hours, rest = divmod(max(seconds, 0), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def render_sidebar():
    with st.sidebar:
        st.title("📝 Mock Tests")
        if st.button("🏠 Papers", use_container_width=True):
            leave_test()
            st.session_state.current_page = "home"
            st.rerun()
        if st.button("📊 Analysis", use_container_width=True):
            leave_test()
            st.session_state.current_page = "analysis"
            st.rerun()


def leave_test():
    controller = st.session_state.controller
    if controller is not None:
        controller.close()
    st.session_state.controller = None
    st.session_state.scheduler = None
    st.session_state.confirm_submit = False


def start_test(exam_type: str, paper_id: str):
    try:
        definition = PaperStorage().load_test_definition(exam_type, paper_id)
    except EngineError as e:
        st.error(f"❌ Cannot start {paper_id}: {e}")
        return

    # The virtual clock follows wall-clock time; every controller action syncs it
    scheduler = ManualScheduler(start=time.time(), clock=time.time)
    controller = SessionController(
        definition,
        AttemptStorage(),
        scheduler=scheduler,
        spawn=asyncio.run,
    )
    controller.start()

    st.session_state.scheduler = scheduler
    st.session_state.controller = controller
    st.session_state.current_page = "test"
    st.rerun()


def render_home():
    st.header("📋 Available Papers")

    papers = PaperStorage().list_papers()
    if not papers:
        st.info("No papers yet. Import one with `python main.py import-paper <pdf>`.")
        return

    for p in papers:
        col1, col2 = st.columns([4, 1])
        with col1:
            minutes = (p["duration_seconds"] or 0) // 60
            st.markdown(f"**{p['title'] or p['paper_id']}**  \n"
                        f"{p['exam_type']} · {p['total_questions']} questions · {minutes} min")
        with col2:
            if st.button("▶️ Start", key=f"start_{p['exam_type']}_{p['paper_id']}"):
                start_test(p["exam_type"], p["paper_id"])


@st.fragment(run_every=1)
def render_timer():
    scheduler = st.session_state.scheduler
    controller = st.session_state.controller
    if scheduler is None or controller is None:
        return

    scheduler.sync()
    view = controller.view()

    if view.phase != SessionPhase.IN_PROGRESS:
        st.rerun()

    left = view.remaining_seconds
    if left <= EXAM_CONFIG.critical_seconds:
        st.error(f"⏰ LAST MINUTES: {format_time(left)}")
    elif left <= EXAM_CONFIG.warning_seconds:
        st.warning(f"⏱ Time Left: {format_time(left)}")
    else:
        st.info(f"⏱ Time Left: {format_time(left)}")


def submit_test():
    controller = st.session_state.controller
    try:
        submitted = asyncio.run(controller.submit())
    except SubmissionFailed as e:
        st.error(f"❌ {e}")
        return

    if submitted:
        st.session_state.attempt_id = submitted.attempt_id
    st.session_state.confirm_submit = False
    st.rerun()


def render_submission_state(controller: SessionController):
    view = controller.view()

    if view.phase == SessionPhase.SUBMITTED:
        st.session_state.attempt_id = view.submitted.attempt_id
        st.success("✅ Test submitted successfully!")
        if st.button("📊 View Analysis", type="primary"):
            leave_test()
            st.session_state.current_page = "analysis"
            st.rerun()
        return

    if view.phase == SessionPhase.SUBMISSION_FAILED:
        st.error(f"❌ Submission failed: {view.last_error}")
        st.caption("Your answers are saved locally and will be sent unchanged.")
        if st.button("🔁 Retry Submission", type="primary"):
            try:
                submitted = asyncio.run(controller.retry_submission())
                if submitted:
                    st.session_state.attempt_id = submitted.attempt_id
            except SubmissionFailed as e:
                st.error(f"❌ {e}")
            st.rerun()
        return

    st.info("⏳ Submitting...")


def render_test():
    controller = st.session_state.controller
    scheduler = st.session_state.scheduler
    if controller is None:
        st.session_state.current_page = "home"
        st.rerun()

    scheduler.sync()
    if controller.phase != SessionPhase.IN_PROGRESS:
        render_submission_state(controller)
        return

    render_timer()

    view = controller.view()
    definition = controller.definition
    idx = view.current_index
    question = definition.questions[idx]
    record = view.snapshot.answers.get(question.id)

    col1, col2 = st.columns(2)
    with col1:
        st.markdown(f"### Question {idx + 1}/{view.total_questions}")
    with col2:
        st.markdown(f"### ✅ {view.answered_count}/{view.total_questions}")
    st.caption(f"{question.subject} · +{question.marking.correct:g} / {question.marking.incorrect:g}")

    st.markdown(f"""
        <div class="question-box">
            <strong>Q{idx + 1}.</strong> {question.text}
        </div>
    """, unsafe_allow_html=True)

    keys = list(question.options)
    current_answer = record.selected if record else None

    def save_answer():
        picked = st.session_state[f"q_{question.id}"]
        result = controller.select_answer(question.id, picked)
        if not result.ok:
            st.toast(f"⚠️ {result.error}")

    st.radio(
        "Select your answer:",
        options=keys,
        format_func=lambda k: f"{k}. {question.options[k]}",
        index=keys.index(current_answer) if current_answer in keys else None,
        key=f"q_{question.id}",
        on_change=save_answer,
    )

    st.markdown("---")

    col1, col2, col3, col4, col5 = st.columns(5)
    with col1:
        if st.button("⬅️ Previous", disabled=idx == 0):
            controller.previous_question()
            st.rerun()
    with col2:
        if st.button("➡️ Next", disabled=idx >= view.total_questions - 1):
            controller.next_question()
            st.rerun()
    with col3:
        if st.button("❌ Clear"):
            controller.clear_answer(question.id)
            st.session_state.pop(f"q_{question.id}", None)
            st.rerun()
    with col4:
        flagged = record.flagged if record else False
        if st.button("🏳️ Unmark" if flagged else "🚩 Mark for Review"):
            controller.flag(question.id)
            st.rerun()
    with col5:
        if st.button("📤 Submit Test", type="primary"):
            if view.unanswered_count > 0:
                st.session_state.confirm_submit = True
            else:
                submit_test()

    if st.session_state.confirm_submit:
        st.markdown("---")
        st.error(f"You have {view.unanswered_count} unanswered questions. Submit anyway?")
        c1, c2 = st.columns(2)
        with c1:
            if st.button("✅ Yes, Submit Now", type="primary"):
                submit_test()
        with c2:
            if st.button("❌ No, Continue Test"):
                st.session_state.confirm_submit = False
                st.rerun()

    render_palette(controller, view)


def render_palette(controller: SessionController, view):
    st.markdown("---")
    st.markdown("### 📋 Question Palette")

    counts = {}
    for _, status in view.palette:
        counts[status] = counts.get(status, 0) + 1
    st.caption("  |  ".join(
        f"{PALETTE_ICONS[s]} {s.value.replace('_', ' ')}: {counts.get(s, 0)}" for s in QuestionStatus
    ))

    buttons_per_row = 10
    for row_start in range(0, view.total_questions, buttons_per_row):
        row = view.palette[row_start:row_start + buttons_per_row]
        cols = st.columns(len(row))
        for offset, (question_id, status) in enumerate(row):
            i = row_start + offset
            label = f"👉 {i + 1}" if i == view.current_index else f"{PALETTE_ICONS[status]} {i + 1}"
            with cols[offset]:
                if st.button(label, key=f"nav_{question_id}"):
                    controller.navigate_to(i)
                    st.rerun()


def render_analysis():
    st.header("📊 Test Analysis")

    attempts = AttemptStorage()
    known = [a["attempt_id"] for a in reversed(attempts.list_attempts())]
    if not known:
        st.info("No submitted attempts yet.")
        return

    default = st.session_state.attempt_id if st.session_state.attempt_id in known else known[0]
    attempt_id = st.selectbox("Attempt", known, index=known.index(default))

    engine = AnalysisEngine(attempts, PaperStorage())
    try:
        report = asyncio.run(engine.analyze_attempt_id(attempt_id))
    except EngineError as e:
        st.error(f"❌ {e}")
        return

    overall = report.overall
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Score", f"{overall.score:g} / {overall.max_score:g}")
    c2.metric("Correct", overall.correct)
    c3.metric("Incorrect", overall.incorrect)
    c4.metric("Unattempted", overall.unattempted)

    c1, c2, c3 = st.columns(3)
    c1.metric("Accuracy", f"{overall.accuracy}%")
    c2.metric("Attempt Rate", f"{overall.attempt_rate}%")
    c3.metric("Time Taken", format_time(report.total_time_seconds))
    st.caption(f"Average time per question: {report.average_time_per_question}s")
    if report.forced:
        st.caption("⏰ Submitted automatically when time ran out")

    st.subheader("📚 Subject-wise Performance")
    st.dataframe([
        {
            "Subject": name,
            "Score": f"{s.score:g}/{s.max_score:g}",
            "Correct": s.correct,
            "Incorrect": s.incorrect,
            "Unattempted": s.unattempted,
            "Accuracy %": s.accuracy,
            "Time": format_time(s.time_spent) if s.time_spent is not None else "not tracked",
        }
        for name, s in report.subjects.items()
    ], use_container_width=True)

    if report.difficulties:
        st.subheader("🎯 Difficulty-wise Performance")
        st.dataframe([
            {
                "Difficulty": name,
                "Correct": d.correct,
                "Total": d.total,
                "Accuracy %": d.accuracy,
            }
            for name, d in report.difficulties.items()
        ], use_container_width=True)

    weak = weak_subjects(report)
    if weak:
        st.warning("Weak subjects: " + ", ".join(f"{name} ({acc}%)" for name, acc in weak))

    with st.expander(f"❌ Incorrect questions ({overall.incorrect})"):
        for q in incorrect_questions(report):
            st.markdown(f"- **{q.question_id}** ({q.subject}): you chose {q.selected}, "
                        f"correct {', '.join(q.correct_options)}")

    with st.expander("👣 Question visits"):
        st.dataframe([
            {
                "Question": q.question_id,
                "Visits": q.visits,
                "First visit": format_time(q.first_visit_at) if q.first_visit_at is not None else "-",
                "Last visit": format_time(q.last_visit_at) if q.last_visit_at is not None else "-",
            }
            for q in report.questions
        ], use_container_width=True)


def main():
    init_session_state()
    render_sidebar()

    page = st.session_state.current_page
    if page == "test":
        render_test()
    elif page == "analysis":
        render_analysis()
    else:
        render_home()


main()
