"""EMGurus question sessions: practice, test and exam attempts plus the reviewed question bank."""
import sys
import time
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_supabase, local_progress_dir
from engine import (
    ALL_AREAS, COUNT_OPTIONS, DEFAULT_COUNT, DEFAULT_TIME_LIMIT_MINUTES, TIME_LIMIT_OPTIONS_MINUTES,
)
from assessment.errors import AuthRequired, InsufficientQuestions, LoadFailure, error_message
from assessment.exams import EXAM_LABEL_TO_ENUM, MODES, map_enum_to_label, safe_mode
from assessment.progress import QuestionWatch
from assessment.scoring import rank_topics
from assessment.service import build_service
from assessment.session import SessionState
from assessment.timer import format_clock

PAGES = ["Start", "Session", "Question Bank", "Attempts"]

st.set_page_config(page_title="EMGurus Exams", layout="wide")
st.sidebar.title("EMGurus Exams")

if "service" not in st.session_state:
    try:
        st.session_state["service"] = build_service(get_supabase(), local_progress_dir())
    except Exception as e:
        st.error(f"Could not connect. Check .env (SUPABASE_URL, SUPABASE_KEY). {error_message(e)}")
        st.stop()
service = st.session_state["service"]

# Identity is optional; attempts need it, the question bank falls back to this device
user_id = st.sidebar.text_input("Signed in as (user id)", key="user_id").strip() or None
if not user_id:
    st.sidebar.caption("Not signed in: question bank progress stays on this device.")

# The attempt id in the URL is the only resume path
attempt_param = st.query_params.get("attempt")
default_page = "Session" if attempt_param else st.query_params.get("page", "Start")
if default_page not in PAGES:
    default_page = "Start"
page = st.sidebar.radio("Navigate", PAGES, index=PAGES.index(default_page), label_visibility="collapsed")


@st.cache_data(ttl=300)
def load_topics(exam_label: str) -> list[str]:
    questions = service.repository.list_questions(exam_label)
    return sorted({q.topic for q in questions if q.topic})


def notice_and_redirect(err: LoadFailure, target: str = "Start"):
    st.error(error_message(err, "Could not load the session"))
    time.sleep(err.redirect_after)
    st.query_params.clear()
    st.query_params["page"] = target
    st.rerun()


def render_feedback(session, question):
    """Correct/incorrect marks and explanations once feedback is visible."""
    selected = session.selected_key(question.id)
    correct = session.correct_key(question.id)
    for opt in session.options(question.id):
        label = f"{opt.key}. {opt.text}"
        if opt.key == correct:
            st.success(f"✓ {label}")
        elif opt.key == selected:
            st.error(f"✗ {label} (your answer)")
        else:
            st.write(f"○ {label}")
        rationale = question.option_explanations[opt.orig_index] if question.option_explanations else None
        if rationale:
            st.caption(rationale)
    if question.explanation:
        st.info(question.explanation)


# ----- Start -----
if page == "Start":
    st.header("Start a session")
    mode = safe_mode(st.radio("Mode", MODES, horizontal=True, format_func=str.title))
    exam_label = st.selectbox("Exam", list(EXAM_LABEL_TO_ENUM))
    try:
        topics = load_topics(exam_label)
    except LoadFailure as e:
        st.warning(error_message(e))
        topics = []
    topic = st.selectbox("Topic", [ALL_AREAS] + topics)
    count = st.select_slider("Questions", options=list(COUNT_OPTIONS), value=DEFAULT_COUNT)
    time_limit_sec = None
    if mode != "practice":
        minutes = st.select_slider(
            "Time limit (minutes)", options=list(TIME_LIMIT_OPTIONS_MINUTES), value=DEFAULT_TIME_LIMIT_MINUTES,
        )
        time_limit_sec = minutes * 60

    if st.button("Start", type="primary", use_container_width=True):
        try:
            attempt_id = service.create_attempt(
                user_id, mode, exam_label, count=count, topic=topic, time_limit_sec=time_limit_sec,
            )
        except AuthRequired as e:
            st.warning(f"{e}. Enter your user id in the sidebar.")
        except InsufficientQuestions as e:
            st.warning(str(e))
        except LoadFailure as e:
            st.error(error_message(e, "Could not start the session"))
        else:
            st.query_params.clear()
            st.query_params["attempt"] = attempt_id
            st.rerun()

# ----- Session -----
elif page == "Session":
    if not attempt_param:
        st.info("No session open. Start one from the Start page or pick an attempt from history.")
        st.stop()
    try:
        session = service.session(attempt_param)
    except InsufficientQuestions as e:
        st.warning(str(e))
        st.stop()
    except LoadFailure as e:
        notice_and_redirect(e)

    attempt = session.attempt
    st.header(f"{attempt.mode.title()} · {map_enum_to_label(attempt.exam_type)}")
    if attempt.topic:
        st.caption(attempt.topic)
    if attempt.short and session.state != SessionState.COMPLETED:
        st.warning(
            f"Only {attempt.breakdown.get('selected')} of {attempt.breakdown.get('requested')} "
            "questions were available for this selection."
        )

    @st.fragment(run_every=1)
    def clock_panel():
        session.tick()
        if session.terminal:
            st.rerun()
        summary = session.summary()
        if session.timer.timed:
            st.metric("Time left", format_clock(summary["time_remaining_sec"]))
        else:
            st.metric("Elapsed", format_clock(summary["time_elapsed_sec"]))
        total = summary["total_questions"]
        st.progress(summary["answered"] / total if total else 0)
        st.caption(f"{summary['answered']}/{total} answered")

    @st.fragment(run_every=1)
    def save_panel():
        # Keeps retrying a finish write that failed
        session.tick()
        if session.writer and session.writer.pending:
            st.caption("Saving your results...")

    if session.state == SessionState.COMPLETED:
        result = session.result
        st.success("Session complete.")
        save_panel()
        col1, col2, col3 = st.columns(3)
        col1.metric("Score", f"{result.percentage}%")
        col2.metric("Correct", result.correct)
        col3.metric("Answered", f"{result.total} / {len(session.questions)}")
        if result.by_topic:
            st.subheader("By topic")
            ranked = rank_topics(result.by_topic)
            for name, stats in ranked["all_topics"].items():
                st.write(f"{name}: {stats['correct']}/{stats['total']} ({stats['accuracy_percent']:.0f}%)")
        with st.expander("Review answers"):
            for q in session.questions:
                st.markdown(f"**{session.questions.index(q) + 1}. {q.stem}**")
                render_feedback(session, q)
        if st.button("Start another session"):
            service.close_session(attempt.id)
            st.query_params.clear()
            st.rerun()
        st.stop()

    with st.sidebar:
        clock_panel()
        jump = st.number_input("Go to question", min_value=1, max_value=len(session.questions),
                               value=session.index + 1, step=1)
        if jump - 1 != session.index:
            session.jump_to(jump - 1)
            st.rerun()

    question = session.current
    st.subheader(f"Question {session.index + 1} of {len(session.questions)}")
    st.caption(question.source)
    st.write(question.stem)

    if session.feedback_visible(question.id):
        render_feedback(session, question)
    else:
        options = session.options(question.id)
        keys = [o.key for o in options]
        chosen = session.selected_key(question.id)
        choice = st.radio(
            "Choose one:",
            keys,
            format_func=lambda k: f"{k}. {next(o.text for o in options if o.key == k)}",
            index=keys.index(chosen) if chosen in keys else None,
            key=f"choice_{attempt.id}_{question.id}",
        )
        label = "Save answer" if not session.policy.immediate_feedback else "Submit answer"
        if st.button(label, type="primary", disabled=choice is None):
            service.record_answer(attempt.id, question.id, choice)
            st.rerun()

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("← Previous", disabled=session.navigator.is_first):
            session.go_prev()
            st.rerun()
    with col2:
        if st.button("Finish" if session.navigator.is_last else "Next →"):
            session.advance()
            st.rerun()
    with col3:
        if st.button("Finish now"):
            service.finish_attempt(attempt.id)
            st.rerun()

# ----- Question Bank -----
elif page == "Question Bank":
    st.header("Reviewed question bank")
    exam_label = st.selectbox("Exam", list(EXAM_LABEL_TO_ENUM), key="bank_exam")
    try:
        topics = load_topics(exam_label)
        topic = st.selectbox("Topic", [ALL_AREAS] + topics, key="bank_topic")
        questions = service.repository.list_questions(
            exam_label, topic=None if topic == ALL_AREAS else topic, limit=200,
        )
    except LoadFailure as e:
        st.error(error_message(e))
        st.stop()
    if not questions:
        st.info("No approved questions for this filter yet.")
        st.stop()

    ids = [q.id for q in questions]
    if st.session_state.get("bank_ids") != (ids, user_id):
        st.session_state["bank_ids"] = (ids, user_id)
        st.session_state["bank_review"] = service.start_review(ids, user_id=user_id)
    review = st.session_state["bank_review"]
    question = review.current

    # One watch per question on screen; closing flushes the seconds spent
    watch = st.session_state.get("bank_watch")
    if watch is None or watch.question_id != question.id or watch.user_id != user_id:
        if watch is not None:
            watch.close()
        watch = QuestionWatch(service.progress, user_id, question.id)
        watch.start()
        st.session_state["bank_watch"] = watch
    watch.tick()

    progress = service.get_or_create_progress(user_id, question.id, exam=question.exam)
    st.subheader(f"Question {review.index + 1} of {len(review.questions)}")
    st.caption(question.source)
    st.write(question.stem)

    if review.feedback_visible(question.id):
        render_feedback(review, question)
    else:
        options = review.options(question.id)
        keys = [o.key for o in options]
        choice = st.radio(
            "Choose one:", keys,
            format_func=lambda k: f"{k}. {next(o.text for o in options if o.key == k)}",
            index=None, key=f"bank_choice_{question.id}",
        )
        if st.button("Check answer", type="primary", disabled=choice is None):
            review.select(choice)
            review.submit()
            st.rerun()

    col1, col2 = st.columns(2)
    with col1:
        flag_label = "Unflag" if progress.is_flagged else "Flag for later"
        if st.button(flag_label):
            service.progress.toggle_flag(user_id, question.id)
            st.rerun()
        st.caption(f"Attempts: {progress.attempts} · Time on question: {format_clock(progress.time_spent_seconds)}")
    with col2:
        notes = st.text_area("Notes", value=progress.notes, key=f"notes_{question.id}")
        if notes != progress.notes and st.button("Save notes"):
            service.progress.set_notes(user_id, question.id, notes)
            st.rerun()

    col1, col2 = st.columns(2)
    with col1:
        if st.button("← Previous", disabled=review.navigator.is_first):
            review.go_prev()
            st.rerun()
    with col2:
        if st.button("Next →", disabled=review.navigator.is_last):
            review.go_next()
            st.rerun()

# ----- Attempts -----
elif page == "Attempts":
    st.header("Your attempts")
    if not user_id:
        st.info("Enter your user id in the sidebar to see your attempts.")
        st.stop()
    try:
        history = service.list_attempts(user_id, limit=25)
    except LoadFailure as e:
        st.error(error_message(e))
        st.stop()
    if not history:
        st.info("No attempts yet.")
    for a in history:
        started = a.started_at.strftime("%Y-%m-%d %H:%M") if a.started_at else "-"
        status = "finished" if a.finished else "in progress"
        score = f"{a.correct_count}/{a.total_attempted}" if a.total_attempted else "-"
        col1, col2 = st.columns([4, 1])
        col1.write(f"**{a.mode.title()}** · {map_enum_to_label(a.exam_type)} · {started} · {status} · {score}")
        if col2.button("Open", key=f"open_{a.id}"):
            st.query_params.clear()
            st.query_params["attempt"] = a.id
            st.rerun()
