"""
Session service: the entry points callers use to start, resume, answer and
finish attempts, and to read/write per-question progress.

The durable attempt id is the only input needed to resume a session. The
in-memory session cache is an optimisation; losing it (page reload, new
process) just means the next call rebuilds the session from the stored row.
"""
import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from supabase import Client

from engine import ALL_AREAS, DEFAULT_COUNT, DEFAULT_TIME_LIMIT_MINUTES
from assessment.attempts import Attempt, AttemptStore, utcnow
from assessment.errors import AuthRequired, InsufficientQuestions
from assessment.exams import map_enum_to_label, map_label_to_enum
from assessment.policy import REVIEW, policy_for
from assessment.progress import (
    LOCAL_PROGRESS_FILE, LocalProgressStore, ProgressTracker, QuestionProgress,
    SupabaseProgressStore, device_id,
)
from assessment.repository import QuestionRepository
from assessment.selector import SelectionConfig, Selector
from assessment.session import AnswerOutcome, AttemptWriter, QuestionSession

logger = logging.getLogger(__name__)


class AssessmentService:
    def __init__(
        self,
        repository: QuestionRepository,
        attempts: AttemptStore,
        selector: Optional[Selector] = None,
        progress: Optional[ProgressTracker] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.attempts = attempts
        self.selector = selector or Selector(repository)
        self.progress = progress
        self.clock = clock
        self._sessions: Dict[str, QuestionSession] = {}

    # ============= Attempts =============

    def create_attempt(
        self,
        user_id: Optional[str],
        mode: str,
        exam_type: str,
        count: int = DEFAULT_COUNT,
        topic: Optional[str] = None,
        time_limit_sec: Optional[int] = None,
        difficulty: Optional[str] = None,
    ) -> str:
        """
        Select questions and create the attempt with its fixed question order.

        Raises AuthRequired without a user, InsufficientQuestions when every
        selector tier is empty (no attempt row is written in that case). A
        short selection is kept and flagged on the attempt (Attempt.short).
        """
        if not user_id:
            raise AuthRequired()
        policy = policy_for(mode)
        if not policy.persists_attempt:
            raise ValueError(f"Mode {mode!r} does not create attempts")
        if policy.timed:
            time_limit_sec = int(time_limit_sec or DEFAULT_TIME_LIMIT_MINUTES * 60)
        else:
            time_limit_sec = 0
        exam_enum = map_label_to_enum(exam_type)
        topic = None if topic in (None, "", ALL_AREAS) else topic

        selection = self.selector.select(SelectionConfig(exam_enum, count, topic=topic, difficulty=difficulty))
        attempt = Attempt(
            id=None,
            user_id=str(user_id),
            mode=policy.mode,
            exam_type=exam_enum,
            topic=topic,
            difficulty=difficulty,
            total_questions=count,
            question_ids=selection.question_ids,
            time_limit_sec=time_limit_sec,
            started_at=utcnow(),
            breakdown={
                "exam_label": map_enum_to_label(exam_enum),
                "selection_tier": selection.tier,
                "requested": count,
                "selected": len(selection.question_ids),
                "short": selection.short,
            },
        )
        created = self.attempts.create_attempt(attempt)
        return created.id

    def get_attempt(self, attempt_id: str) -> Attempt:
        return self.attempts.get_attempt(attempt_id)

    def list_attempts(self, user_id: str, limit: int = 10) -> List[Attempt]:
        return self.attempts.list_attempts(user_id, limit=limit)

    def open_session(self, attempt_id: str) -> QuestionSession:
        """
        Build a session from the stored attempt. Rows created without a
        question list get one selected and persisted here, before any
        question is shown; rows that have one are never re-selected.
        """
        attempt = self.attempts.get_attempt(attempt_id)
        policy = policy_for(attempt.mode)
        session = QuestionSession(
            attempt, policy, writer=AttemptWriter(self.attempts, clock=self.clock), clock=self.clock,
        )
        if not attempt.question_ids and not attempt.finished:
            config = SelectionConfig(
                attempt.exam_type, attempt.total_questions or DEFAULT_COUNT,
                topic=attempt.topic, difficulty=attempt.difficulty,
            )
            try:
                selection = self.selector.select(config)
            except InsufficientQuestions:
                session.complete_empty()
                session.writer.submit(
                    "finish attempt",
                    lambda: self.attempts.finish_attempt(attempt.id, 0, 0, 0, attempt.breakdown),
                )
                raise
            attempt.question_ids = self.attempts.save_question_ids(attempt.id, selection.question_ids)

        questions = self.repository.get_questions_by_ids(attempt.question_ids)
        items = self.attempts.list_items(attempt.id)
        session.activate(questions, items)
        self._sessions[attempt.id] = session
        return session

    def session(self, attempt_id: str) -> QuestionSession:
        cached = self._sessions.get(attempt_id)
        if cached is not None:
            return cached
        return self.open_session(attempt_id)

    def close_session(self, attempt_id: str):
        """Page unload: flush what we can and drop the in-memory session."""
        session = self._sessions.pop(attempt_id, None)
        if session is not None:
            session.page_hide()

    def record_answer(self, attempt_id: str, question_id: str, key: str) -> Optional[AnswerOutcome]:
        session = self.session(attempt_id)
        if not session.select(key, question_id):
            logger.info(f"Answer {key} for {question_id} not accepted in attempt {attempt_id}")
            return None
        return session.submit(question_id)

    def finish_attempt(self, attempt_id: str) -> Dict:
        return self.session(attempt_id).finish().as_dict()

    # ============= Review & progress =============

    def start_review(self, question_ids: List[str], user_id: Optional[str] = None) -> QuestionSession:
        """Untimed review of reviewed-bank questions; nothing is stored as an attempt."""
        attempt = Attempt(
            id=None, user_id=user_id, mode=REVIEW.mode, exam_type="OTHER",
            question_ids=[str(q) for q in question_ids], total_questions=len(question_ids),
        )
        session = QuestionSession(attempt, REVIEW, clock=self.clock, progress=self.progress)
        session.activate(self.repository.get_questions_by_ids(attempt.question_ids))
        return session

    def _tracker(self) -> ProgressTracker:
        if self.progress is None:
            raise RuntimeError("No progress tracker configured")
        return self.progress

    def get_or_create_progress(self, user_id: Optional[str], question_id: str, exam: str = "") -> QuestionProgress:
        return self._tracker().get_or_create(user_id, question_id, exam=exam)

    def update_progress(self, user_id: Optional[str], question_id: str, **changes) -> QuestionProgress:
        return self._tracker().update(user_id, question_id, **changes)


def build_service(client: Client, local_dir: Optional[Path] = None) -> AssessmentService:
    """Wire the Supabase-backed stores. local_dir holds anonymous device progress."""
    tracker = None
    if local_dir is not None:
        tracker = ProgressTracker(
            local=LocalProgressStore(Path(local_dir) / LOCAL_PROGRESS_FILE),
            device=device_id(local_dir),
            remote=SupabaseProgressStore(client),
        )
    return AssessmentService(QuestionRepository(client), AttemptStore(client), progress=tracker)
