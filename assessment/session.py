"""
Question session state machine.

One implementation for every delivery mode; the ModePolicy decides whether
feedback is immediate, whether a time limit applies and whether answers may
change until the attempt is finished.

    LOADING -> ACTIVE -> COMPLETED
    LOADING -> COMPLETED              (no questions)
    ACTIVE  -> EXPIRED -> COMPLETED   (timer ran out)

Per question: ANSWERING until an answer is submitted, then REVEALED (modes
with immediate feedback). Exam mode keeps every question ANSWERING until the
attempt finishes.

Persistence never blocks a transition: writes go through AttemptWriter,
which queues failures and retries them on the next snapshot tick.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from engine import SNAPSHOT_INTERVAL_SEC
from assessment.attempts import Attempt, AttemptItem, AttemptStore, utcnow
from assessment.errors import LoadFailure, PersistenceFailure
from assessment.navigation import Navigator, resolve_key
from assessment.policy import ModePolicy
from assessment.questions import DisplayOption, Question, display_options, displayed_correct_key
from assessment.scoring import AttemptResult, is_correct
from assessment.timer import CountdownTimer

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    EXPIRED = "expired"
    COMPLETED = "completed"


class QuestionState(str, Enum):
    ANSWERING = "answering"
    REVEALED = "revealed"


@dataclass(frozen=True)
class AnswerOutcome:
    question_id: str
    selected_key: str
    correct_key: Optional[str]
    is_correct: Optional[bool]
    revealed: bool
    explanation: str = ""


class AttemptWriter:
    """
    Fire-and-forget writes for one attempt.

    Each write runs once immediately; a failed write is kept and retried on
    the next periodic snapshot, never synchronously. A permanent outage
    therefore drops progress silently (logged).
    """

    def __init__(self, store: AttemptStore, clock: Callable[[], float] = time.monotonic,
                 interval: float = SNAPSHOT_INTERVAL_SEC):
        self.store = store
        self._clock = clock
        self.interval = interval
        self._pending: List[Tuple[str, Callable[[], bool]]] = []
        self._last_snapshot: Optional[float] = None

    @property
    def pending(self) -> List[str]:
        return [name for name, _ in self._pending]

    def _run(self, name: str, op: Callable[[], bool]) -> bool:
        try:
            op()
        except PersistenceFailure as e:
            logger.warning(f"{e}; queued {name} for retry")
            return False
        return True

    def submit(self, name: str, op: Callable[[], bool]) -> bool:
        if self._pending:
            # Keep write order: later writes wait behind earlier failures
            self._pending.append((name, op))
            return False
        if self._run(name, op):
            return True
        self._pending.append((name, op))
        return False

    def retry_pending(self) -> bool:
        while self._pending:
            name, op = self._pending[0]
            if not self._run(name, op):
                return False
            self._pending.pop(0)
        return True

    def due(self) -> bool:
        return self._last_snapshot is None or self._clock() - self._last_snapshot >= self.interval

    def snapshot(self, op: Callable[[], bool], force: bool = False) -> bool:
        if not force and not self.due():
            return True
        self._last_snapshot = self._clock()
        self.retry_pending()
        return self._run("snapshot", op)

    def retry_due(self) -> bool:
        """Retry queued writes on the snapshot cadence, with no new snapshot."""
        if not self._pending or not self.due():
            return not self._pending
        self._last_snapshot = self._clock()
        return self.retry_pending()


class QuestionSession:
    def __init__(
        self,
        attempt: Attempt,
        policy: ModePolicy,
        writer: Optional[AttemptWriter] = None,
        clock: Callable[[], float] = time.monotonic,
        progress=None,
    ):
        self.attempt = attempt
        self.policy = policy
        self.writer = writer if policy.persists_attempt else None
        self.progress = progress
        self.state = SessionState.LOADING
        self.questions: List[Question] = []
        self.navigator = Navigator(0)
        self.result: Optional[AttemptResult] = None
        self.timer = CountdownTimer(
            attempt.time_limit_sec if policy.timed else 0,
            clock=clock,
            on_expire=self._expire,
            elapsed=attempt.duration_sec,
        )
        self._options: Dict[str, List[DisplayOption]] = {}
        self._pending: Dict[str, str] = {}
        self._answers: Dict[str, AttemptItem] = {}
        self._revealed: set = set()
        # Question ids whose items were loaded from the store
        self._stored: set = set()

    # ============= Lifecycle =============

    @property
    def terminal(self) -> bool:
        return self.state in (SessionState.EXPIRED, SessionState.COMPLETED)

    def activate(self, questions: List[Question], items: Optional[List[AttemptItem]] = None):
        """
        Loading -> Active. Questions arrive in any order and are re-ordered by
        the attempt's persisted id list; missing questions are a load failure.
        """
        if self.state != SessionState.LOADING:
            raise RuntimeError(f"Cannot activate a session in state {self.state.value}")
        by_id = {q.id: q for q in questions}
        missing = [qid for qid in self.attempt.question_ids if qid not in by_id]
        if missing:
            raise LoadFailure(f"{len(missing)} question(s) of attempt {self.attempt.id} could not be loaded")
        self.questions = [by_id[qid] for qid in self.attempt.question_ids]
        for q in self.questions:
            seed = f"{self.attempt.id}:{q.id}" if (self.policy.shuffle_options and self.attempt.id) else None
            self._options[q.id] = display_options(q, seed)

        for item in items or []:
            if item.question_id in by_id and item.question_id not in self._answers:
                self._answers[item.question_id] = item
                self._stored.add(item.question_id)
                if self.policy.immediate_feedback:
                    self._revealed.add(item.question_id)
        if self.policy.allow_change_before_finish:
            for qid, key in (self.attempt.breakdown.get("pending") or {}).items():
                if qid in by_id and qid not in self._answers:
                    self._pending[qid] = key
        self._sync_counters()

        first_open = next((i for i, q in enumerate(self.questions) if q.id not in self._answers), 0)
        self.navigator = Navigator(len(self.questions), first_open)

        if self.attempt.finished:
            self.state = SessionState.COMPLETED
            self.result = AttemptResult.from_items(self.items)
            logger.info(f"Attempt {self.attempt.id} already finished; opened read-only")
            return
        self.state = SessionState.ACTIVE
        logger.info(
            f"Session {self.attempt.id} active: mode={self.policy.mode}, "
            f"{len(self.questions)} questions, limit={self.timer.limit_sec}s"
        )
        self.timer.start()

    def complete_empty(self) -> AttemptResult:
        """Loading -> Completed when the selector found nothing."""
        if self.state != SessionState.LOADING:
            raise RuntimeError(f"Cannot complete-empty a session in state {self.state.value}")
        self.state = SessionState.COMPLETED
        self.result = AttemptResult(correct=0, total=0, percentage=0)
        return self.result

    def _expire(self):
        if self.state != SessionState.ACTIVE:
            return
        self.state = SessionState.EXPIRED
        logger.info(f"Session {self.attempt.id} expired with {len(self._answers)} answered")
        self.finish()

    def finish(self) -> AttemptResult:
        """Active/Expired -> Completed. Idempotent: a second call returns the first result."""
        if self.state == SessionState.COMPLETED:
            return self.result
        if self.state == SessionState.LOADING:
            return self.complete_empty()
        self.timer.stop()

        if self.policy.allow_change_before_finish:
            for qid, key in list(self._pending.items()):
                self._commit(qid, key)
            self._pending.clear()

        items = self.items
        self.result = AttemptResult.from_items(items)
        self._sync_counters()
        self.attempt.duration_sec = max(0, int(self.timer.elapsed))
        self.attempt.finished_at = utcnow()
        self.attempt.breakdown = {
            k: v for k, v in self.attempt.breakdown.items() if k != "pending"
        }
        self.attempt.breakdown["by_topic"] = self.result.by_topic
        self.attempt.check_counters()
        self.state = SessionState.COMPLETED

        if self.writer and self.attempt.id:
            new_items = [i for i in items if i.question_id not in self._stored]
            if self.policy.allow_change_before_finish and new_items:
                self.writer.submit("append items", lambda: self.writer.store.append_items(new_items))
            attempt = self.attempt
            self.writer.submit(
                "finish attempt",
                lambda: self.writer.store.finish_attempt(
                    attempt.id, attempt.total_attempted, attempt.correct_count,
                    attempt.duration_sec, attempt.breakdown,
                ),
            )
        logger.info(
            f"Session {self.attempt.id} completed: {self.result.correct}/{self.result.total} "
            f"({self.result.percentage}%)"
        )
        return self.result

    # ============= Timing & persistence =============

    def tick(self):
        """Called about once per second by the driver."""
        if self.state == SessionState.COMPLETED and self.writer:
            # Writes queued by finish() still land on the snapshot cadence
            self.writer.retry_due()
            return
        if self.state != SessionState.ACTIVE:
            return
        self.timer.tick()
        if self.state == SessionState.ACTIVE and self.writer and self.attempt.id:
            self.writer.snapshot(self._save_snapshot)

    def set_visible(self, visible: bool):
        self.timer.set_visible(visible)
        if not visible:
            self.flush()

    def page_hide(self):
        """Best-effort synchronous flush before the page goes away."""
        self.set_visible(False)

    def flush(self):
        if self.writer and self.attempt.id and self.state == SessionState.ACTIVE:
            self.writer.snapshot(self._save_snapshot, force=True)
        elif self.writer:
            self.writer.retry_pending()

    def _save_snapshot(self) -> bool:
        breakdown = None
        if self.policy.allow_change_before_finish:
            breakdown = {**self.attempt.breakdown, "pending": dict(self._pending)}
        return self.writer.store.save_snapshot(
            self.attempt.id, self.attempt.total_attempted, self.attempt.correct_count,
            int(self.timer.elapsed), breakdown=breakdown,
        )

    # ============= Questions & answers =============

    @property
    def index(self) -> int:
        return self.navigator.index

    @property
    def current(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.navigator.index]

    @property
    def items(self) -> List[AttemptItem]:
        return sorted(self._answers.values(), key=lambda i: i.position)

    def options(self, question_id: Optional[str] = None) -> List[DisplayOption]:
        qid = question_id or (self.current.id if self.current else None)
        return self._options.get(qid, [])

    def correct_key(self, question_id: str) -> str:
        question = self._question(question_id)
        return displayed_correct_key(question, self._options[question.id])

    def _question(self, question_id: str) -> Question:
        for q in self.questions:
            if q.id == question_id:
                return q
        raise KeyError(question_id)

    def question_state(self, question_id: Optional[str] = None) -> QuestionState:
        qid = question_id or self.current.id
        return QuestionState.REVEALED if qid in self._revealed else QuestionState.ANSWERING

    def feedback_visible(self, question_id: Optional[str] = None) -> bool:
        qid = question_id or self.current.id
        return qid in self._revealed or self.state == SessionState.COMPLETED

    def selected_key(self, question_id: Optional[str] = None) -> Optional[str]:
        qid = question_id or (self.current.id if self.current else None)
        if qid in self._answers:
            return self._answers[qid].selected_key
        return self._pending.get(qid)

    def select(self, key: str, question_id: Optional[str] = None) -> bool:
        """Choose an option. Re-selecting before reveal overwrites; after reveal it is a no-op."""
        if self.state != SessionState.ACTIVE:
            return False
        qid = question_id or self.current.id
        if qid not in self._options:
            logger.warning(f"Question {qid} is not part of attempt {self.attempt.id}")
            return False
        key = (key or "").strip().upper()
        if key not in {o.key for o in self._options[qid]}:
            return False
        if qid in self._revealed or qid in self._answers:
            return False
        self._pending[qid] = key
        return True

    def submit(self, question_id: Optional[str] = None) -> Optional[AnswerOutcome]:
        """
        Submit the pending selection. With immediate feedback the question is
        revealed and an attempt item appended; in exam mode the choice stays
        changeable until finish().
        """
        if self.state != SessionState.ACTIVE:
            return None
        qid = question_id or self.current.id
        key = self._pending.get(qid)
        if not key or qid in self._revealed:
            return None
        if not self.policy.immediate_feedback:
            return AnswerOutcome(qid, key, None, None, revealed=False)

        self._pending.pop(qid)
        item = self._commit(qid, key)
        self._revealed.add(qid)
        correct = is_correct(item.selected_key, item.correct_key)
        if self.writer and self.attempt.id:
            self.writer.submit("append item", lambda: self.writer.store.append_items([item]))
        if self.progress is not None:
            question = self._question(qid)
            self.progress.record_answer(self.attempt.user_id, qid, key, correct, exam=question.exam)
        logger.debug(f"Answer recorded: Q={qid[:8]}, selected={key}, correct={correct}")
        return AnswerOutcome(
            qid, key, item.correct_key, correct, revealed=True,
            explanation=self._question(qid).explanation,
        )

    reveal = submit

    def _commit(self, question_id: str, key: str) -> AttemptItem:
        question = self._question(question_id)
        item = AttemptItem(
            attempt_id=self.attempt.id,
            user_id=self.attempt.user_id,
            question_id=question_id,
            selected_key=key,
            correct_key=self.correct_key(question_id),
            topic=question.topic,
            position=self.questions.index(question) + 1,
        )
        self._answers[question_id] = item
        self._sync_counters()
        return item

    def _sync_counters(self):
        self.attempt.total_attempted = len(self._answers)
        self.attempt.correct_count = sum(
            1 for i in self._answers.values() if is_correct(i.selected_key, i.correct_key)
        )

    # ============= Navigation =============

    def go_next(self) -> int:
        return self.navigator.go_next()

    def go_prev(self) -> int:
        return self.navigator.go_prev()

    def jump_to(self, index: int) -> int:
        return self.navigator.jump_to(index)

    def advance(self) -> Optional[AttemptResult]:
        """'Next' on any question but the last; 'Finish' on the last."""
        if self.state != SessionState.ACTIVE:
            return None
        if self.navigator.is_last:
            return self.finish()
        self.navigator.go_next()
        return None

    def handle_key(self, key: str) -> bool:
        """Digit keys choose an option, arrows move. Ignored once terminal."""
        if self.terminal or self.state == SessionState.LOADING:
            return False
        binding = resolve_key(key)
        if binding is None:
            return False
        action, arg = binding
        if action == "select":
            return self.select(arg)
        if action == "prev":
            before = self.navigator.index
            return self.go_prev() != before
        before = self.navigator.index
        return self.go_next() != before

    def summary(self) -> Dict:
        """Real-time figures for the session header."""
        return {
            "attempt_id": self.attempt.id,
            "state": self.state.value,
            "current_question": self.navigator.index + 1 if self.questions else 0,
            "total_questions": len(self.questions),
            "answered": len(self._answers) + (len(self._pending) if self.policy.allow_change_before_finish else 0),
            "correct_count": self.attempt.correct_count,
            "time_elapsed_sec": int(self.timer.elapsed),
            "time_remaining_sec": self.timer.remaining,
        }
