"""
Per-question progress (user_question_sessions).

Engagement with a single question outside any timed attempt: attempts,
last answer, flag, notes, time on screen. Signed-in users are stored
remotely; anonymous use falls back to a JSON file on this device. The store
is picked per call from the presence of a user id. Local progress is not
merged into the remote store on sign-in; whether it should be imported,
overwritten or ignored is still undecided.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Callable, Dict, Optional
from uuid import uuid4

from supabase import Client

from engine import SNAPSHOT_INTERVAL_SEC
from assessment.attempts import parse_ts, utcnow
from assessment.errors import LoadFailure
from assessment.timer import CountdownTimer

logger = logging.getLogger(__name__)

PROGRESS_TABLE = "user_question_sessions"
DEVICE_ID_FILE = "device_id"
LOCAL_PROGRESS_FILE = "question_progress.json"


@dataclass
class QuestionProgress:
    owner_id: str
    question_id: str
    exam: str = ""
    attempts: int = 0
    last_selected: Optional[str] = None
    is_correct: bool = False
    is_flagged: bool = False
    notes: str = ""
    time_spent_seconds: int = 0
    started_at: Optional[str] = None
    last_action_at: Optional[str] = None

    def to_row(self) -> Dict:
        row = asdict(self)
        row["user_id"] = row.pop("owner_id")
        return row

    @classmethod
    def from_row(cls, row: Dict) -> "QuestionProgress":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in known}
        data["owner_id"] = str(row.get("user_id") or row.get("owner_id"))
        data["question_id"] = str(row["question_id"])
        for ts in ("started_at", "last_action_at"):
            parsed = parse_ts(data.get(ts))
            data[ts] = parsed.isoformat() if parsed else None
        data["attempts"] = int(data.get("attempts") or 0)
        data["time_spent_seconds"] = int(data.get("time_spent_seconds") or 0)
        data["notes"] = data.get("notes") or ""
        return cls(**data)


class ProgressStore(ABC):
    """Backing store for per-question progress."""

    @abstractmethod
    def get(self, owner_id: str, question_id: str) -> Optional[QuestionProgress]:
        pass

    @abstractmethod
    def save(self, progress: QuestionProgress) -> bool:
        pass


class SupabaseProgressStore(ProgressStore):
    """Durable store for signed-in users."""

    def __init__(self, client: Client):
        self.client = client

    def get(self, owner_id: str, question_id: str) -> Optional[QuestionProgress]:
        try:
            response = (
                self.client.table(PROGRESS_TABLE)
                .select("*")
                .match({"user_id": str(owner_id), "question_id": str(question_id)})
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching progress for {question_id}: {e}")
            raise LoadFailure("Could not load question progress") from e
        return QuestionProgress.from_row(response.data[0]) if response.data else None

    def save(self, progress: QuestionProgress) -> bool:
        try:
            self.client.table(PROGRESS_TABLE).upsert(progress.to_row(), on_conflict="user_id,question_id").execute()
            return True
        except Exception as e:
            logger.error(f"Error saving progress for {progress.question_id}: {e}")
            return False


class LocalProgressStore(ProgressStore):
    """Ephemeral per-device store: one JSON file keyed by owner and question."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, Dict]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Local progress file unreadable, starting fresh: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _key(owner_id: str, question_id: str) -> str:
        return f"{owner_id}:{question_id}"

    def get(self, owner_id: str, question_id: str) -> Optional[QuestionProgress]:
        row = self._load().get(self._key(owner_id, question_id))
        return QuestionProgress.from_row(row) if row else None

    def save(self, progress: QuestionProgress) -> bool:
        data = self._load()
        data[self._key(progress.owner_id, progress.question_id)] = progress.to_row()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            tmp.replace(self.path)
            return True
        except OSError as e:
            logger.error(f"Error writing local progress: {e}")
            return False


def device_id(directory: Path) -> str:
    """Stable anonymous identifier for this device, created on first use."""
    path = Path(directory) / DEVICE_ID_FILE
    if path.exists():
        value = path.read_text(encoding="utf-8").strip()
        if value:
            return value
    value = f"device-{uuid4()}"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(value, encoding="utf-8")
    return value


EDITABLE_FIELDS = ("exam", "last_selected", "is_correct", "is_flagged", "notes")


class ProgressTracker:
    """
    Write operations for per-question progress.

    Every write re-reads the record, applies one change and saves it, so
    repeating a call applies it once more, never twice. attempts only moves
    in record_answer.
    """

    def __init__(
        self,
        local: ProgressStore,
        device: str,
        remote: Optional[ProgressStore] = None,
        now: Callable = utcnow,
    ):
        self.local = local
        self.remote = remote
        self.device = device
        self._now = now

    def _route(self, user_id: Optional[str]):
        if user_id and self.remote is not None:
            return self.remote, str(user_id)
        if user_id:
            logger.warning("No remote progress store configured; keeping signed-in progress on this device")
        return self.local, self.device

    def get_or_create(self, user_id: Optional[str], question_id: str, exam: str = "") -> QuestionProgress:
        store, owner = self._route(user_id)
        progress = store.get(owner, question_id)
        if progress is None:
            now = self._now().isoformat()
            progress = QuestionProgress(owner_id=owner, question_id=str(question_id), exam=exam,
                                        started_at=now, last_action_at=now)
            store.save(progress)
            logger.debug(f"Created progress for {owner[:8]}/{question_id}")
        return progress

    def _apply(self, user_id: Optional[str], question_id: str, change: Callable[[QuestionProgress], None],
               exam: str = "") -> QuestionProgress:
        store, _ = self._route(user_id)
        progress = self.get_or_create(user_id, question_id, exam=exam)
        change(progress)
        progress.last_action_at = self._now().isoformat()
        if not store.save(progress):
            logger.warning(f"Progress write for {question_id} dropped")
        return progress

    def record_answer(self, user_id: Optional[str], question_id: str, selected_key: str,
                      is_correct: bool, exam: str = "") -> QuestionProgress:
        def change(p: QuestionProgress):
            p.attempts += 1
            p.last_selected = selected_key
            p.is_correct = bool(is_correct)
            if exam and not p.exam:
                p.exam = exam
        return self._apply(user_id, question_id, change, exam=exam)

    def toggle_flag(self, user_id: Optional[str], question_id: str) -> QuestionProgress:
        def change(p: QuestionProgress):
            p.is_flagged = not p.is_flagged
        return self._apply(user_id, question_id, change)

    def set_notes(self, user_id: Optional[str], question_id: str, notes: str) -> QuestionProgress:
        def change(p: QuestionProgress):
            p.notes = notes or ""
        return self._apply(user_id, question_id, change)

    def accrue_time(self, user_id: Optional[str], question_id: str, seconds: float) -> QuestionProgress:
        whole = int(seconds)
        if whole <= 0:
            return self.get_or_create(user_id, question_id)

        def change(p: QuestionProgress):
            p.time_spent_seconds += whole
        return self._apply(user_id, question_id, change)

    def update(self, user_id: Optional[str], question_id: str, **changes) -> QuestionProgress:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update {sorted(unknown)}; use record_answer/accrue_time for counters")

        def change(p: QuestionProgress):
            for key, value in changes.items():
                setattr(p, key, value)
        return self._apply(user_id, question_id, change)


class QuestionWatch:
    """
    Time-on-screen for one question. Counts only visible time and hands it to
    the tracker in whole seconds every SNAPSHOT_INTERVAL_SEC and on hide/close.
    """

    def __init__(self, tracker: ProgressTracker, user_id: Optional[str], question_id: str,
                 clock: Callable[[], float] = time.monotonic, interval: float = SNAPSHOT_INTERVAL_SEC):
        self.tracker = tracker
        self.user_id = user_id
        self.question_id = question_id
        self.interval = interval
        self.timer = CountdownTimer(0, clock=clock)
        self._flushed = 0

    def start(self):
        self.tracker.get_or_create(self.user_id, self.question_id)
        self.timer.start()

    def tick(self):
        self.timer.tick()
        if self.timer.elapsed - self._flushed >= self.interval:
            self.flush()

    def set_visible(self, visible: bool):
        self.timer.set_visible(visible)
        if not visible:
            self.flush()

    def flush(self) -> int:
        whole = int(self.timer.elapsed) - self._flushed
        if whole > 0:
            self.tracker.accrue_time(self.user_id, self.question_id, whole)
            self._flushed += whole
        return whole

    def close(self) -> int:
        flushed = self.flush()
        self.timer.stop()
        return flushed
