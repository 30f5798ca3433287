"""
Attempt persistence: exam_attempts and exam_attempt_items.

Progress writes raise PersistenceFailure so the session's writer can queue
and retry them; reads that a session cannot do without raise LoadFailure.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from supabase import Client

from assessment.errors import AttemptNotFound, LoadFailure, PersistenceFailure

logger = logging.getLogger(__name__)

ATTEMPTS_TABLE = "exam_attempts"
ITEMS_TABLE = "exam_attempt_items"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable timestamp {value!r}")
        return None


@dataclass
class AttemptItem:
    attempt_id: Optional[str]
    user_id: Optional[str]
    question_id: str
    selected_key: str
    correct_key: str
    topic: Optional[str]
    position: int

    def to_row(self) -> Dict:
        return {
            "attempt_id": self.attempt_id,
            "user_id": self.user_id,
            "question_id": self.question_id,
            "selected_key": self.selected_key,
            "correct_key": self.correct_key,
            "topic": self.topic,
            "position": self.position,
        }

    @classmethod
    def from_row(cls, row: Dict) -> "AttemptItem":
        return cls(
            attempt_id=row.get("attempt_id"),
            user_id=row.get("user_id"),
            question_id=str(row["question_id"]),
            selected_key=row.get("selected_key") or "",
            correct_key=row.get("correct_key") or "",
            topic=row.get("topic"),
            position=int(row.get("position") or 0),
        )


@dataclass
class Attempt:
    id: Optional[str]
    user_id: Optional[str]
    mode: str
    exam_type: str
    topic: Optional[str] = None
    difficulty: Optional[str] = None
    total_questions: int = 0
    question_ids: List[str] = field(default_factory=list)
    time_limit_sec: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    total_attempted: int = 0
    correct_count: int = 0
    duration_sec: int = 0
    breakdown: Dict = field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    @property
    def timed(self) -> bool:
        return self.time_limit_sec > 0

    @property
    def short(self) -> bool:
        """Fewer questions were available than the learner asked for."""
        return bool(self.breakdown.get("short"))

    def check_counters(self):
        """0 <= correct_count <= total_attempted <= len(question_ids); duration never negative."""
        if not 0 <= self.correct_count <= self.total_attempted <= len(self.question_ids):
            raise ValueError(
                f"Attempt {self.id}: counters out of range "
                f"(correct={self.correct_count}, attempted={self.total_attempted}, questions={len(self.question_ids)})"
            )
        if self.duration_sec < 0:
            raise ValueError(f"Attempt {self.id}: negative duration")

    def to_row(self) -> Dict:
        return {
            "user_id": self.user_id,
            "mode": self.mode,
            "source": "reviewed",
            "total_questions": self.total_questions,
            "question_ids": list(self.question_ids),
            "time_limit_sec": self.time_limit_sec or None,
            "started_at": (self.started_at or utcnow()).isoformat(),
            "total_attempted": self.total_attempted,
            "correct_count": self.correct_count,
            "duration_sec": self.duration_sec,
            "breakdown": {
                **self.breakdown,
                "exam_type": self.exam_type,
                "topic": self.topic,
                "difficulty": self.difficulty,
            },
        }

    @classmethod
    def from_row(cls, row: Dict) -> "Attempt":
        config = row.get("breakdown") or {}
        return cls(
            id=str(row["id"]),
            user_id=row.get("user_id"),
            mode=row.get("mode") or "practice",
            exam_type=config.get("exam_type") or "OTHER",
            topic=config.get("topic"),
            difficulty=config.get("difficulty"),
            total_questions=int(row.get("total_questions") or 0),
            question_ids=[str(q) for q in (row.get("question_ids") or [])],
            time_limit_sec=int(row.get("time_limit_sec") or 0),
            started_at=parse_ts(row.get("started_at")),
            finished_at=parse_ts(row.get("finished_at")),
            total_attempted=int(row.get("total_attempted") or 0),
            correct_count=int(row.get("correct_count") or 0),
            duration_sec=int(row.get("duration_sec") or 0),
            breakdown=config,
        )


class AttemptStore:
    """Supabase CRUD for attempts and their answer items."""

    def __init__(self, client: Client):
        self.client = client

    # ============= Attempts =============

    def create_attempt(self, attempt: Attempt) -> Attempt:
        try:
            response = self.client.table(ATTEMPTS_TABLE).insert(attempt.to_row()).execute()
        except Exception as e:
            logger.error(f"Error creating attempt: {e}")
            raise LoadFailure("Could not create attempt") from e
        if not response.data:
            raise LoadFailure("Attempt insert returned no row")
        created = Attempt.from_row(response.data[0])
        logger.info(f"Created {created.mode} attempt {created.id} for user {created.user_id}")
        return created

    def get_attempt(self, attempt_id: str) -> Attempt:
        try:
            response = self.client.table(ATTEMPTS_TABLE).select("*").eq("id", str(attempt_id)).execute()
        except Exception as e:
            logger.error(f"Error fetching attempt {attempt_id}: {e}")
            raise LoadFailure(f"Could not load attempt {attempt_id}") from e
        if not response.data:
            raise AttemptNotFound(str(attempt_id))
        return Attempt.from_row(response.data[0])

    def save_question_ids(self, attempt_id: str, question_ids: List[str]) -> List[str]:
        """
        Persist the selected order once. If the attempt already has a list,
        that list wins and is returned unchanged.
        """
        current = self.get_attempt(attempt_id)
        if current.question_ids:
            logger.info(f"Attempt {attempt_id} already has {len(current.question_ids)} questions; keeping them")
            return current.question_ids
        try:
            self.client.table(ATTEMPTS_TABLE).update({"question_ids": list(question_ids)}).eq("id", str(attempt_id)).execute()
        except Exception as e:
            logger.error(f"Error saving question ids for {attempt_id}: {e}")
            raise LoadFailure("Could not save the question list") from e
        return list(question_ids)

    def save_snapshot(
        self,
        attempt_id: str,
        total_attempted: int,
        correct_count: int,
        duration_sec: int,
        breakdown: Optional[Dict] = None,
    ) -> bool:
        """Periodic progress snapshot. Never touches a finished attempt."""
        update_data = {
            "total_attempted": total_attempted,
            "correct_count": correct_count,
            "duration_sec": max(0, int(duration_sec)),
        }
        if breakdown is not None:
            update_data["breakdown"] = breakdown
        try:
            (
                self.client.table(ATTEMPTS_TABLE)
                .update(update_data)
                .eq("id", str(attempt_id))
                .is_("finished_at", "null")
                .execute()
            )
            return True
        except Exception as e:
            logger.error(f"Error saving snapshot for {attempt_id}: {e}")
            raise PersistenceFailure("snapshot", e) from e

    def finish_attempt(
        self,
        attempt_id: str,
        total_attempted: int,
        correct_count: int,
        duration_sec: int,
        breakdown: Dict,
    ) -> bool:
        """
        Finalize once. The update only matches while finished_at is null, so a
        second finish leaves the stored aggregates alone.
        """
        try:
            response = (
                self.client.table(ATTEMPTS_TABLE)
                .update({
                    "finished_at": utcnow().isoformat(),
                    "total_attempted": total_attempted,
                    "correct_count": correct_count,
                    "duration_sec": max(0, int(duration_sec)),
                    "breakdown": breakdown,
                })
                .eq("id", str(attempt_id))
                .is_("finished_at", "null")
                .execute()
            )
            if not response.data:
                logger.info(f"Attempt {attempt_id} was already finished")
            return True
        except Exception as e:
            logger.error(f"Error finishing attempt {attempt_id}: {e}")
            raise PersistenceFailure("finish attempt", e) from e

    def list_attempts(self, user_id: str, limit: int = 10) -> List[Attempt]:
        """User's attempt history, newest first."""
        try:
            response = (
                self.client.table(ATTEMPTS_TABLE)
                .select("*")
                .eq("user_id", str(user_id))
                .order("started_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching attempt history: {e}")
            raise LoadFailure("Could not load attempt history") from e
        return [Attempt.from_row(r) for r in response.data or []]

    # ============= Items =============

    def append_items(self, items: List[AttemptItem]) -> bool:
        if not items:
            return True
        try:
            self.client.table(ITEMS_TABLE).insert([i.to_row() for i in items]).execute()
            logger.debug(f"Appended {len(items)} attempt items")
            return True
        except Exception as e:
            logger.error(f"Error saving attempt items: {e}")
            raise PersistenceFailure("append items", e) from e

    def list_items(self, attempt_id: str) -> List[AttemptItem]:
        try:
            response = (
                self.client.table(ITEMS_TABLE)
                .select("*")
                .eq("attempt_id", str(attempt_id))
                .order("position")
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching items for {attempt_id}: {e}")
            raise LoadFailure(f"Could not load answers for attempt {attempt_id}") from e
        return [AttemptItem.from_row(r) for r in response.data or []]
