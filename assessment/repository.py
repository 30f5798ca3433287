"""
Read-only client for the reviewed question bank (reviewed_exam_questions).
"""
import logging
from typing import Dict, Iterable, List, Optional

from supabase import Client

from assessment.errors import LoadFailure
from assessment.exams import EXAM_ENUMS, map_enum_to_label
from assessment.questions import Question

logger = logging.getLogger(__name__)

QUESTIONS_TABLE = "reviewed_exam_questions"
QUESTION_COLUMNS = (
    "id, stem, options, answer_key, correct_index, explanation, exam, topic, "
    "subtopic, difficulty, status"
)


def exam_label(exam_type: Optional[str]) -> Optional[str]:
    """The bank filters on the human label; attempts store the enum."""
    if not exam_type:
        return None
    if exam_type in EXAM_ENUMS:
        return map_enum_to_label(exam_type)
    return exam_type


class QuestionRepository:
    """Wrapper around the Supabase client for question-bank reads."""

    def __init__(self, client: Client):
        self.client = client

    def _filtered(self, columns: str, exam_type: Optional[str], topic: Optional[str],
                  difficulty: Optional[str], status: Optional[str]):
        query = self.client.table(QUESTIONS_TABLE).select(columns)
        if status:
            query = query.eq("status", status)
        label = exam_label(exam_type)
        if label:
            query = query.eq("exam", label)
        if topic:
            query = query.eq("topic", topic)
        if difficulty:
            query = query.eq("difficulty", difficulty)
        return query

    def _run(self, query, what: str) -> List[Dict]:
        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error fetching {what}: {e}")
            raise LoadFailure(f"Could not load {what}") from e
        return response.data or []

    def list_questions(
        self,
        exam_type: Optional[str],
        topic: Optional[str] = None,
        difficulty: Optional[str] = None,
        status: Optional[str] = "approved",
        limit: Optional[int] = None,
    ) -> List[Question]:
        query = self._filtered(QUESTION_COLUMNS, exam_type, topic, difficulty, status)
        if limit:
            query = query.limit(limit)
        return [Question.from_row(row) for row in self._run(query, "questions")]

    def list_question_ids(
        self,
        exam_type: Optional[str],
        topic: Optional[str] = None,
        difficulty: Optional[str] = None,
        status: Optional[str] = "approved",
    ) -> List[str]:
        """Candidate ids only; the selector never needs full rows."""
        query = self._filtered("id", exam_type, topic, difficulty, status)
        return [str(row["id"]) for row in self._run(query, "question ids") if row.get("id")]

    def get_questions_by_ids(self, ids: Iterable[str]) -> List[Question]:
        """Fetch by id. Order of the result is not guaranteed."""
        ids = [str(i) for i in ids]
        if not ids:
            return []
        query = self.client.table(QUESTIONS_TABLE).select(QUESTION_COLUMNS).in_("id", ids)
        return [Question.from_row(row) for row in self._run(query, f"{len(ids)} questions")]
