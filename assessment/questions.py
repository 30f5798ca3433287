"""
Question model and ingestion-boundary normalisation.

The question bank stores the correct option either as a letter (`answer_key`)
or as a zero-based index (`correct_index`). Both are reconciled here into a
single CorrectAnswer letter so nothing downstream branches on representation.
"""
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from engine import MAX_OPTIONS, MIN_OPTIONS, OPTION_LETTERS
from assessment.errors import LoadFailure

logger = logging.getLogger(__name__)

REVIEW_STATUSES = ("draft", "under_review", "approved", "archived", "rejected")


def normalize_review_status(status: Optional[str]) -> str:
    if status == "in_review":
        return "under_review"
    return status or ""


def letter_for(index: int) -> str:
    """Zero-based option index -> letter key (0 -> 'A')."""
    if not 0 <= index < MAX_OPTIONS:
        raise ValueError(f"Option index out of range: {index}")
    return chr(ord("A") + index)


def index_for(letter: str) -> int:
    key = (letter or "").strip().upper()
    if len(key) != 1 or key not in OPTION_LETTERS:
        raise ValueError(f"Not an option letter: {letter!r}")
    return ord(key) - ord("A")


@dataclass(frozen=True)
class CorrectAnswer:
    """The correct option of a question, always held as a letter key."""
    letter: str

    def __post_init__(self):
        index_for(self.letter)

    @property
    def index(self) -> int:
        return index_for(self.letter)

    @classmethod
    def from_row(cls, row: Dict, n_options: int) -> "CorrectAnswer":
        """
        Reconcile answer_key / correct_index.

        A valid letter key within the option range wins; otherwise the index
        is used. Rows with neither are malformed.
        """
        key = row.get("answer_key")
        if isinstance(key, str) and key.strip():
            try:
                idx = index_for(key)
            except ValueError:
                idx = -1
            if 0 <= idx < n_options:
                return cls(key.strip().upper())
            logger.warning(f"Question {row.get('id')}: ignoring invalid answer_key {key!r}")
        idx = row.get("correct_index")
        if isinstance(idx, int) and not isinstance(idx, bool) and 0 <= idx < n_options:
            return cls(letter_for(idx))
        raise LoadFailure(f"Question {row.get('id')} has no usable correct answer")


def parse_options(raw) -> Tuple[List[str], List[Optional[str]]]:
    """Options are plain strings or {text, explanation} objects."""
    if not isinstance(raw, list):
        return [], []
    texts, rationales = [], []
    for opt in raw:
        if isinstance(opt, str):
            texts.append(opt)
            rationales.append(None)
        elif isinstance(opt, dict):
            texts.append(str(opt.get("text") or opt.get("option") or ""))
            rationales.append(opt.get("explanation"))
        else:
            texts.append(str(opt))
            rationales.append(None)
    return texts, rationales


@dataclass
class Question:
    id: str
    stem: str
    options: List[str]
    correct: CorrectAnswer
    exam: str = ""
    topic: Optional[str] = None
    subtopic: Optional[str] = None
    difficulty: Optional[str] = None
    status: str = "approved"
    explanation: str = ""
    option_explanations: List[Optional[str]] = field(default_factory=list)

    @property
    def correct_key(self) -> str:
        return self.correct.letter

    @property
    def source(self) -> str:
        parts = [p for p in (self.exam, self.topic) if p]
        text = " • ".join(parts)
        if self.subtopic:
            text = f"{text} / {self.subtopic}"
        return text

    def keyed_options(self) -> List[Tuple[str, str]]:
        return [(letter_for(i), text) for i, text in enumerate(self.options)]

    @classmethod
    def from_row(cls, row: Dict) -> "Question":
        if not row.get("id"):
            raise LoadFailure("Question row without id")
        options, rationales = parse_options(row.get("options"))
        if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
            raise LoadFailure(f"Question {row['id']} has {len(options)} options (need {MIN_OPTIONS}-{MAX_OPTIONS})")
        return cls(
            id=str(row["id"]),
            stem=row.get("stem") or "",
            options=options,
            correct=CorrectAnswer.from_row(row, len(options)),
            exam=row.get("exam") or "",
            topic=row.get("topic"),
            subtopic=row.get("subtopic"),
            difficulty=row.get("difficulty"),
            status=normalize_review_status(row.get("status")) or "approved",
            explanation=row.get("explanation") or "",
            option_explanations=rationales,
        )


@dataclass(frozen=True)
class DisplayOption:
    key: str
    text: str
    orig_index: int


def display_options(question: Question, seed: Optional[str] = None) -> List[DisplayOption]:
    """
    Options as shown to the learner. With a seed the order is shuffled
    deterministically, so the same attempt shows the same order on resume.
    """
    indexed = list(enumerate(question.options))
    if seed is not None:
        random.Random(seed).shuffle(indexed)
    return [DisplayOption(letter_for(pos), text, orig) for pos, (orig, text) in enumerate(indexed)]


def displayed_correct_key(question: Question, options: List[DisplayOption]) -> str:
    for opt in options:
        if opt.orig_index == question.correct.index:
            return opt.key
    return question.correct_key
