"""
Selector: turns a session configuration into a fixed, ordered list of question ids.

Three-tier cascade, stopping at the first tier with candidates:
    1. exam type + topic (+ difficulty when given)
    2. exam type only
    3. any approved question
Candidates are shuffled with an unbiased Fisher-Yates permutation
(random.Random.shuffle) and truncated to the requested count.
"""
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from assessment.errors import InsufficientQuestions
from assessment.repository import QuestionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionConfig:
    exam_type: str
    count: int
    topic: Optional[str] = None
    difficulty: Optional[str] = None

    def __post_init__(self):
        if self.count < 1:
            raise ValueError(f"count must be >= 1, got {self.count}")


@dataclass
class Selection:
    question_ids: List[str] = field(default_factory=list)
    tier: int = 0
    requested: int = 0

    @property
    def short(self) -> bool:
        """Fewer candidates than requested (corpus exhausted)."""
        return len(self.question_ids) < self.requested


class Selector:
    def __init__(self, repository: QuestionRepository, rng: Optional[random.Random] = None):
        self.repository = repository
        self.rng = rng or random.Random()

    def _tiers(self, config: SelectionConfig):
        if config.topic or config.difficulty:
            yield 1, dict(exam_type=config.exam_type, topic=config.topic, difficulty=config.difficulty)
        yield 2, dict(exam_type=config.exam_type)
        yield 3, dict(exam_type=None)

    def select(self, config: SelectionConfig) -> Selection:
        for tier, filters in self._tiers(config):
            candidates = self.repository.list_question_ids(**filters)
            # Duplicate rows must not yield duplicate ids in the attempt
            candidates = list(dict.fromkeys(candidates))
            if not candidates:
                logger.info(f"Selector tier {tier} empty for {filters}")
                continue
            self.rng.shuffle(candidates)
            picked = candidates[: config.count]
            selection = Selection(question_ids=picked, tier=tier, requested=config.count)
            if selection.short:
                logger.warning(
                    f"Selector tier {tier}: only {len(picked)} of {config.count} questions available"
                )
            logger.info(f"Selected {len(picked)} questions at tier {tier}")
            return selection
        raise InsufficientQuestions(config.exam_type, config.topic)
