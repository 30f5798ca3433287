"""Delivery policies. One session implementation, parameterised per mode."""
from dataclasses import dataclass

from assessment.exams import MODES


@dataclass(frozen=True)
class ModePolicy:
    mode: str
    immediate_feedback: bool
    timed: bool
    fixed_question_list: bool
    allow_change_before_finish: bool = False
    shuffle_options: bool = False

    @property
    def persists_attempt(self) -> bool:
        return self.fixed_question_list


# Untimed single-question review of the reviewed bank; no attempt row
REVIEW = ModePolicy("review", immediate_feedback=True, timed=False, fixed_question_list=False)
PRACTICE = ModePolicy(
    "practice", immediate_feedback=True, timed=False, fixed_question_list=True, shuffle_options=True
)
TEST = ModePolicy("test", immediate_feedback=True, timed=True, fixed_question_list=True)
EXAM = ModePolicy(
    "exam", immediate_feedback=False, timed=True, fixed_question_list=True, allow_change_before_finish=True
)

POLICIES = {p.mode: p for p in (REVIEW, PRACTICE, TEST, EXAM)}


def policy_for(mode: str) -> ModePolicy:
    try:
        return POLICIES[mode]
    except KeyError:
        raise ValueError(f"Unknown mode {mode!r}; expected one of {MODES + ('review',)}") from None
