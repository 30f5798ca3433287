"""Question parsing, correct-answer reconciliation and the exam catalogue."""
import pytest

from conftest import question_row
from assessment.errors import LoadFailure, error_message
from assessment.exams import map_enum_to_label, map_label_to_enum, safe_mode
from assessment.questions import (
    CorrectAnswer, Question, display_options, displayed_correct_key, index_for, letter_for,
    normalize_review_status,
)


def test_letter_index_conversion():
    assert letter_for(0) == "A"
    assert letter_for(4) == "E"
    assert index_for("c") == 2
    with pytest.raises(ValueError):
        letter_for(5)
    with pytest.raises(ValueError):
        index_for("F")


def test_correct_index_becomes_letter():
    q = Question.from_row(question_row("q1", correct_index=2))
    assert q.correct_key == "C"
    assert q.correct.index == 2


def test_answer_key_wins_over_index():
    row = question_row("q1", correct_index=0, answer_key="d")
    assert CorrectAnswer.from_row(row, 4).letter == "D"


def test_out_of_range_answer_key_falls_back_to_index():
    row = question_row("q1", correct_index=1, answer_key="E")
    assert CorrectAnswer.from_row(row, 4).letter == "B"


def test_bool_is_not_an_index():
    row = question_row("q1", correct_index=True)
    with pytest.raises(LoadFailure):
        CorrectAnswer.from_row(row, 4)


def test_missing_correct_answer_is_load_failure():
    row = question_row("q1", correct_index=None)
    with pytest.raises(LoadFailure):
        Question.from_row(row)


@pytest.mark.parametrize("n_options", [1, 6])
def test_option_count_bounds(n_options):
    with pytest.raises(LoadFailure):
        Question.from_row(question_row("q1", n_options=n_options))


def test_options_with_rationales():
    row = question_row("q1", correct_index=1)
    row["options"] = [{"text": "Aspirin", "explanation": "Antiplatelet"}, {"text": "Heparin"}]
    q = Question.from_row(row)
    assert q.options == ["Aspirin", "Heparin"]
    assert q.option_explanations == ["Antiplatelet", None]
    assert q.keyed_options() == [("A", "Aspirin"), ("B", "Heparin")]


def test_review_status_normalised():
    assert normalize_review_status("in_review") == "under_review"
    assert Question.from_row(question_row("q1", status="in_review")).status == "under_review"


def test_display_options_deterministic_with_seed():
    q = Question.from_row(question_row("q1", correct_index=3, n_options=5))
    first = display_options(q, seed="attempt-1:q1")
    again = display_options(q, seed="attempt-1:q1")
    assert first == again
    assert [o.key for o in first] == list("ABCDE")
    assert sorted(o.orig_index for o in first) == [0, 1, 2, 3, 4]
    key = displayed_correct_key(q, first)
    shown = next(o for o in first if o.key == key)
    assert shown.orig_index == 3


def test_display_options_unshuffled_without_seed():
    q = Question.from_row(question_row("q1"))
    assert [o.orig_index for o in display_options(q)] == [0, 1, 2, 3]


def test_exam_mapping():
    assert map_label_to_enum("MRCEM Primary") == "MRCEM_PRIMARY"
    assert map_label_to_enum("FRCEM SBA") == "FRCEM_SBA"
    assert map_label_to_enum("mrcem intermediate") == "MRCEM_SBA"
    assert map_label_to_enum("MRCEM_SBA") == "MRCEM_SBA"
    assert map_label_to_enum("USMLE") == "OTHER"
    assert map_label_to_enum(None) == "OTHER"
    assert map_enum_to_label("MRCEM_SBA") == "MRCEM Intermediate SBA"
    assert map_enum_to_label("OTHER") == "Other"


def test_safe_mode():
    assert safe_mode("exam") == "exam"
    assert safe_mode("bogus") == "practice"


def test_error_message():
    assert error_message(ValueError("boom")) == "boom"
    assert error_message({"message": "nope"}) == "nope"
    assert error_message({"errors": [{"field": "count", "message": "too big"}]}) == "count: too big"
    assert error_message({"code": "42P01"}, "Failed") == "Failed (42P01)"
    assert error_message(None, "Failed") == "Failed"
