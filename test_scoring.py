"""Scoring helpers."""
from assessment.attempts import AttemptItem
from assessment.scoring import AttemptResult, is_correct, percentage, rank_topics, topic_breakdown


def item(topic, selected, correct, position=1):
    return AttemptItem("a1", "u1", f"q{position}", selected, correct, topic, position)


def test_is_correct_case_insensitive():
    assert is_correct("b", "B")
    assert not is_correct("A", "B")
    assert not is_correct(None, "B")


def test_percentage_rounding():
    assert percentage(3, 5) == 60
    assert percentage(1, 8) == 13   # 12.5 rounds half-up
    assert percentage(2, 3) == 67
    assert percentage(0, 0) == 0


def test_topic_breakdown_defaults_to_general():
    items = [item("Cardiology", "A", "A", 1), item(None, "B", "C", 2), item("Cardiology", "C", "D", 3)]
    assert topic_breakdown(items) == {
        "Cardiology": {"total": 2, "correct": 1},
        "General": {"total": 1, "correct": 0},
    }


def test_attempt_result_as_dict():
    result = AttemptResult.from_items([item("Renal", "A", "A", 1), item("Renal", "B", "A", 2)])
    assert result.as_dict() == {
        "correct": 1, "total": 2, "percentage": 50,
        "by_topic": {"Renal": {"total": 2, "correct": 1}},
    }


def test_rank_topics_orders_by_lag():
    ranked = rank_topics({
        "Cardiology": {"total": 10, "correct": 9},
        "Renal": {"total": 4, "correct": 1},
        "Toxicology": {"total": 2, "correct": 0},
    }, top_n=2)
    assert [name for name, _ in ranked["weak_areas"]] == ["Renal", "Toxicology"]
    assert [name for name, _ in ranked["strong_areas"]] == ["Cardiology", "Toxicology"]
