"""
Scoring: correctness, percentage, and topic-level breakdown of an attempt.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from engine import DEFAULT_TOPIC


def is_correct(selected_key: Optional[str], correct_key: Optional[str]) -> bool:
    if not selected_key or not correct_key:
        return False
    return selected_key.strip().upper() == correct_key.strip().upper()


def percentage(correct: int, attempted: int) -> int:
    """round(correct / attempted * 100), half-up; nothing attempted scores 0."""
    if attempted <= 0:
        return 0
    value = Decimal(correct) * 100 / Decimal(attempted)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def topic_breakdown(items: Iterable) -> Dict[str, Dict[str, int]]:
    """
    Group answered items by topic.

    Items need `topic`, `selected_key` and `correct_key` attributes.
    Returns {topic: {"total": n, "correct": k}}; missing topics fall under "General".
    """
    stats: Dict[str, Dict[str, int]] = {}
    for item in items:
        topic = item.topic or DEFAULT_TOPIC
        entry = stats.setdefault(topic, {"total": 0, "correct": 0})
        entry["total"] += 1
        if is_correct(item.selected_key, item.correct_key):
            entry["correct"] += 1
    return stats


@dataclass(frozen=True)
class AttemptResult:
    correct: int
    total: int
    percentage: int
    by_topic: Dict[str, Dict[str, int]] = field(default_factory=dict)

    @classmethod
    def from_items(cls, items: List) -> "AttemptResult":
        correct = sum(1 for i in items if is_correct(i.selected_key, i.correct_key))
        total = len(items)
        return cls(correct=correct, total=total, percentage=percentage(correct, total), by_topic=topic_breakdown(items))

    def as_dict(self) -> Dict:
        return {
            "correct": self.correct,
            "total": self.total,
            "percentage": self.percentage,
            "by_topic": {k: dict(v) for k, v in self.by_topic.items()},
        }


def rank_topics(by_topic: Dict[str, Dict[str, int]], top_n: int = 5) -> Dict:
    """
    Rank topics by lag factor to surface weak areas for the next session.

    lag_factor = (100 - accuracy) * total, so frequent weak topics rank first.
    """
    lag_analysis = {}
    for topic, stats in by_topic.items():
        if stats["total"] > 0:
            accuracy = stats["correct"] / stats["total"] * 100
            lag_analysis[topic] = {
                "total": stats["total"],
                "correct": stats["correct"],
                "accuracy_percent": accuracy,
                "lag_factor": (100 - accuracy) * stats["total"],
            }

    sorted_lags = sorted(lag_analysis.items(), key=lambda x: x[1]["lag_factor"], reverse=True)

    return {
        "weak_areas": sorted_lags[:top_n],
        "strong_areas": sorted_lags[-top_n:][::-1] if len(sorted_lags) > top_n else [],
        "all_topics": dict(sorted_lags),
    }
