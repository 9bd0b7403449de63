"""
Performance scoring.

Ranks a worker against the peers of the same period. Weights and category
thresholds are business constants kept for compatibility with existing
reports; they are tunable, nothing else depends on their exact values.
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence

WEIGHT_COMPLETED = 0.4
WEIGHT_ON_TIME = 0.3
WEIGHT_DURATION = 0.3

# evaluated high to low
CATEGORY_THRESHOLDS = (
    (0.85, "Excellent"),
    (0.70, "Good"),
    (0.50, "Average"),
)
LOWEST_CATEGORY = "Needs Improvement"


@dataclass(frozen=True)
class PerformanceScore:
    user_id: int
    score: float
    category: str
    norm_completed: float
    norm_on_time: float
    norm_duration: float


def normalize(value: float, low: float, high: float) -> float:
    """Min-max normalisation; a degenerate range maps to 1."""
    if high == low:
        return 1.0
    return (value - low) / (high - low)


def categorize(score: float) -> str:
    for threshold, name in CATEGORY_THRESHOLDS:
        if score >= threshold:
            return name
    return LOWEST_CATEGORY


def _field(record, name: str) -> float:
    if isinstance(record, dict):
        return float(record.get(name) or 0)
    return float(getattr(record, name, 0) or 0)


def score_performance(peers: Sequence, target) -> PerformanceScore:
    """
    Score ``target`` against ``peers`` (Performance rows or dicts with the same
    field names). ``peers`` must be non-empty; the caller guards that.
    """
    if not peers:
        raise ValueError("peer set must not be empty")

    completed = [_field(p, "completed_tasks") for p in peers]
    durations = [abs(_field(p, "average_task_duration")) for p in peers]

    norm_completed = normalize(_field(target, "completed_tasks"), min(completed), max(completed))
    norm_on_time = _field(target, "on_time_completion") / 100
    norm_duration = normalize(abs(_field(target, "average_task_duration")), min(durations), max(durations))

    # lower duration is better, hence the inversion
    score = (
        WEIGHT_COMPLETED * norm_completed
        + WEIGHT_ON_TIME * norm_on_time
        + WEIGHT_DURATION * (1 - norm_duration)
    )
    user_id = target.get("user_id") if isinstance(target, dict) else getattr(target, "user_id", None)
    return PerformanceScore(
        user_id=user_id,
        score=score,
        category=categorize(score),
        norm_completed=norm_completed,
        norm_on_time=norm_on_time,
        norm_duration=norm_duration,
    )


def rank(peers: Iterable) -> List[PerformanceScore]:
    """Score every record of a peer set, best first."""
    peers = list(peers)
    if not peers:
        return []
    scored = [score_performance(peers, p) for p in peers]
    return sorted(scored, key=lambda s: (-s.score, s.user_id if s.user_id is not None else 0))
