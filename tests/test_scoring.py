# tests/test_scoring.py
import pytest

from models.performance import Performance
from services.scoring import categorize, normalize, rank, score_performance


def _peer(user_id, completed, on_time, duration):
    return {
        "user_id": user_id,
        "completed_tasks": completed,
        "on_time_completion": on_time,
        "average_task_duration": duration,
    }


def test_single_peer_collapses_to_degenerate_score():
    record = _peer(1, 5, 80, 100000)
    result = score_performance([record], record)

    assert result.norm_completed == 1
    assert result.norm_duration == 1
    assert result.score == pytest.approx(0.64)
    assert result.category == "Average"


def test_score_stays_in_unit_range():
    peers = [
        _peer(1, 0, 0, 10),
        _peer(2, 12, 100, 1),
        _peer(3, 4, 55, -300),  # garbage duration is taken as abs
        _peer(4, 7, 100, 300),
    ]
    for peer in peers:
        result = score_performance(peers, peer)
        assert 0.0 <= result.score <= 1.0


def test_best_worker_scores_top_of_range():
    peers = [_peer(1, 10, 100, 60), _peer(2, 2, 50, 600)]
    best = score_performance(peers, peers[0])
    worst = score_performance(peers, peers[1])

    assert best.score == pytest.approx(1.0)
    assert best.category == "Excellent"
    assert worst.score == pytest.approx(0.15)
    assert worst.category == "Needs Improvement"


def test_accepts_performance_rows():
    rows = [
        Performance(user_id=1, period="2025-03", completed_tasks=3, on_time_completion=100, average_task_duration=50),
        Performance(user_id=2, period="2025-03", completed_tasks=1, on_time_completion=0, average_task_duration=150),
    ]
    assert score_performance(rows, rows[0]).user_id == 1


def test_empty_peer_set_is_rejected():
    with pytest.raises(ValueError):
        score_performance([], _peer(1, 1, 1, 1))


@pytest.mark.parametrize(
    "score,expected",
    [(0.85, "Excellent"), (0.84, "Good"), (0.70, "Good"), (0.5, "Average"), (0.49, "Needs Improvement")],
)
def test_category_thresholds(score, expected):
    assert categorize(score) == expected


def test_normalize_degenerate_range():
    assert normalize(3, 3, 3) == 1.0
    assert normalize(5, 0, 10) == 0.5


def test_rank_orders_best_first():
    peers = [_peer(1, 1, 50, 500), _peer(2, 9, 100, 100), _peer(3, 5, 75, 300)]
    assert [s.user_id for s in rank(peers)] == [2, 3, 1]
    assert rank([]) == []
