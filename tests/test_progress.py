# tests/test_progress.py
from datetime import datetime

from models.task_input_history import TaskInputHistory
from utils.progress import compute_text_progress, current_progress, latest_progress


def test_empty_text_has_no_progress():
    assert compute_text_progress("") == 0
    assert compute_text_progress(None) == 0


def test_short_text_scores_on_length_only():
    assert compute_text_progress("Hello") == 1


def test_length_bonus_applies_from_fifty_characters():
    assert compute_text_progress("a" * 49) == 10
    assert compute_text_progress("a" * 50) == 20


def test_paragraph_and_sentence_bonuses():
    two_paragraphs = "a" * 50 + "\n\n" + "b" * 48
    assert compute_text_progress(two_paragraphs) == 40

    # 21 chars -> 4.2 base, three sentence ends followed by whitespace
    assert compute_text_progress("One. Two. Three. Four") == 14


def test_progress_is_capped_at_100():
    assert compute_text_progress("Step done. " * 60) == 100


def test_latest_snapshot_wins(db, seed):
    t0 = datetime(2025, 3, 1, 8, 0)
    t1 = datetime(2025, 3, 1, 9, 0)
    with db.session() as s:
        s.add(TaskInputHistory(task_id=7, user_id=seed.ids["m1"], input_text="later", progress=40, created_at=t1))
        s.add(TaskInputHistory(task_id=7, user_id=seed.ids["m1"], input_text="earlier", progress=90, created_at=t0))
        s.flush()

        assert latest_progress(s, 7).input_text == "later"
        assert current_progress(s, 7) == 40
        assert current_progress(s, 8) == 0
