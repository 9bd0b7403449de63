# utils/progress.py
import math
import re
from typing import Optional

from sqlmodel import select

from models.task_input_history import TaskInputHistory

MIN_LENGTH = 50     # characters before the "good length" bonus applies
FULL_LENGTH = 500   # characters for 100% on length alone
STRUCTURE_BONUS = 10

_SENTENCE_END = re.compile(r"[.!?]+\s+")


def compute_text_progress(text: Optional[str]) -> int:
    """Derive a 0..100 progress figure from a free-text progress entry."""
    if not text:
        return 0
    pct = min(len(text) / FULL_LENGTH * 100, 100)

    paragraphs = [p for p in text.split("\n\n") if p.strip()]
    if len(paragraphs) >= 2:
        pct += STRUCTURE_BONUS
    if len(_SENTENCE_END.findall(text)) >= 3:
        pct += STRUCTURE_BONUS
    if len(text) >= MIN_LENGTH:
        pct += STRUCTURE_BONUS

    # half-up rounding
    return min(int(math.floor(pct + 0.5)), 100)


def latest_progress(session, task_id: int) -> Optional[TaskInputHistory]:
    stmt = (
        select(TaskInputHistory)
        .where(TaskInputHistory.task_id == task_id)
        .order_by(TaskInputHistory.created_at.desc(), TaskInputHistory.id.desc())
    )
    return session.exec(stmt).first()


def current_progress(session, task_id: int) -> int:
    entry = latest_progress(session, task_id)
    return int(entry.progress) if entry else 0
