# utils/timeutil.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo on the round trip anyway."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def period_of(moment: datetime) -> str:
    return f"{moment.year}-{moment.month:02d}"
