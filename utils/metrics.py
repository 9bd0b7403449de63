# utils/metrics.py
from typing import Dict, Iterable, Optional

import pandas as pd

FRAME_COLUMNS = ["task_id", "user_id", "created_at", "completed_at", "due_date"]


def finished_work_frame(rows: Iterable[dict]) -> pd.DataFrame:
    df = pd.DataFrame(list(rows), columns=FRAME_COLUMNS)
    if df.empty:
        return df
    for col in ("created_at", "completed_at", "due_date"):
        df[col] = pd.to_datetime(df[col])
    df = df.dropna(subset=["completed_at"])
    if not df.empty:
        df["period"] = df["completed_at"].dt.strftime("%Y-%m")
    return df


def summarize_by_user(df: pd.DataFrame, period: Optional[str] = None) -> Dict[int, dict]:
    """
    Aggregate finished work per user: count, on-time percentage (0..100) and
    mean creation-to-completion duration in seconds. Work without a due date
    counts as on time.
    """
    if df.empty:
        return {}
    df = df.copy()
    if period:
        df = df[df["period"] == period]
        if df.empty:
            return {}
    df["on_time"] = df["due_date"].isna() | (df["completed_at"] <= df["due_date"])
    df["duration"] = (df["completed_at"] - df["created_at"]).dt.total_seconds()

    grouped = df.groupby("user_id").agg(
        completed_tasks=("task_id", "size"),
        on_time=("on_time", "mean"),
        average_task_duration=("duration", "mean"),
    )
    return {
        int(user_id): {
            "completed_tasks": int(row.completed_tasks),
            "on_time_completion": float(row.on_time) * 100.0,
            "average_task_duration": float(row.average_task_duration),
        }
        for user_id, row in grouped.iterrows()
    }
