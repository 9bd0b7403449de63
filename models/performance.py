# models/performance.py
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from utils.timeutil import utcnow


class Performance(SQLModel, table=True):
    __tablename__ = "performance"
    __table_args__ = (
        UniqueConstraint("user_id", "period", name="uq_performance_user_period"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    period: str  # YYYY-MM
    completed_tasks: int = Field(default=0)
    on_time_completion: float = Field(default=0.0)  # 0..100
    average_task_duration: float = Field(default=0.0)  # seconds
    updated_at: datetime = Field(default_factory=utcnow)
