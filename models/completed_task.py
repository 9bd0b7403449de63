# models/completed_task.py
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from utils.timeutil import utcnow


class CompletedTask(SQLModel, table=True):
    """Permanent record written once, when a review accepts the task."""

    __tablename__ = "completed_tasks"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(index=True, unique=True)
    title: str
    description: Optional[str] = None
    assigned_to: int = Field(index=True)
    assigned_by: Optional[int] = None
    team_id: int = Field(index=True)
    priority: str
    status: str = Field(default="completed")
    review_status: str = Field(default="accepted")
    due_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    accepted_at: datetime = Field(default_factory=utcnow)
    accepted_by: int
    work_done: Optional[str] = None
