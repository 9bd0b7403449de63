# models/task.py
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field

from models.constants import PRIORITIES, REVIEW_STATUSES, TASK_STATUSES, in_clause
from utils.timeutil import utcnow


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(in_clause("priority", PRIORITIES), name="ck_task_priority"),
        CheckConstraint(in_clause("status", TASK_STATUSES), name="ck_task_status"),
        CheckConstraint(in_clause("review_status", REVIEW_STATUSES), name="ck_task_review_status"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    assigned_to: int = Field(foreign_key="users.id", index=True)
    assigned_by: Optional[int] = Field(default=None, foreign_key="users.id")
    team_id: int = Field(foreign_key="teams.id", index=True)
    priority: str = Field(default="medium")
    status: str = Field(default="pending", index=True)
    review_status: str = Field(default="pending")
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    # bumped on every status/review write
    version: int = Field(default=1)
