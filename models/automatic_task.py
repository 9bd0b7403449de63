# models/automatic_task.py
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field

from models.constants import AUTOMATIC_TASK_STATUSES, PRIORITIES, in_clause
from utils.timeutil import utcnow


class AutomaticTask(SQLModel, table=True):
    __tablename__ = "automatic_tasks"
    __table_args__ = (
        CheckConstraint(in_clause("priority", PRIORITIES), name="ck_auto_task_priority"),
        CheckConstraint(in_clause("status", AUTOMATIC_TASK_STATUSES), name="ck_auto_task_status"),
        {"extend_existing": True},
    )

    task_id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    priority: str = Field(default="medium")
    estimated_time: Optional[float] = None  # hours
    team_id: Optional[int] = Field(default=None, foreign_key="teams.id", index=True)
    status: str = Field(default="pending", index=True)
    assigned_to: Optional[int] = Field(default=None, foreign_key="users.id")
    assigned_by: Optional[int] = Field(default=None, foreign_key="users.id")
    assigned_at: Optional[datetime] = None
    # the regular task created when this backlog item was handed out
    created_task_id: Optional[int] = None
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
