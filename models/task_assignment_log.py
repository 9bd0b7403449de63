# models/task_assignment_log.py
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from utils.timeutil import utcnow


class TaskAssignmentLog(SQLModel, table=True):
    __tablename__ = "task_assignment_log"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(index=True)
    automatic_task_id: Optional[int] = None
    assigned_to: int
    assigned_by: Optional[int] = None
    assigned_at: datetime = Field(default_factory=utcnow)
    automatic_assignment: bool = Field(default=True)
