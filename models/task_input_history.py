# models/task_input_history.py
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from utils.timeutil import utcnow


class TaskInputHistory(SQLModel, table=True):
    __tablename__ = "task_input_history"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(index=True)
    user_id: int = Field(foreign_key="users.id")
    input_text: str = Field(default="")
    progress: int = Field(default=0)  # 0..100
    created_at: datetime = Field(default_factory=utcnow)
