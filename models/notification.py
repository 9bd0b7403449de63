# models/notification.py
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field

from models.constants import NOTIFICATION_CATEGORIES, in_clause
from utils.timeutil import utcnow


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint(in_clause("category", NOTIFICATION_CATEGORIES), name="ck_notification_category"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    title: str
    message: str
    category: str
    read: bool = Field(default=False)
    task_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
