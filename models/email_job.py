# models/email_job.py
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field

from models.constants import EMAIL_JOB_STATUSES, in_clause
from utils.timeutil import utcnow


class EmailJob(SQLModel, table=True):
    """Outbox row; delivered later by the outbox worker."""

    __tablename__ = "email_jobs"
    __table_args__ = (
        CheckConstraint(in_clause("status", EMAIL_JOB_STATUSES), name="ck_email_job_status"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)
    recipient: str
    subject: str
    body: str
    status: str = Field(default="pending", index=True)
    attempts: int = Field(default=0)
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    sent_at: Optional[datetime] = None
