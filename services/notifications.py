"""
Notifications and the email outbox.

The core decides when and to whom a notification fires; ``OutboxNotifier``
records it (plus an email job) in the caller's transaction, and
``OutboxWorker`` delivers queued email later. Delivery results never touch
task state.
"""

from html import escape
from typing import Dict, List, Optional, Protocol

import httpx
from sqlmodel import select

from db import Database, require
from models import EmailJob, Notification, User
from services.errors import DeliveryError
from utils.log import get_logger, log_extra
from utils.timeutil import utcnow

logger = get_logger(__name__)


# ---- message wording ----
def assigned_message(title: str) -> Dict[str, str]:
    return {
        "title": "New Task Assigned",
        "message": f"You have been assigned a new task: {title}",
        "category": "task_assigned",
    }


def submitted_message(title: str, worker_name: str) -> Dict[str, str]:
    return {
        "title": "Task Submitted for Review",
        "message": f'{worker_name} submitted "{title}" for review.',
        "category": "task_completed",
    }


REVIEW_MESSAGES = {
    "accepted": 'Your task "{title}" has been accepted.',
    "rejected": 'Your task "{title}" has been rejected. Please make necessary changes.',
    "needs_improvement": 'Your task "{title}" needs improvement. Please update and resubmit.',
}


def review_message(title: str, review_status: str) -> Dict[str, str]:
    return {
        "title": f"Task Review: {title}",
        "message": REVIEW_MESSAGES[review_status].format(title=title),
        "category": f"task_review_{review_status}",
    }


class Notifier(Protocol):
    def notify(self, session, *, recipient_id: int, title: str, message: str,
               category: str, task_id: Optional[int] = None) -> None: ...


class OutboxNotifier:
    """Writes the in-app notification and queues the matching email job."""

    def notify(self, session, *, recipient_id: int, title: str, message: str,
               category: str, task_id: Optional[int] = None) -> None:
        user = require(session, User, recipient_id, "Recipient")
        session.add(Notification(
            user_id=user.id, title=title, message=message, category=category, task_id=task_id,
        ))
        if user.email:
            session.add(EmailJob(
                user_id=user.id,
                recipient=user.email,
                subject=title,
                body=_email_body(user.name or user.email, message),
            ))
        session.flush()


def _email_body(name: str, message: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<p>Hello {escape(name)},</p>"
        f"<p>{escape(message)}</p>"
        "<p>Please log in to your dashboard to view and manage this task.</p>"
        "<p>Best regards,<br>Strivio Teams</p>"
        "</div>"
    )


class NotificationService:
    def __init__(self, db: Database):
        self.db = db

    def list_for(self, user_id: int, unread_only: bool = False) -> List[Dict]:
        return self.db.get_notifications(user_id, unread_only=unread_only)

    def mark_read(self, user_id: int, notification_id: int) -> bool:
        """Returns False when the notification does not belong to the user."""
        with self.db.session() as s:
            row = s.get(Notification, notification_id)
            if row is None or row.user_id != user_id:
                return False
            row.read = True
            s.add(row)
            return True

    def mark_all_read(self, user_id: int) -> int:
        with self.db.session() as s:
            rows = s.exec(
                select(Notification).where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
            ).all()
            for row in rows:
                row.read = True
                s.add(row)
            return len(rows)


# ---- email delivery ----
class EmailSender(Protocol):
    def send(self, recipient: str, subject: str, html: str) -> None:
        """Deliver one message or raise DeliveryError."""


class SendGridSender:
    API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key: str, mail_from: str, *, client: Optional[httpx.Client] = None, timeout: float = 10.0):
        self.api_key = api_key
        self.mail_from = mail_from
        self.client = client or httpx.Client(timeout=timeout)

    def send(self, recipient: str, subject: str, html: str) -> None:
        payload = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": self.mail_from},
            "subject": subject,
            "content": [{"type": "text/html", "value": html}],
        }
        try:
            resp = self.client.post(
                self.API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"SendGrid request failed: {exc}") from exc
        if resp.status_code >= 300:
            raise DeliveryError(
                f"SendGrid responded with {resp.status_code}",
                metadata={"status_code": resp.status_code, "body": resp.text[:500]},
                retryable=resp.status_code >= 500 or resp.status_code == 429,
            )


class OutboxWorker:
    def __init__(self, db: Database, sender: EmailSender, *, max_attempts: int = 5, batch_size: int = 50):
        self.db = db
        self.sender = sender
        self.max_attempts = max_attempts
        self.batch_size = batch_size

    def flush(self, limit: Optional[int] = None) -> Dict[str, int]:
        with self.db.session() as s:
            jobs = s.exec(
                select(EmailJob)
                .where(EmailJob.status == "pending")
                .order_by(EmailJob.id.asc())
                .limit(limit or self.batch_size)
            ).all()
            batch = [(j.id, j.recipient, j.subject, j.body) for j in jobs]

        report = {"sent": 0, "retrying": 0, "failed": 0}
        for job_id, recipient, subject, body in batch:
            try:
                self.sender.send(recipient, subject, body)
            except DeliveryError as exc:
                report[self._record_failure(job_id, exc)] += 1
                continue
            self._mark_sent(job_id)
            report["sent"] += 1
        if batch:
            logger.info("Outbox flushed", extra=log_extra(**report))
        return report

    def _mark_sent(self, job_id: int) -> None:
        with self.db.session() as s:
            job = s.get(EmailJob, job_id)
            job.status = "sent"
            job.attempts += 1
            job.sent_at = utcnow()
            job.last_error = None
            s.add(job)

    def _record_failure(self, job_id: int, exc: DeliveryError) -> str:
        with self.db.session() as s:
            job = s.get(EmailJob, job_id)
            job.attempts += 1
            job.last_error = str(exc)[:1000]
            if not exc.retryable or job.attempts >= self.max_attempts:
                job.status = "failed"
            s.add(job)
            state = "failed" if job.status == "failed" else "retrying"
        logger.warning(
            "Email delivery failed",
            extra=log_extra(user_id=None, error=str(exc), error_category=exc.category, category=state),
        )
        return state
