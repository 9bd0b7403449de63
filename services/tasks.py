"""
Task lifecycle for manually assigned tasks.

    pending --start/save--> in_progress --submit--> completed (review pending)
    completed --accept--> CompletedTask (active row removed)
    completed --reject / needs_improvement--> in_progress

Every status or review write goes through ``_transition`` which bumps the
row version with a conditional UPDATE, so two writers can never silently
overwrite each other.
"""

from datetime import datetime
from typing import Optional, Union

from sqlalchemy import update

from db import require, team_lead_of
from models import CompletedTask, Task, TaskInputHistory, User
from models.constants import PRIORITIES
from services import permissions as perms
from services.base import Outcome, Service, ServiceContext
from services.errors import (
    AuthorizationError, PreconditionError, StaleRecordError, ValidationError,
)
from services.notifications import assigned_message, review_message, submitted_message
from services.performance import PerformanceService
from services.permissions import Actor
from services.review import CompletionPipeline
from utils.log import log_extra
from utils.progress import compute_text_progress, latest_progress
from utils.timeutil import period_of

REVIEW_DECISIONS = ("accepted", "rejected", "needs_improvement")


class TaskService(Service):
    def __init__(self, context: ServiceContext) -> None:
        super().__init__(context)
        self.performance = PerformanceService(context)
        self.pipeline = CompletionPipeline(context)

    # ---- create ----
    def create_task(
        self,
        actor: Actor,
        *,
        title: str,
        assigned_to: int,
        description: Optional[str] = None,
        priority: str = "medium",
        due_date: Optional[datetime] = None,
    ) -> Outcome[Task]:
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        if priority not in PRIORITIES:
            raise ValidationError(f"Unknown priority '{priority}'")
        # role gate before touching the assignee
        perms.authorize(actor, perms.CREATE_TASK, team_id=actor.team_id)

        warnings = []
        with self.db.session() as s:
            assignee = s.get(User, assigned_to) if assigned_to else None
            if assignee is None:
                raise ValidationError("Assignee not found", metadata={"assigned_to": assigned_to})
            if assignee.role not in (perms.TEAM_LEAD, perms.TEAM_MEMBER):
                raise ValidationError("Tasks can only be assigned to team leads or team members")
            if actor.role == perms.TEAM_LEAD and assignee.role != perms.TEAM_MEMBER:
                raise AuthorizationError("Team leads can only assign tasks to team members")
            if assignee.team_id is None:
                raise PreconditionError("Assignee has no team", metadata={"assigned_to": assignee.id})
            perms.authorize(actor, perms.CREATE_TASK, team_id=assignee.team_id)

            now = self.now()
            task = Task(
                title=title.strip(),
                description=description,
                assigned_to=assignee.id,
                assigned_by=actor.id,
                # always the assignee's team, whatever the caller thinks
                team_id=assignee.team_id,
                priority=priority,
                status="pending",
                review_status="pending",
                due_date=due_date,
                created_at=now,
                updated_at=now,
            )
            s.add(task)
            s.flush()
            self.notify(s, warnings, recipient_id=assignee.id, task_id=task.id, **assigned_message(task.title))

        self.logger.info(
            "Task created",
            extra=log_extra(task_id=task.id, team_id=task.team_id, user_id=task.assigned_to, actor_id=actor.id),
        )
        return Outcome(task, warnings)

    # ---- assignee actions ----
    def start_task(self, actor: Actor, task_id: int) -> Task:
        """Assignee opens the task; a pending task moves to in_progress."""
        with self.db.session() as s:
            task = require(s, Task, task_id, "Task")
            perms.authorize(actor, perms.EDIT_PROGRESS, team_id=task.team_id, owner_id=task.assigned_to)
            if task.status == "completed":
                raise PreconditionError("Task is awaiting review")
            if task.status == "pending":
                self._transition(s, task, status="in_progress")
                self.logger.info("Task started", extra=log_extra(task_id=task.id, actor_id=actor.id))
            return task

    def save_progress(self, actor: Actor, task_id: int, text: str) -> TaskInputHistory:
        """Append a progress snapshot; the derived percentage never changes status."""
        with self.db.session() as s:
            task = require(s, Task, task_id, "Task")
            perms.authorize(actor, perms.EDIT_PROGRESS, team_id=task.team_id, owner_id=task.assigned_to)
            if task.status == "completed":
                raise PreconditionError("Task is awaiting review and cannot be edited")
            now = self.now()
            entry = TaskInputHistory(
                task_id=task.id,
                user_id=actor.id,
                input_text=text or "",
                progress=compute_text_progress(text),
                created_at=now,
            )
            s.add(entry)
            task.updated_at = now
            s.add(task)
            s.flush()
            return entry

    def submit_task(self, actor: Actor, task_id: int, current_text: Optional[str] = None) -> Outcome[Task]:
        """
        Submit for review. ``current_text`` is what the editor currently shows;
        when given it must match the last saved snapshot.
        """
        warnings = []
        with self.db.session() as s:
            task = require(s, Task, task_id, "Task")
            perms.authorize(actor, perms.SUBMIT_TASK, team_id=task.team_id, owner_id=task.assigned_to)
            if task.status == "completed":
                raise PreconditionError("Task has already been submitted")

            latest = latest_progress(s, task.id)
            if current_text is not None and (latest is None or latest.input_text != current_text):
                raise PreconditionError("Save your latest progress before submitting")
            progress = latest.progress if latest else 0
            if progress < 100:
                raise PreconditionError(
                    f"Task progress is {progress}%, it must reach 100% before submitting",
                    metadata={"progress": progress},
                )

            now = self.now()
            self._transition(s, task, status="completed", review_status="pending", completed_at=now)
            self.performance.recompute(s, task.assigned_to, period=period_of(now))

            worker = s.get(User, task.assigned_to)
            recipient = team_lead_of(s, task.team_id)
            if recipient is None or recipient == task.assigned_to:
                recipient = task.assigned_by
            self.notify(
                s, warnings, recipient_id=recipient, task_id=task.id,
                **submitted_message(task.title, worker.name or worker.email),
            )

        self.logger.info("Task submitted for review", extra=log_extra(task_id=task.id, actor_id=actor.id))
        return Outcome(task, warnings)

    # ---- review ----
    def review_task(self, actor: Actor, task_id: int, decision: str) -> Outcome[Union[Task, CompletedTask]]:
        if decision not in REVIEW_DECISIONS:
            raise ValidationError(f"Unknown review decision '{decision}'")

        warnings = []
        with self.db.session() as s:
            task = s.get(Task, task_id)
            if task is None:
                if self.pipeline.completed_record(s, task_id) is not None:
                    raise PreconditionError("Task has already been accepted")
                require(s, Task, task_id, "Task")
            perms.authorize(actor, perms.REVIEW_TASK, team_id=task.team_id)
            if task.assigned_to == actor.id:
                raise AuthorizationError("You cannot review your own task")
            if task.status != "completed":
                raise PreconditionError("Only completed tasks can be reviewed")

            if decision == "accepted":
                # claim the row first so a concurrent review loses cleanly
                self._transition(s, task, review_status="accepted")
                result = self.pipeline.finalize(s, task, actor, warnings)
                self.performance.recompute(
                    s, result.assigned_to, period=period_of(result.completed_at or result.accepted_at)
                )
            else:
                submitted_at = task.completed_at
                self._transition(s, task, status="in_progress", review_status=decision)
                # a reopened task no longer counts as finished work for that month
                self.performance.recompute(s, task.assigned_to, period=period_of(submitted_at or self.now()))
                self.notify(
                    s, warnings, recipient_id=task.assigned_to, task_id=task.id,
                    **review_message(task.title, decision),
                )
                result = task

        self.logger.info(
            "Task reviewed",
            extra=log_extra(task_id=task_id, actor_id=actor.id, category=decision),
        )
        return Outcome(result, warnings)

    # ---- helpers ----
    def _transition(self, session, task: Task, **values) -> Task:
        stmt = (
            update(Task)
            .where(Task.id == task.id, Task.version == task.version)
            .values(version=task.version + 1, updated_at=self.now(), **values)
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)
        if result.rowcount != 1:
            raise StaleRecordError(
                "Task was changed by someone else; reload and try again",
                metadata={"task_id": task.id, "version": task.version},
            )
        session.refresh(task)
        return task
