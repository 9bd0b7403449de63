"""
Automatic assignment of backlog items.

A sweep hands every pending AutomaticTask to an idle team member of the same
team (a member with no pending task), at most one item per member per sweep,
highest priority first and oldest first within a priority. Each pairing is
its own transaction and re-checks "still pending" and "still idle" right
before writing; a failed re-check skips the pairing until the next sweep.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlmodel import select

from db import first_admin, is_idle, pending_task_counts, require, team_lead_of
from models import AutomaticTask, Task, TaskAssignmentLog, Team, User
from models.constants import PRIORITIES, PRIORITY_RANK
from services import permissions as perms
from services.base import Outcome, Service
from services.errors import NotFoundError, PreconditionError, ValidationError
from services.notifications import assigned_message
from services.permissions import Actor
from utils.log import log_extra


class WorkerNotIdle(PreconditionError):
    """The chosen worker picked up a pending task or left the team."""


class BacklogItemClaimed(PreconditionError):
    """The backlog item is no longer pending."""


@dataclass
class Pairing:
    automatic_task_id: int
    user_id: int
    task_id: int
    assigned_by: Optional[int]


@dataclass
class SweepReport:
    assigned: List[Pairing] = field(default_factory=list)
    skipped: List[Dict] = field(default_factory=list)
    teams_without_workers: List[int] = field(default_factory=list)


def backlog_order_key(item: AutomaticTask):
    return (PRIORITY_RANK.get(item.priority, len(PRIORITY_RANK)), item.created_at, item.task_id)


class AssignmentEngine(Service):
    # ---- backlog ----
    def create_automatic_task(
        self,
        actor: Actor,
        *,
        title: str,
        priority: str,
        team_id: int,
        due_date: datetime,
        description: Optional[str] = None,
        estimated_time: Optional[float] = None,
    ) -> AutomaticTask:
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        if priority not in PRIORITIES:
            raise ValidationError("Task priority is required")
        if not team_id:
            raise ValidationError("Team ID is required")
        if due_date is None:
            raise ValidationError("Due date is required")
        perms.authorize(actor, perms.CREATE_AUTOMATIC_TASK, team_id=team_id)

        with self.db.session() as s:
            if s.get(Team, team_id) is None:
                raise NotFoundError("Invalid team ID", metadata={"team_id": team_id})
            now = self.now()
            item = AutomaticTask(
                title=title.strip(),
                description=description,
                priority=priority,
                estimated_time=estimated_time,
                team_id=team_id,
                status="pending",
                due_date=due_date,
                created_at=now,
                updated_at=now,
            )
            s.add(item)
            s.flush()
        self.logger.info(
            "Automatic task queued",
            extra=log_extra(task_id=item.task_id, team_id=team_id, actor_id=actor.id),
        )
        return item

    def idle_workers(self, session, team_id: Optional[int] = None) -> Dict[int, List[int]]:
        """Team members with zero pending tasks, grouped by team, lowest id first."""
        stmt = select(User).where(User.role == perms.TEAM_MEMBER, User.team_id.is_not(None))
        if team_id is not None:
            stmt = stmt.where(User.team_id == team_id)
        members = session.exec(stmt.order_by(User.id.asc())).all()
        busy = pending_task_counts(session, [m.id for m in members])

        grouped: Dict[int, List[int]] = {}
        for member in members:
            if busy.get(member.id, 0) == 0:
                grouped.setdefault(member.team_id, []).append(member.id)
        return grouped

    def pending_backlog(self, session, team_id: Optional[int] = None) -> List[AutomaticTask]:
        stmt = select(AutomaticTask).where(AutomaticTask.status == "pending")
        if team_id is not None:
            stmt = stmt.where(AutomaticTask.team_id == team_id)
        return sorted(session.exec(stmt).all(), key=backlog_order_key)

    # ---- sweep ----
    def sweep(self, assigned_by: Optional[int] = None) -> Outcome[SweepReport]:
        report = SweepReport()
        warnings: List[str] = []

        with self.db.session() as s:
            idle = self.idle_workers(s)
            by_team: "OrderedDict[int, List[int]]" = OrderedDict()
            for item in self.pending_backlog(s):
                if item.team_id is not None:
                    by_team.setdefault(item.team_id, []).append(item.task_id)

        for team_id, queue in by_team.items():
            workers = list(idle.get(team_id, []))
            if not workers:
                report.teams_without_workers.append(team_id)
                continue

            while queue and workers:
                item_id, user_id = queue[0], workers[0]
                try:
                    with self.db.session() as s:
                        pairing = self._pair(
                            s, item_id, user_id, assigned_by,
                            automatic=True, require_idle=True, warnings=warnings,
                        )
                except WorkerNotIdle as exc:
                    workers.pop(0)
                    self._skip(report, item_id, user_id, exc)
                    continue
                except BacklogItemClaimed as exc:
                    queue.pop(0)
                    self._skip(report, item_id, user_id, exc)
                    continue
                queue.pop(0)
                workers.pop(0)
                report.assigned.append(pairing)

        self.logger.info(
            "Sweep finished",
            extra=log_extra(assigned=len(report.assigned), skipped=len(report.skipped)),
        )
        return Outcome(report, warnings)

    def _skip(self, report: SweepReport, item_id: int, user_id: int, exc: Exception) -> None:
        report.skipped.append({"automatic_task_id": item_id, "user_id": user_id, "reason": str(exc)})
        self.logger.info(
            "Pairing skipped until next sweep",
            extra=log_extra(task_id=item_id, user_id=user_id, error=str(exc)),
        )

    # ---- single item ----
    def assign_automatic_task(self, actor: Actor, task_id: int, user_id: Optional[int] = None) -> Outcome[AutomaticTask]:
        """
        Assign one backlog item. With ``user_id`` the item goes straight to that
        user; without it the sweep policy picks an idle member of the item's
        team, falling back to the team lead.
        """
        warnings: List[str] = []
        with self.db.session() as s:
            item = require(s, AutomaticTask, task_id, "Automatic task")
            if item.status != "pending":
                raise BacklogItemClaimed("Task is not in pending status", metadata={"task_id": task_id})
            if item.team_id is None:
                raise PreconditionError("Task has no team assigned", metadata={"task_id": task_id})
            perms.authorize(actor, perms.ASSIGN_AUTOMATIC_TASK, team_id=item.team_id)

            if user_id:
                target = user_id
            else:
                idle = self.idle_workers(s, team_id=item.team_id).get(item.team_id, [])
                target = idle[0] if idle else team_lead_of(s, item.team_id)
                if target is None:
                    raise PreconditionError(
                        "No idle team members and the team has no lead",
                        metadata={"team_id": item.team_id},
                    )
            self._pair(
                s, task_id, target, actor.id,
                automatic=not user_id, require_idle=False, warnings=warnings,
            )
        return Outcome(item, warnings)

    # ---- the unit of work ----
    def _pair(
        self,
        session,
        item_id: int,
        user_id: int,
        assigned_by: Optional[int],
        *,
        automatic: bool,
        require_idle: bool,
        warnings: List[str],
    ) -> Pairing:
        item = session.get(AutomaticTask, item_id)
        if item is None:
            raise BacklogItemClaimed("Automatic task no longer exists", metadata={"task_id": item_id})
        user = session.get(User, user_id)
        if user is None:
            if require_idle:
                raise WorkerNotIdle("Worker no longer exists", metadata={"user_id": user_id})
            raise NotFoundError("User not found", metadata={"id": user_id})
        if require_idle:
            if user.role != perms.TEAM_MEMBER or user.team_id != item.team_id:
                raise WorkerNotIdle("Worker is no longer a member of the team", metadata={"user_id": user_id})
            if not is_idle(session, user_id):
                raise WorkerNotIdle("Worker already has a pending task", metadata={"user_id": user_id})
        if user.team_id is None:
            raise PreconditionError("Assignee has no team", metadata={"user_id": user_id})

        now = self.now()
        if assigned_by is None:
            assigned_by = self._system_assigner(session, item.team_id, user_id)

        task = Task(
            title=item.title,
            description=item.description,
            assigned_to=user.id,
            assigned_by=assigned_by,
            team_id=user.team_id,
            priority=item.priority,
            status="pending",
            review_status="pending",
            due_date=item.due_date,
            created_at=now,
            updated_at=now,
        )
        session.add(task)
        session.flush()

        claimed = session.exec(
            update(AutomaticTask)
            .where(AutomaticTask.task_id == item_id, AutomaticTask.status == "pending")
            .values(
                status="assigned",
                assigned_to=user.id,
                assigned_by=assigned_by,
                assigned_at=now,
                created_task_id=task.id,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise BacklogItemClaimed("Task is not in pending status", metadata={"task_id": item_id})
        session.refresh(item)

        session.add(TaskAssignmentLog(
            task_id=task.id,
            automatic_task_id=item_id,
            assigned_to=user.id,
            assigned_by=assigned_by,
            assigned_at=now,
            automatic_assignment=automatic,
        ))
        self.notify(session, warnings, recipient_id=user.id, task_id=task.id, **assigned_message(task.title))

        self.logger.info(
            "Automatic task assigned",
            extra=log_extra(task_id=task.id, team_id=task.team_id, user_id=user.id, actor_id=assigned_by),
        )
        return Pairing(automatic_task_id=item_id, user_id=user.id, task_id=task.id, assigned_by=assigned_by)

    def _system_assigner(self, session, team_id: Optional[int], user_id: int) -> int:
        admin = first_admin(session)
        if admin is not None:
            return admin.id
        lead = team_lead_of(session, team_id)
        return lead if lead is not None else user_id
