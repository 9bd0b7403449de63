"""
Users and teams.

Invariants kept here:
- an admin has no team; a team lead leads exactly the team they belong to
- a team has at most one lead and a user leads at most one team
- a task's team is its assignee's team, so users with open tasks cannot
  change team
Deleting a user is one transaction that hands the user's team and open work
to someone else first.
"""

from typing import Dict, List, Optional

from sqlalchemy import delete, func, update
from sqlmodel import select

from db import require
from models import (
    AutomaticTask, CompletedTask, EmailJob, Notification, Performance, Task,
    TaskAssignmentLog, TaskInputHistory, Team, User,
)
from models.constants import ROLES
from services import permissions as perms
from services.base import Outcome, Service
from services.errors import ConsistencyError, ValidationError
from services.permissions import Actor
from utils.log import log_extra

_UNSET = object()


def _normalize_email(email: str) -> str:
    if not email or "@" not in email:
        raise ValidationError("A valid email address is required")
    return email.strip().lower()


class UserService(Service):
    # ---- users ----
    def create_user(
        self,
        actor: Actor,
        *,
        email: str,
        name: Optional[str] = None,
        role: str = perms.TEAM_MEMBER,
        team_id: Optional[int] = None,
    ) -> User:
        perms.authorize(actor, perms.MANAGE_USERS)
        if role not in ROLES:
            raise ValidationError(f"Unknown role '{role}'")
        if role == perms.ADMIN and team_id is not None:
            raise ValidationError("Admins do not belong to a team")
        if role == perms.TEAM_LEAD and team_id is None:
            raise ValidationError("A team lead needs a team")

        with self.db.session() as s:
            user = self._new_user(s, email, name, role, None)
            if team_id is not None:
                team = require(s, Team, team_id, "Team")
                if role == perms.TEAM_LEAD:
                    self._make_lead(s, team, user)
                else:
                    user.team_id = team.id
                    s.add(user)
            s.flush()
        self.logger.info("User created", extra=log_extra(user_id=user.id, team_id=team_id, actor_id=actor.id))
        return user

    def register(self, *, email: str, name: Optional[str] = None) -> User:
        """Self-registration: always a team member without a team."""
        with self.db.session() as s:
            user = self._new_user(s, email, name, perms.TEAM_MEMBER, None)
        self.logger.info("User registered", extra=log_extra(user_id=user.id))
        return user

    def update_user(self, actor: Actor, user_id: int, *, role: Optional[str] = None,
                    team_id=_UNSET, name: Optional[str] = None) -> User:
        perms.authorize(actor, perms.MANAGE_USERS)
        if role is not None and role not in ROLES:
            raise ValidationError(f"Unknown role '{role}'")

        with self.db.session() as s:
            user = require(s, User, user_id, "User")
            new_role = role or user.role
            new_team = user.team_id if team_id is _UNSET else team_id

            if new_role == perms.ADMIN:
                new_team = None
            if new_role == perms.TEAM_LEAD and new_team is None:
                raise ValidationError("A team lead needs a team")

            led = self._led_team(s, user.id)
            if led is not None and (new_role != perms.TEAM_LEAD or new_team != led.id):
                raise ConsistencyError(
                    "User leads a team; assign a new lead before changing their role or team",
                    metadata={"team_id": led.id},
                )
            if new_team != user.team_id and self._open_task_count(s, user.id):
                raise ConsistencyError("User has open tasks in their current team", metadata={"user_id": user.id})

            if name is not None:
                user.name = name
            if new_role == perms.TEAM_LEAD and led is None:
                self._make_lead(s, require(s, Team, new_team, "Team"), user)
            else:
                if new_team is not None:
                    require(s, Team, new_team, "Team")
                user.role = new_role
                user.team_id = new_team
                s.add(user)
            s.flush()
        self.logger.info("User updated", extra=log_extra(user_id=user.id, team_id=user.team_id, actor_id=actor.id))
        return user

    # ---- teams ----
    def create_team(self, actor: Actor, *, name: str, lead_id: Optional[int] = None) -> Team:
        perms.authorize(actor, perms.MANAGE_TEAMS)
        if not name or not name.strip():
            raise ValidationError("Team name is required")
        with self.db.session() as s:
            team = Team(name=name.strip())
            s.add(team)
            s.flush()
            if lead_id is not None:
                self._make_lead(s, team, require(s, User, lead_id, "User"))
        self.logger.info("Team created", extra=log_extra(team_id=team.id, user_id=lead_id, actor_id=actor.id))
        return team

    def assign_team_lead(self, actor: Actor, team_id: int, user_id: int, *, replace: bool = False) -> Team:
        """Make ``user_id`` the team's lead; ``replace`` demotes a current lead to member."""
        perms.authorize(actor, perms.MANAGE_TEAMS)
        with self.db.session() as s:
            team = require(s, Team, team_id, "Team")
            user = require(s, User, user_id, "User")
            if team.lead_id == user.id:
                return team
            if team.lead_id is not None:
                if not replace:
                    raise ConsistencyError("Team already has a lead", metadata={"team_id": team.id, "lead_id": team.lead_id})
                previous = s.get(User, team.lead_id)
                team.lead_id = None
                s.add(team)
                s.flush()
                if previous is not None:
                    previous.role = perms.TEAM_MEMBER
                    s.add(previous)
            self._make_lead(s, team, user)
        self.logger.info("Team lead assigned", extra=log_extra(team_id=team_id, user_id=user_id, actor_id=actor.id))
        return team

    # ---- delete ----
    def delete_user(self, actor: Actor, user_id: int, *, successor_id: Optional[int] = None) -> Outcome[Dict]:
        perms.authorize(actor, perms.MANAGE_USERS)
        if user_id == actor.id:
            raise ConsistencyError("You cannot delete your own account")

        summary = {
            "user_id": user_id,
            "new_lead_id": None,
            "deleted_team_id": None,
            "tasks_transferred": 0,
            "tasks_deleted": 0,
        }
        with self.db.session() as s:
            user = require(s, User, user_id, "User")
            heir: Optional[int] = None
            led = self._led_team(s, user.id)

            if led is not None:
                members = s.exec(
                    select(User)
                    .where(User.team_id == led.id, User.role == perms.TEAM_MEMBER, User.id != user.id)
                    .order_by(User.id.asc())
                ).all()
                if members:
                    successor = self._pick_successor(members, successor_id)
                    s.exec(update(User).where(User.id == successor.id).values(role=perms.TEAM_LEAD)
                           .execution_options(synchronize_session=False))
                    s.exec(update(Team).where(Team.id == led.id).values(lead_id=successor.id)
                           .execution_options(synchronize_session=False))
                    heir = successor.id
                    summary["new_lead_id"] = successor.id
                    self._reattribute(s, user.id, successor.id)
                else:
                    summary["tasks_deleted"] += self._delete_team(s, led.id)
                    summary["deleted_team_id"] = led.id
            elif user.team_id is not None:
                teammate = s.exec(
                    select(User)
                    .where(User.team_id == user.team_id, User.role == perms.TEAM_MEMBER, User.id != user.id)
                    .order_by(User.id.asc())
                ).first()
                if teammate is not None:
                    heir = teammate.id
                else:
                    team = s.get(Team, user.team_id)
                    heir = team.lead_id if team else None

            transferred: List[int] = []
            if heir is not None:
                transferred = self._transfer_open_tasks(s, user.id, heir, actor.id)
                summary["tasks_transferred"] = len(transferred)
            summary["tasks_deleted"] += self._delete_tasks(s, Task.assigned_to == user.id)

            self._reattribute(s, user.id, actor.id)
            if transferred:
                # the heir picks up the written progress together with the task
                s.exec(update(TaskInputHistory)
                       .where(TaskInputHistory.user_id == user.id, TaskInputHistory.task_id.in_(transferred))
                       .values(user_id=heir).execution_options(synchronize_session=False))
            if heir is not None:
                s.exec(update(AutomaticTask).where(AutomaticTask.assigned_to == user.id)
                       .values(assigned_to=heir).execution_options(synchronize_session=False))
            else:
                self._release_backlog(s, user.id)
            for model in (Notification, EmailJob, Performance, TaskInputHistory):
                s.exec(delete(model).where(model.user_id == user.id).execution_options(synchronize_session=False))
            s.exec(delete(TaskAssignmentLog)
                   .where((TaskAssignmentLog.assigned_to == user.id) | (TaskAssignmentLog.assigned_by == user.id))
                   .execution_options(synchronize_session=False))
            s.expunge(user)
            s.exec(delete(User).where(User.id == user.id).execution_options(synchronize_session=False))

        self.logger.info("User deleted", extra=log_extra(actor_id=actor.id, **summary))
        return Outcome(summary, [])

    # ---- helpers ----
    def _new_user(self, s, email: str, name: Optional[str], role: str, team_id: Optional[int]) -> User:
        email = _normalize_email(email)
        if s.exec(select(User).where(User.email == email)).first() is not None:
            raise ConsistencyError("A user with this email already exists", metadata={"email": email})
        user = User(email=email, name=name, role=role, team_id=team_id, created_at=self.now())
        s.add(user)
        s.flush()
        return user

    def _led_team(self, s, user_id: int) -> Optional[Team]:
        return s.exec(select(Team).where(Team.lead_id == user_id)).first()

    def _make_lead(self, s, team: Team, user: User) -> None:
        if team.lead_id is not None and team.lead_id != user.id:
            raise ConsistencyError("Team already has a lead", metadata={"team_id": team.id})
        led = self._led_team(s, user.id)
        if led is not None and led.id != team.id:
            raise ConsistencyError("User already leads another team", metadata={"team_id": led.id})
        if user.team_id not in (None, team.id) and self._open_task_count(s, user.id):
            raise ConsistencyError("User has open tasks in their current team", metadata={"user_id": user.id})
        user.role = perms.TEAM_LEAD
        user.team_id = team.id
        team.lead_id = user.id
        s.add(user)
        s.add(team)
        s.flush()

    def _open_task_count(self, s, user_id: int) -> int:
        return s.exec(select(func.count(Task.id)).where(Task.assigned_to == user_id)).one()

    def _pick_successor(self, members: List[User], successor_id: Optional[int]) -> User:
        if successor_id is None:
            return members[0]
        for member in members:
            if member.id == successor_id:
                return member
        raise ConsistencyError("Successor must be a member of the same team", metadata={"successor_id": successor_id})

    def _transfer_open_tasks(self, s, from_user: int, to_user: int, actor_id: int) -> List[int]:
        task_ids = list(s.exec(select(Task.id).where(Task.assigned_to == from_user)).all())
        if not task_ids:
            return []
        s.exec(
            update(Task)
            .where(Task.id.in_(task_ids))
            .values(assigned_to=to_user, version=Task.version + 1, updated_at=self.now())
            .execution_options(synchronize_session=False)
        )
        now = self.now()
        for task_id in task_ids:
            s.add(TaskAssignmentLog(
                task_id=task_id, assigned_to=to_user, assigned_by=actor_id,
                assigned_at=now, automatic_assignment=True,
            ))
        s.flush()
        return task_ids

    def _release_backlog(self, s, user_id: int) -> None:
        """Backlog items held by a user nobody inherits from.

        Items whose task was accepted are finished and go away; the rest
        return to the queue for the next sweep.
        """
        items = s.exec(select(AutomaticTask).where(AutomaticTask.assigned_to == user_id)).all()
        for item in items:
            if item.created_task_id is not None and s.exec(
                select(CompletedTask.id).where(CompletedTask.task_id == item.created_task_id)
            ).first() is not None:
                s.delete(item)
                continue
            item.status = "pending"
            item.assigned_to = None
            item.assigned_by = None
            item.assigned_at = None
            item.created_task_id = None
            item.updated_at = self.now()
            s.add(item)
        s.flush()
        if items:
            self.logger.info("Backlog released", extra=log_extra(user_id=user_id, items=len(items)))

    def _reattribute(self, s, from_user: int, to_user: int) -> None:
        for model in (Task, AutomaticTask):
            s.exec(update(model).where(model.assigned_by == from_user).values(assigned_by=to_user)
                   .execution_options(synchronize_session=False))

    def _delete_tasks(self, s, condition) -> int:
        task_ids = s.exec(select(Task.id).where(condition)).all()
        if task_ids:
            s.exec(delete(TaskInputHistory).where(TaskInputHistory.task_id.in_(task_ids))
                   .execution_options(synchronize_session=False))
            s.exec(delete(Task).where(Task.id.in_(task_ids)).execution_options(synchronize_session=False))
        return len(task_ids)

    def _delete_team(self, s, team_id: int) -> int:
        deleted = self._delete_tasks(s, Task.team_id == team_id)
        s.exec(delete(AutomaticTask).where(AutomaticTask.team_id == team_id)
               .execution_options(synchronize_session=False))
        s.exec(update(User).where(User.team_id == team_id).values(team_id=None)
               .execution_options(synchronize_session=False))
        s.exec(delete(Team).where(Team.id == team_id).execution_options(synchronize_session=False))
        return deleted
