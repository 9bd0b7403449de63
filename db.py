# db.py

#============================================================#
#                        Strivio-Teams                       #
#============================================================#
# Author      : Aktham Almomani                              #
# Created     : 2025-11-02                                   #
# Version     : V1.0.0                                       #
#------------------------------------------------------------#
# Purpose     : Strivio-Teams is the team task engine:       #
#               task lifecycle, reviews, automatic backlog   #
#               assignment and performance scoring           #
#               (SQLite/Postgres powered)                    #
#                                                            #
# Change Log  :                                              #
#  - V1.0.0 (2025-11-02): Initial release.                   #
#============================================================#


from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sqlalchemy import event, func
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from models import (
    AutomaticTask, CompletedTask, Notification, Performance, Task,
    TaskAssignmentLog, Team, User,
)
from services.errors import NotFoundError
from utils.config import Config


def make_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty db
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine
    return create_engine(url, pool_pre_ping=True, echo=echo)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite defers BEGIN on its own; take over so SAVEPOINT nests properly
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: Optional[str] = None, *, engine: Optional[Engine] = None, echo: bool = False):
        if engine is None:
            engine = make_engine(url or "sqlite:///strivio.db", echo=echo)
        self.engine = engine

    @classmethod
    def from_config(cls, config: Config) -> "Database":
        return cls(config.database_url)

    def init_db(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """One transaction: commit on success, roll back on any error."""
        with Session(self.engine, expire_on_commit=False) as s:
            try:
                yield s
                s.commit()
            except Exception:
                s.rollback()
                raise

    # ---- read helpers ----
    def get_tasks_for_user(self, user_id: int) -> List[Dict]:
        """Return plain dicts to avoid detached lazy loads."""
        with self.session() as s:
            rows = s.exec(
                select(Task).where(Task.assigned_to == user_id).order_by(Task.id.desc())
            ).all()
            return [_task_dict(t) for t in rows]

    def get_tasks_for_team(self, team_id: int) -> List[Dict]:
        with self.session() as s:
            rows = s.exec(
                select(Task).where(Task.team_id == team_id).order_by(Task.id.desc())
            ).all()
            return [_task_dict(t) for t in rows]

    def get_automatic_tasks(self, status: Optional[str] = None) -> List[Dict]:
        with self.session() as s:
            stmt = select(AutomaticTask)
            if status:
                stmt = stmt.where(AutomaticTask.status == status)
            rows = s.exec(stmt.order_by(AutomaticTask.created_at.asc())).all()
            return [r.model_dump() for r in rows]

    def get_completed_tasks(self, user_id: Optional[int] = None) -> List[Dict]:
        with self.session() as s:
            stmt = select(CompletedTask)
            if user_id is not None:
                stmt = stmt.where(CompletedTask.assigned_to == user_id)
            rows = s.exec(stmt.order_by(CompletedTask.accepted_at.desc())).all()
            return [r.model_dump() for r in rows]

    def get_assignment_logs(self) -> List[Dict]:
        with self.session() as s:
            rows = s.exec(
                select(TaskAssignmentLog).order_by(TaskAssignmentLog.assigned_at.desc(), TaskAssignmentLog.id.desc())
            ).all()
            return [r.model_dump() for r in rows]

    def get_notifications(self, user_id: int, unread_only: bool = False) -> List[Dict]:
        with self.session() as s:
            stmt = select(Notification).where(Notification.user_id == user_id)
            if unread_only:
                stmt = stmt.where(Notification.read == False)  # noqa: E712
            rows = s.exec(stmt.order_by(Notification.created_at.desc(), Notification.id.desc())).all()
            return [r.model_dump() for r in rows]

    def get_performance(self, period: str) -> List[Dict]:
        with self.session() as s:
            rows = s.exec(select(Performance).where(Performance.period == period)).all()
            return [r.model_dump() for r in rows]


def _task_dict(t: Task) -> Dict:
    return {
        "id": t.id,
        "title": t.title,
        "status": t.status,
        "review_status": t.review_status,
        "priority": t.priority,
        "team_id": t.team_id,
        "assigned_to": t.assigned_to,
        "due_date": t.due_date,
        "completed_at": t.completed_at,
    }


# ---- session-level helpers shared by the services ----
def require(session: Session, model, pk, label: Optional[str] = None):
    row = session.get(model, pk)
    if row is None:
        raise NotFoundError(f"{label or model.__name__} not found", metadata={"id": pk})
    return row


def pending_task_counts(session: Session, user_ids: Optional[List[int]] = None) -> Dict[int, int]:
    stmt = (
        select(Task.assigned_to, func.count(Task.id))
        .where(Task.status == "pending")
        .group_by(Task.assigned_to)
    )
    if user_ids is not None:
        stmt = stmt.where(Task.assigned_to.in_(user_ids))
    return {user_id: count for user_id, count in session.exec(stmt).all()}


def is_idle(session: Session, user_id: int) -> bool:
    return pending_task_counts(session, [user_id]).get(user_id, 0) == 0


def first_admin(session: Session, exclude: Optional[int] = None) -> Optional[User]:
    stmt = select(User).where(User.role == "admin")
    if exclude is not None:
        stmt = stmt.where(User.id != exclude)
    return session.exec(stmt.order_by(User.id.asc())).first()


def team_lead_of(session: Session, team_id: Optional[int]) -> Optional[int]:
    if team_id is None:
        return None
    team = session.get(Team, team_id)
    return team.lead_id if team else None
