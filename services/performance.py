"""Performance metrics: recomputed from finished work, scored per period."""

from typing import Dict, List, Optional

from sqlmodel import select

from models import CompletedTask, Performance, Task, User
from services import permissions as perms
from services.base import Service
from services.permissions import Actor
from services.scoring import rank
from utils.log import log_extra
from utils.metrics import finished_work_frame, summarize_by_user
from utils.timeutil import period_of


class PerformanceService(Service):
    def _finished_rows(self, session, user_id: Optional[int] = None) -> List[dict]:
        done = select(CompletedTask)
        awaiting = select(Task).where(Task.status == "completed")
        if user_id is not None:
            done = done.where(CompletedTask.assigned_to == user_id)
            awaiting = awaiting.where(Task.assigned_to == user_id)

        rows = [
            {
                "task_id": r.task_id,
                "user_id": r.assigned_to,
                "created_at": r.created_at,
                "completed_at": r.completed_at or r.accepted_at,
                "due_date": r.due_date,
            }
            for r in session.exec(done).all()
        ]
        rows.extend(
            {
                "task_id": t.id,
                "user_id": t.assigned_to,
                "created_at": t.created_at,
                "completed_at": t.completed_at,
                "due_date": t.due_date,
            }
            for t in session.exec(awaiting).all()
        )
        return rows

    def recompute(self, session, user_id: int, period: Optional[str] = None) -> Optional[Performance]:
        """Upsert one user's row for ``period`` (default: the current month)."""
        period = period or period_of(self.now())
        summary = summarize_by_user(finished_work_frame(self._finished_rows(session, user_id)), period)
        metrics = summary.get(user_id)
        row = session.exec(
            select(Performance).where(Performance.user_id == user_id, Performance.period == period)
        ).first()
        if metrics is None:
            if row is not None:
                session.delete(row)
                session.flush()
                self.logger.info("Performance cleared", extra=log_extra(user_id=user_id, period=period))
            return None

        if row is None:
            row = Performance(user_id=user_id, period=period)
        row.completed_tasks = metrics["completed_tasks"]
        row.on_time_completion = metrics["on_time_completion"]
        row.average_task_duration = metrics["average_task_duration"]
        row.updated_at = self.now()
        session.add(row)
        session.flush()
        self.logger.info("Performance recomputed", extra=log_extra(user_id=user_id, period=period))
        return row

    def recompute_all(self, period: Optional[str] = None) -> int:
        period = period or period_of(self.now())
        with self.db.session() as s:
            summary = summarize_by_user(finished_work_frame(self._finished_rows(s)), period)
            for user_id in summary:
                self.recompute(s, user_id, period)
        return len(summary)

    def leaderboard(self, actor: Actor, period: Optional[str] = None) -> List[Dict]:
        """
        Score every record of the period against the whole period, then keep
        the rows the caller may see (admin: all, lead: own team, member: self).
        """
        period = period or period_of(self.now())
        with self.db.session() as s:
            records = s.exec(select(Performance).where(Performance.period == period)).all()
            users = {u.id: u for u in s.exec(select(User)).all()}

        scope = perms.scope_for(actor.role, perms.VIEW_PERFORMANCE)
        if scope is None:
            perms.authorize(actor, perms.VIEW_PERFORMANCE)

        board = []
        for entry in rank(records):
            user = users.get(entry.user_id)
            team_id = user.team_id if user else None
            if not perms.can(actor, perms.VIEW_PERFORMANCE, team_id=team_id, owner_id=entry.user_id):
                continue
            board.append({
                "user_id": entry.user_id,
                "name": user.name if user else None,
                "team_id": team_id,
                "score": round(entry.score, 4),
                "category": entry.category,
            })
        return board
