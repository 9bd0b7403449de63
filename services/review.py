"""
Completion pipeline: an accepted task leaves the active set for good.

Runs inside the reviewer's transaction:
    latest progress snapshot -> CompletedTask insert -> acceptance notification
    -> active Task delete
Any failure before commit rolls the whole move back, so a CompletedTask never
exists next to its active Task.
"""

from typing import List, Optional

from sqlmodel import select

from models import CompletedTask, Task
from services.base import Service
from services.errors import ConsistencyError
from services.notifications import review_message
from services.permissions import Actor
from utils.log import log_extra
from utils.progress import latest_progress


class CompletionPipeline(Service):
    def completed_record(self, session, task_id: int) -> Optional[CompletedTask]:
        return session.exec(select(CompletedTask).where(CompletedTask.task_id == task_id)).first()

    def finalize(self, session, task: Task, reviewer: Actor, warnings: List[str]) -> CompletedTask:
        if self.completed_record(session, task.id) is not None:
            raise ConsistencyError("Task already has a completed record", metadata={"task_id": task.id})

        snapshot = latest_progress(session, task.id)
        record = CompletedTask(
            task_id=task.id,
            title=task.title,
            description=task.description,
            assigned_to=task.assigned_to,
            assigned_by=task.assigned_by,
            team_id=task.team_id,
            priority=task.priority,
            status="completed",
            review_status="accepted",
            due_date=task.due_date,
            created_at=task.created_at,
            updated_at=task.updated_at,
            completed_at=task.completed_at,
            accepted_at=self.now(),
            accepted_by=reviewer.id,
            work_done=snapshot.input_text if snapshot else None,
        )
        session.add(record)
        session.flush()

        self.notify(
            session, warnings, recipient_id=task.assigned_to, task_id=task.id,
            **review_message(task.title, "accepted"),
        )

        session.delete(task)
        session.flush()
        self.logger.info(
            "Task accepted and archived",
            extra=log_extra(task_id=task.id, user_id=record.assigned_to, actor_id=reviewer.id),
        )
        return record
