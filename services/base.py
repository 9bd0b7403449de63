"""
Service base

ServiceContext carries every collaborator a service needs (database,
configuration, notifier, clock) so nothing reaches for module-level state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Generic, List, Optional, TypeVar

from db import Database
from utils.config import Config
from utils.log import get_logger, log_extra
from utils.timeutil import utcnow

T = TypeVar("T")


@dataclass
class ServiceContext:
    db: Database
    config: Config
    notifier: Any  # services.notifications.Notifier
    clock: Callable[[], datetime] = utcnow


@dataclass
class Outcome(Generic[T]):
    """Result of a core operation plus any best-effort side effects that failed."""

    value: T
    warnings: List[str] = field(default_factory=list)


class Service:
    def __init__(self, context: ServiceContext) -> None:
        self.context = context
        self.db = context.db
        self.config = context.config
        self.notifier = context.notifier
        self.logger = get_logger(self.__class__.__name__)

    def now(self) -> datetime:
        return self.context.clock()

    def notify(
        self,
        session,
        warnings: List[str],
        *,
        recipient_id: Optional[int],
        title: str,
        message: str,
        category: str,
        task_id: Optional[int] = None,
    ) -> None:
        """Record a notification inside a savepoint; failures become warnings."""
        if recipient_id is None:
            warnings.append(f"no recipient for '{category}' notification")
            return
        try:
            with session.begin_nested():
                self.notifier.notify(
                    session,
                    recipient_id=recipient_id,
                    title=title,
                    message=message,
                    category=category,
                    task_id=task_id,
                )
        except Exception as exc:
            text = f"{category} notification for user {recipient_id} failed: {exc}"
            self.logger.warning(
                text,
                extra=log_extra(task_id=task_id, user_id=recipient_id, error=str(exc), error_type=type(exc).__name__),
            )
            warnings.append(text)
