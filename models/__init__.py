# models/__init__.py
from .team import Team
from .user import User
from .task import Task
from .automatic_task import AutomaticTask
from .completed_task import CompletedTask
from .performance import Performance
from .task_input_history import TaskInputHistory
from .notification import Notification
from .task_assignment_log import TaskAssignmentLog
from .email_job import EmailJob
