# models/constants.py

ROLES = ("admin", "team_lead", "team_member")
PRIORITIES = ("high", "medium", "low")
TASK_STATUSES = ("pending", "in_progress", "completed")
REVIEW_STATUSES = ("pending", "accepted", "rejected", "needs_improvement")
AUTOMATIC_TASK_STATUSES = ("pending", "assigned")
EMAIL_JOB_STATUSES = ("pending", "sent", "failed")

NOTIFICATION_CATEGORIES = (
    "task_assigned",
    "task_completed",
    "task_review_accepted",
    "task_review_rejected",
    "task_review_needs_improvement",
)

# lower rank sorts first
PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


def in_clause(column: str, values) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"
