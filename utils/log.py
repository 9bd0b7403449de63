import json
import logging
from typing import Any, Dict, Optional

STANDARD_FIELDS = ("task_id", "team_id", "user_id", "actor_id")


class ContextFilter(logging.Filter):
    """
    Ensure the standard context fields exist on every log record so formatters
    can rely on them.
    """

    def __init__(self, defaults: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.defaults = {field: "-" for field in STANDARD_FIELDS}
        if defaults:
            self.defaults.update({k: v for k, v in defaults.items() if v is not None})

    def filter(self, record: logging.LogRecord) -> bool:
        for key, default in self.defaults.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting
        data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STANDARD_FIELDS:
            data[field] = getattr(record, field, "-")
        for extra_key in ("error", "error_type", "error_category", "category", "assigned", "skipped"):
            if hasattr(record, extra_key):
                data[extra_key] = getattr(record, extra_key)
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    handler = logging.StreamHandler()
    handler.addFilter(ContextFilter())
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s "
                "task=%(task_id)s team=%(team_id)s user=%(user_id)s actor=%(actor_id)s"
            )
        )
    root = logging.getLogger()
    root.handlers = []
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.addHandler(handler)
    return logging.getLogger("strivio")


def get_logger(name: str = "strivio") -> logging.Logger:
    return logging.getLogger(name)


def log_extra(
    *,
    task_id: Optional[int] = None,
    team_id: Optional[int] = None,
    user_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build a consistent ``extra`` dict for structured logging. Only non-None
    values are included so ContextFilter defaults still apply.
    """
    payload: Dict[str, Any] = {}
    if task_id is not None:
        payload["task_id"] = task_id
    if team_id is not None:
        payload["team_id"] = team_id
    if user_id is not None:
        payload["user_id"] = user_id
    if actor_id is not None:
        payload["actor_id"] = actor_id
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload
