# tests/test_log.py
import json
import logging

from utils.log import ContextFilter, JsonFormatter, log_extra


def test_log_extra_drops_empty_values():
    assert log_extra(task_id=3, user_id=None, error="boom", period=None) == {"task_id": 3, "error": "boom"}


def test_json_formatter_carries_context_fields():
    record = logging.LogRecord("strivio", logging.INFO, __file__, 1, "Task created", None, None)
    for key, value in log_extra(task_id=5, actor_id=2, category="task_assigned").items():
        setattr(record, key, value)
    ContextFilter().filter(record)

    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "Task created"
    assert (data["task_id"], data["actor_id"], data["team_id"]) == (5, 2, "-")
    assert data["category"] == "task_assigned"
