# tests/test_cli.py
import json
from datetime import datetime

from click.testing import CliRunner

from main import cli
from services.assignment import AssignmentEngine


def _invoke(context, *args, **obj):
    return CliRunner().invoke(cli, list(args), obj={"context": context, **obj})


def test_sweep_command_reports_json(context, seed):
    AssignmentEngine(context).create_automatic_task(
        seed.actors["admin"], title="A", priority="high", team_id=seed.beta, due_date=datetime(2025, 4, 1),
    )

    result = _invoke(context, "--json", "sweep")

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["assigned"] == 1


def test_assign_command_surfaces_errors(context, seed):
    result = _invoke(context, "assign", "999", "--actor", str(seed.ids["admin"]))
    assert result.exit_code == 1
    assert "not found" in result.output


def test_flush_outbox_without_sender(context, seed):
    result = _invoke(context, "flush-outbox")
    assert result.exit_code == 0
    assert "disabled" in result.output


def test_leaderboard_empty(context, seed):
    result = _invoke(context, "leaderboard", "--actor", str(seed.ids["admin"]), "--period", "2025-03")
    assert "No performance records" in result.output


def test_scheduler_survives_a_failed_tick(context, seed, monkeypatch):
    calls = []

    def boom(self, assigned_by=None):
        calls.append(1)
        raise RuntimeError("db went away")

    monkeypatch.setattr(AssignmentEngine, "sweep", boom)
    monkeypatch.setattr("main.time.sleep", lambda seconds: None)

    result = _invoke(context, "scheduler", "--ticks", "2", "--interval", "1")

    assert result.exit_code == 0
    assert len(calls) == 2
