# main.py

#============================================================#
#                        Strivio-Teams                       #
#============================================================#
# Author      : Aktham Almomani                              #
# Created     : 2025-11-02                                   #
# Version     : V1.0.0                                       #
#------------------------------------------------------------#
# Purpose     : Command line entry point: schema setup,      #
#               backlog sweeps, outbox delivery, performance #
#               recompute and the periodic scheduler         #
#============================================================#

import json
import time
from typing import Optional

import click

from db import Database, require
from models import User
from services.assignment import AssignmentEngine
from services.base import ServiceContext
from services.errors import StrivioError
from services.notifications import OutboxNotifier, OutboxWorker, SendGridSender
from services.performance import PerformanceService
from services.permissions import Actor
from utils.config import load_config
from utils.log import get_logger, log_extra, setup_logging

logger = get_logger("strivio.cli")


def build_context(config=None) -> ServiceContext:
    config = config or load_config()
    db = Database.from_config(config)
    return ServiceContext(db=db, config=config, notifier=OutboxNotifier())


def email_sender(config) -> Optional[SendGridSender]:
    if not config.email_enabled:
        return None
    return SendGridSender(config.sendgrid_api_key, config.mail_from)


def _context(ctx) -> ServiceContext:
    return ctx.obj["context"]


def _actor(context: ServiceContext, user_id: int) -> Actor:
    with context.db.session() as s:
        return Actor.from_user(require(s, User, user_id, "User"))


def _echo(ctx, data) -> None:
    if ctx.obj.get("json"):
        click.echo(json.dumps(data, default=str))
        return
    if isinstance(data, list):
        for row in data:
            click.echo("  ".join(f"{k}={v}" for k, v in row.items()))
    else:
        click.echo("  ".join(f"{k}={v}" for k, v in data.items()))


def _warn(warnings) -> None:
    for w in warnings:
        click.echo(f"warning: {w}", err=True)


# ---------- CLI ----------
@click.group()
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(ctx, json_output):
    """Strivio-Teams task engine."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = json_output
    if "context" not in ctx.obj:
        try:
            config = load_config()
        except StrivioError as exc:
            raise click.ClickException(str(exc))
        setup_logging(config.log_level, json_output=config.log_json)
        ctx.obj["context"] = build_context(config)


@cli.command("init-db")
@click.pass_context
def init_db(ctx):
    """Create all tables."""
    _context(ctx).db.init_db()
    click.echo("Database initialised")


@cli.command()
@click.option("--assigned-by", type=int, default=None, help="User recorded as assigner")
@click.pass_context
def sweep(ctx, assigned_by):
    """Hand pending backlog items to idle team members."""
    outcome = AssignmentEngine(_context(ctx)).sweep(assigned_by=assigned_by)
    report = outcome.value
    _echo(ctx, {
        "assigned": len(report.assigned),
        "skipped": len(report.skipped),
        "teams_without_workers": report.teams_without_workers,
    })
    _warn(outcome.warnings)


@cli.command()
@click.argument("task_id", type=int)
@click.option("--actor", "actor_id", type=int, required=True, help="Acting admin or team lead")
@click.option("--user", "user_id", type=int, default=None, help="Assign straight to this user")
@click.pass_context
def assign(ctx, task_id, actor_id, user_id):
    """Assign one backlog item."""
    context = _context(ctx)
    try:
        outcome = AssignmentEngine(context).assign_automatic_task(
            _actor(context, actor_id), task_id, user_id=user_id
        )
    except StrivioError as exc:
        raise click.ClickException(str(exc))
    item = outcome.value
    _echo(ctx, {
        "task_id": item.task_id,
        "assigned_to": item.assigned_to,
        "created_task_id": item.created_task_id,
    })
    _warn(outcome.warnings)


@cli.command("flush-outbox")
@click.option("--limit", type=int, default=None)
@click.pass_context
def flush_outbox(ctx, limit):
    """Deliver queued email."""
    context = _context(ctx)
    sender = ctx.obj.get("sender") or email_sender(context.config)
    if sender is None:
        click.echo("Email delivery disabled; jobs stay queued")
        return
    worker = OutboxWorker(
        context.db, sender,
        max_attempts=context.config.email_max_attempts,
        batch_size=context.config.email_batch_size,
    )
    _echo(ctx, worker.flush(limit))


@cli.command()
@click.option("--period", default=None, help="YYYY-MM, default current month")
@click.pass_context
def recompute(ctx, period):
    """Recompute performance rows for a period."""
    count = PerformanceService(_context(ctx)).recompute_all(period)
    click.echo(f"Recomputed {count} performance rows")


@cli.command()
@click.option("--actor", "actor_id", type=int, required=True)
@click.option("--period", default=None, help="YYYY-MM, default current month")
@click.pass_context
def leaderboard(ctx, actor_id, period):
    """Show performance scores, best first."""
    context = _context(ctx)
    try:
        board = PerformanceService(context).leaderboard(_actor(context, actor_id), period)
    except StrivioError as exc:
        raise click.ClickException(str(exc))
    if not board:
        click.echo("No performance records")
        return
    _echo(ctx, board)


@cli.command()
@click.option("--interval", type=int, default=None, help="Seconds between ticks")
@click.option("--ticks", type=int, default=0, help="Stop after N ticks (0 = forever)")
@click.pass_context
def scheduler(ctx, interval, ticks):
    """Run sweep + outbox flush periodically."""
    context = _context(ctx)
    interval = interval or context.config.sweep_interval_seconds
    engine = AssignmentEngine(context)
    sender = ctx.obj.get("sender") or email_sender(context.config)
    worker = None
    if sender is not None:
        worker = OutboxWorker(
            context.db, sender,
            max_attempts=context.config.email_max_attempts,
            batch_size=context.config.email_batch_size,
        )

    done = 0
    while True:
        try:
            outcome = engine.sweep()
            if worker is not None:
                worker.flush()
            logger.info(
                "Scheduler tick finished",
                extra=log_extra(assigned=len(outcome.value.assigned), skipped=len(outcome.value.skipped)),
            )
        except Exception as exc:
            # one bad tick must not stop the loop
            logger.exception("Scheduler tick failed", extra=log_extra(error=str(exc), error_type=type(exc).__name__))
        done += 1
        if ticks and done >= ticks:
            break
        time.sleep(interval)


if __name__ == "__main__":
    cli()
