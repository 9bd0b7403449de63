# tests/test_users.py
import pytest
from sqlmodel import select

from models import AutomaticTask, CompletedTask, Notification, Task, Team, User
from services.assignment import AssignmentEngine
from services.errors import AuthorizationError, ConsistencyError, ValidationError
from services.permissions import Actor
from services.tasks import TaskService
from services.users import UserService

FULL_TEXT = "Finished the work and documented it. " * 15


@pytest.fixture
def users(context):
    return UserService(context)


@pytest.fixture
def tasks(context):
    return TaskService(context)


def _get(db, model, pk):
    with db.session() as s:
        return s.get(model, pk)


# ---- create / register ----
def test_register_creates_teamless_member(users):
    user = users.register(email="  New@Example.com ", name="Newbie")
    assert (user.email, user.role, user.team_id) == ("new@example.com", "team_member", None)


def test_duplicate_email_is_rejected(users, seed):
    with pytest.raises(ConsistencyError):
        users.register(email="M1@example.com")


def test_admin_creates_member_in_team(users, seed):
    user = users.create_user(seed.actors["admin"], email="m4@example.com", team_id=seed.alpha)
    assert (user.role, user.team_id) == ("team_member", seed.alpha)


def test_only_admin_manages_users(users, seed):
    with pytest.raises(AuthorizationError):
        users.create_user(seed.actors["lead_a"], email="x@example.com", team_id=seed.alpha)


@pytest.mark.parametrize(
    "role,team",
    [("admin", "alpha"), ("team_lead", None), ("owner", None)],
)
def test_role_team_invariant_on_create(users, seed, role, team):
    team_id = getattr(seed, team) if team else None
    with pytest.raises(ValidationError):
        users.create_user(seed.actors["admin"], email="x@example.com", role=role, team_id=team_id)


def test_team_with_lead_rejects_second_lead(users, seed, db):
    with pytest.raises(ConsistencyError):
        users.create_user(seed.actors["admin"], email="x@example.com", role="team_lead", team_id=seed.alpha)
    with db.session() as s:
        assert s.exec(select(User).where(User.email == "x@example.com")).first() is None


# ---- teams ----
def test_create_team_with_lead(users, seed, db):
    newbie = users.register(email="lead.c@example.com")
    team = users.create_team(seed.actors["admin"], name="Gamma", lead_id=newbie.id)

    assert team.lead_id == newbie.id
    promoted = _get(db, User, newbie.id)
    assert (promoted.role, promoted.team_id) == ("team_lead", team.id)


def test_user_cannot_lead_two_teams(users, seed):
    with pytest.raises(ConsistencyError):
        users.create_team(seed.actors["admin"], name="Gamma", lead_id=seed.ids["lead_a"])


def test_replace_team_lead(users, seed, db):
    with pytest.raises(ConsistencyError):
        users.assign_team_lead(seed.actors["admin"], seed.alpha, seed.ids["m1"])

    users.assign_team_lead(seed.actors["admin"], seed.alpha, seed.ids["m1"], replace=True)

    assert _get(db, Team, seed.alpha).lead_id == seed.ids["m1"]
    assert _get(db, User, seed.ids["m1"]).role == "team_lead"
    assert _get(db, User, seed.ids["lead_a"]).role == "team_member"


# ---- update ----
def test_team_change_refused_with_open_tasks(users, tasks, seed, db):
    tasks.create_task(seed.actors["lead_a"], title="X", assigned_to=seed.ids["m1"])
    with pytest.raises(ConsistencyError):
        users.update_user(seed.actors["admin"], seed.ids["m1"], team_id=seed.beta)
    assert _get(db, User, seed.ids["m1"]).team_id == seed.alpha


def test_member_moves_team_when_free(users, seed):
    moved = users.update_user(seed.actors["admin"], seed.ids["m2"], team_id=seed.beta)
    assert moved.team_id == seed.beta


def test_lead_cannot_be_demoted_directly(users, seed):
    with pytest.raises(ConsistencyError):
        users.update_user(seed.actors["admin"], seed.ids["lead_a"], role="team_member")


def test_promote_to_admin_clears_team(users, seed):
    promoted = users.update_user(seed.actors["admin"], seed.ids["m2"], role="admin")
    assert (promoted.role, promoted.team_id) == ("admin", None)


# ---- delete ----
def test_admin_cannot_delete_self(users, seed):
    with pytest.raises(ConsistencyError):
        users.delete_user(seed.actors["admin"], seed.ids["admin"])


def test_deleting_lead_promotes_successor(users, tasks, seed, db):
    task = tasks.create_task(seed.actors["admin"], title="Lead work", assigned_to=seed.ids["lead_a"]).value
    member_task = tasks.create_task(seed.actors["lead_a"], title="Member work", assigned_to=seed.ids["m2"]).value

    summary = users.delete_user(seed.actors["admin"], seed.ids["lead_a"]).value

    assert summary["new_lead_id"] == seed.ids["m1"]
    assert summary["tasks_transferred"] == 1
    assert _get(db, Team, seed.alpha).lead_id == seed.ids["m1"]
    assert _get(db, User, seed.ids["m1"]).role == "team_lead"
    assert _get(db, User, seed.ids["lead_a"]) is None
    moved = _get(db, Task, task.id)
    assert (moved.assigned_to, moved.team_id) == (seed.ids["m1"], seed.alpha)
    assert _get(db, Task, member_task.id).assigned_by == seed.ids["m1"]


def test_deleting_lead_with_explicit_successor(users, seed, db):
    summary = users.delete_user(seed.actors["admin"], seed.ids["lead_a"], successor_id=seed.ids["m2"]).value
    assert summary["new_lead_id"] == seed.ids["m2"]
    assert _get(db, Team, seed.alpha).lead_id == seed.ids["m2"]


def test_successor_must_be_in_team(users, seed, db):
    with pytest.raises(ConsistencyError):
        users.delete_user(seed.actors["admin"], seed.ids["lead_a"], successor_id=seed.ids["m3"])
    assert _get(db, User, seed.ids["lead_a"]) is not None


def test_deleting_lone_lead_deletes_team(users, seed, db, context):
    users.delete_user(seed.actors["admin"], seed.ids["m3"])
    AssignmentEngine(context).create_automatic_task(
        seed.actors["admin"], title="Orphan", priority="low", team_id=seed.beta,
        due_date=context.clock(),
    )

    summary = users.delete_user(seed.actors["admin"], seed.ids["lead_b"]).value

    assert summary["deleted_team_id"] == seed.beta
    assert _get(db, Team, seed.beta) is None
    with db.session() as s:
        assert s.exec(select(AutomaticTask).where(AutomaticTask.team_id == seed.beta)).all() == []


def test_deleting_member_transfers_open_tasks(users, tasks, seed, db):
    task = tasks.create_task(seed.actors["lead_a"], title="X", assigned_to=seed.ids["m1"]).value

    summary = users.delete_user(seed.actors["admin"], seed.ids["m1"]).value

    assert summary["tasks_transferred"] == 1
    assert _get(db, Task, task.id).assigned_to == seed.ids["m2"]
    with db.session() as s:
        assert s.exec(select(Notification).where(Notification.user_id == seed.ids["m1"])).all() == []


def test_completed_records_survive_delete(users, tasks, seed, db):
    task = tasks.create_task(seed.actors["lead_b"], title="X", assigned_to=seed.ids["m3"]).value
    tasks.save_progress(seed.actors["m3"], task.id, FULL_TEXT)
    tasks.submit_task(seed.actors["m3"], task.id)
    tasks.review_task(seed.actors["lead_b"], task.id, "accepted")

    users.delete_user(seed.actors["admin"], seed.ids["m3"])

    with db.session() as s:
        record = s.exec(select(CompletedTask).where(CompletedTask.task_id == task.id)).one()
    assert record.assigned_to == seed.ids["m3"]


def test_transferred_task_keeps_written_progress(users, tasks, seed, db):
    task = tasks.create_task(seed.actors["lead_a"], title="X", assigned_to=seed.ids["m1"]).value
    tasks.save_progress(seed.actors["m1"], task.id, FULL_TEXT)
    tasks.submit_task(seed.actors["m1"], task.id)

    users.delete_user(seed.actors["admin"], seed.ids["m1"])
    record = tasks.review_task(seed.actors["lead_a"], task.id, "accepted").value

    assert record.assigned_to == seed.ids["m2"]
    assert record.work_done == FULL_TEXT


def test_heir_can_submit_inherited_progress(users, tasks, seed):
    task = tasks.create_task(seed.actors["lead_a"], title="X", assigned_to=seed.ids["m1"]).value
    tasks.save_progress(seed.actors["m1"], task.id, FULL_TEXT)

    users.delete_user(seed.actors["admin"], seed.ids["m1"])
    submitted = tasks.submit_task(seed.actors["m2"], task.id).value

    assert (submitted.status, submitted.review_status) == ("completed", "pending")


def _lone_worker_with_item(users, seed, context):
    """A worker in a team without lead or teammates, holding one backlog item."""
    gamma = users.create_team(seed.actors["admin"], name="Gamma")
    worker = users.create_user(seed.actors["admin"], email="g@example.com", team_id=gamma.id)
    engine = AssignmentEngine(context)
    item = engine.create_automatic_task(
        seed.actors["admin"], title="Solo", priority="high", team_id=gamma.id, due_date=context.clock(),
    )
    return worker, engine.assign_automatic_task(seed.actors["admin"], item.task_id, user_id=worker.id).value


def test_deleting_user_without_heir_requeues_backlog_item(users, seed, db, context):
    worker, item = _lone_worker_with_item(users, seed, context)

    summary = users.delete_user(seed.actors["admin"], worker.id).value

    assert summary["tasks_deleted"] == 1
    assert _get(db, Task, item.created_task_id) is None
    requeued = _get(db, AutomaticTask, item.task_id)
    assert (requeued.status, requeued.assigned_to, requeued.created_task_id) == ("pending", None, None)


def test_deleting_user_without_heir_drops_finished_backlog_item(users, tasks, seed, db, context):
    worker, item = _lone_worker_with_item(users, seed, context)
    tasks.save_progress(Actor.from_user(worker), item.created_task_id, FULL_TEXT)
    tasks.submit_task(Actor.from_user(worker), item.created_task_id)
    tasks.review_task(seed.actors["admin"], item.created_task_id, "accepted")

    users.delete_user(seed.actors["admin"], worker.id)

    assert _get(db, AutomaticTask, item.task_id) is None
    with db.session() as s:
        assert s.exec(select(AutomaticTask).where(AutomaticTask.status == "assigned")).all() == []
        assert s.exec(select(CompletedTask).where(CompletedTask.task_id == item.created_task_id)).one()
