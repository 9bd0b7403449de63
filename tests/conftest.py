# tests/conftest.py
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from db import Database
from models import Team, User
from services.base import ServiceContext
from services.notifications import OutboxNotifier
from services.permissions import Actor
from utils.config import Config


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 9, 0, 0))


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.init_db()
    return database


@pytest.fixture
def context(db, clock):
    return ServiceContext(db=db, config=Config(database_url="sqlite://"), notifier=OutboxNotifier(), clock=clock)


@pytest.fixture
def seed(db):
    """
    admin
    Alpha: lead_a, m1, m2
    Beta:  lead_b, m3
    """
    with db.session() as s:
        admin = User(email="admin@example.com", name="Admin", role="admin")
        alpha = Team(name="Alpha")
        beta = Team(name="Beta")
        s.add_all([admin, alpha, beta])
        s.flush()

        lead_a = User(email="lead.a@example.com", name="Lead A", role="team_lead", team_id=alpha.id)
        lead_b = User(email="lead.b@example.com", name="Lead B", role="team_lead", team_id=beta.id)
        m1 = User(email="m1@example.com", name="Member One", role="team_member", team_id=alpha.id)
        m2 = User(email="m2@example.com", name="Member Two", role="team_member", team_id=alpha.id)
        m3 = User(email="m3@example.com", name="Member Three", role="team_member", team_id=beta.id)
        s.add_all([lead_a, lead_b, m1, m2, m3])
        s.flush()

        alpha.lead_id = lead_a.id
        beta.lead_id = lead_b.id
        s.add_all([alpha, beta])

        users = {u.email.split("@")[0].replace(".", "_"): u for u in (admin, lead_a, lead_b, m1, m2, m3)}

    return SimpleNamespace(
        alpha=alpha.id,
        beta=beta.id,
        ids={name: u.id for name, u in users.items()},
        actors={name: Actor.from_user(u) for name, u in users.items()},
    )
