# models/team.py
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from utils.timeutil import utcnow


class Team(SQLModel, table=True):
    __tablename__ = "teams"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    # no FK: users.team_id already points here; unique keeps one team per lead
    lead_id: Optional[int] = Field(default=None, index=True, unique=True)
    created_at: datetime = Field(default_factory=utcnow)
