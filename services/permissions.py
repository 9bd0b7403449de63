"""
Capability table for the task core.

Every (role, action) pair maps to the scope the role may act in. A pair that
is absent is denied. ``authorize`` is the only place role checks happen.
"""

from dataclasses import dataclass
from typing import Optional

from services.errors import AuthorizationError

ADMIN = "admin"
TEAM_LEAD = "team_lead"
TEAM_MEMBER = "team_member"

# actions
CREATE_TASK = "create_task"
EDIT_PROGRESS = "edit_progress"
SUBMIT_TASK = "submit_task"
REVIEW_TASK = "review_task"
CREATE_AUTOMATIC_TASK = "create_automatic_task"
ASSIGN_AUTOMATIC_TASK = "assign_automatic_task"
MANAGE_USERS = "manage_users"
MANAGE_TEAMS = "manage_teams"
VIEW_PERFORMANCE = "view_performance"

# scopes
ANY = "any"
OWN_TEAM = "own_team"
ASSIGNEE = "assignee"
SELF = "self"

CAPABILITIES = {
    (ADMIN, CREATE_TASK): ANY,
    (TEAM_LEAD, CREATE_TASK): OWN_TEAM,
    # leads only work tasks handed to themselves (lead fallback, admin assignment)
    (TEAM_LEAD, EDIT_PROGRESS): ASSIGNEE,
    (TEAM_MEMBER, EDIT_PROGRESS): ASSIGNEE,
    (TEAM_LEAD, SUBMIT_TASK): ASSIGNEE,
    (TEAM_MEMBER, SUBMIT_TASK): ASSIGNEE,
    (ADMIN, REVIEW_TASK): ANY,
    (TEAM_LEAD, REVIEW_TASK): OWN_TEAM,
    (ADMIN, CREATE_AUTOMATIC_TASK): ANY,
    (TEAM_LEAD, CREATE_AUTOMATIC_TASK): OWN_TEAM,
    (ADMIN, ASSIGN_AUTOMATIC_TASK): ANY,
    (TEAM_LEAD, ASSIGN_AUTOMATIC_TASK): OWN_TEAM,
    (ADMIN, MANAGE_USERS): ANY,
    (ADMIN, MANAGE_TEAMS): ANY,
    (ADMIN, VIEW_PERFORMANCE): ANY,
    (TEAM_LEAD, VIEW_PERFORMANCE): OWN_TEAM,
    (TEAM_MEMBER, VIEW_PERFORMANCE): SELF,
}


@dataclass(frozen=True)
class Actor:
    """The already-authenticated caller. Only id, role and team are trusted."""

    id: int
    role: str
    team_id: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, role=user.role, team_id=user.team_id)


def scope_for(role: str, action: str) -> Optional[str]:
    return CAPABILITIES.get((role, action))


def can(actor: Actor, action: str, *, team_id: Optional[int] = None, owner_id: Optional[int] = None) -> bool:
    scope = scope_for(actor.role, action)
    if scope is None:
        return False
    if scope == ANY:
        return True
    if scope == OWN_TEAM:
        return actor.team_id is not None and actor.team_id == team_id
    # ASSIGNEE and SELF both compare the record owner with the caller
    return owner_id is not None and owner_id == actor.id


def authorize(actor: Actor, action: str, *, team_id: Optional[int] = None, owner_id: Optional[int] = None) -> str:
    """Return the granted scope or raise AuthorizationError."""
    if not can(actor, action, team_id=team_id, owner_id=owner_id):
        scope = scope_for(actor.role, action)
        if scope is None:
            reason = f"role '{actor.role}' may not {action.replace('_', ' ')}"
        elif scope == OWN_TEAM:
            reason = f"{actor.role} may only {action.replace('_', ' ')} within their own team"
        else:
            reason = f"only the assignee may {action.replace('_', ' ')}"
        raise AuthorizationError(
            reason,
            metadata={"actor_id": actor.id, "role": actor.role, "action": action, "team_id": team_id},
        )
    return scope_for(actor.role, action)
