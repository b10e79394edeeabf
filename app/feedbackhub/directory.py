"""
User and team directory lookups.

Policies never query the database themselves; handlers resolve the acting
user into an `Actor` snapshot once per request and pass it in.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.feedbackhub.constants import ROLE_ADMIN
from app.feedbackhub.models import User
from app.feedbackhub.modules.feedback.models import Competency
from app.feedbackhub.modules.teams.models import Team
from app.feedbackhub.utils import is_valid_id


@dataclass(frozen=True)
class Actor:
    id: str
    role: str
    status: str
    team_ids: frozenset[str] = frozenset()
    managed_team_ids: frozenset[str] = frozenset()

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def is_member(self, team_id: str | None) -> bool:
        return team_id is not None and team_id in self.team_ids

    def manages(self, team_id: str | None) -> bool:
        return team_id is not None and team_id in self.managed_team_ids


def actor_from_user(user: User) -> Actor:
    return Actor(
        id=user.id,
        role=user.role,
        status=user.status,
        team_ids=user.team_ids,
        managed_team_ids=user.managed_team_ids,
    )


def get_user(s: Session, user_id: str | None) -> User | None:
    if not is_valid_id(user_id):
        return None
    return s.get(User, user_id)


def get_team(s: Session, team_id: str | None) -> Team | None:
    if not is_valid_id(team_id):
        return None
    return s.get(Team, team_id)


def get_users(s: Session, user_ids: Iterable[str]) -> dict[str, User]:
    ids = {uid for uid in user_ids if is_valid_id(uid)}
    if not ids:
        return {}
    return {u.id: u for u in s.scalars(select(User).where(User.id.in_(ids)))}


def get_competencies(s: Session, competency_ids: Iterable[str]) -> dict[str, Competency]:
    ids = {cid for cid in competency_ids if is_valid_id(cid)}
    if not ids:
        return {}
    return {c.id: c for c in s.scalars(select(Competency).where(Competency.id.in_(ids)))}
