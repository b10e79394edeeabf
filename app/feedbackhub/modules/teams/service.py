"""
Team service layer.
Team CRUD and membership management. The manager is always kept as a LEADER
member of their team.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.feedbackhub.audit import record_event
from app.feedbackhub.constants import (
    DEPARTMENTS,
    TEAM_LEADER,
    TEAM_MEMBER,
    TEAM_MEMBER_ROLES,
    TEAM_STATUSES,
    normalize_choice,
)
from app.feedbackhub.directory import Actor, actor_from_user, get_team, get_user, get_users
from app.feedbackhub.errors import PolicyError, invalid_state, not_found, permission_denied, validation_failed
from app.feedbackhub.models import User
from app.feedbackhub.modules.teams.models import Team, TeamMember
from app.feedbackhub.modules.users.service import user_summary
from app.feedbackhub.utils import is_valid_id, isoformat

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3


def can_manage_team(team: Team, actor: Actor) -> bool:
    return actor.is_admin or team.manager_id == actor.id


def serialize_team(team: Team, *, detail: bool = False) -> dict:
    out = {
        "id": team.id,
        "name": team.name,
        "description": team.description,
        "department": team.department,
        "status": team.status,
        "manager": user_summary(team.manager) if team.manager else None,
        "member_count": len(team.members),
        "created_at": isoformat(team.created_at),
        "updated_at": isoformat(team.updated_at),
    }
    if detail:
        out["members"] = [
            {**user_summary(m.user), "role": m.role, "joined_at": isoformat(m.joined_at)} for m in team.members
        ]
    return out


def validate_team_payload(payload: dict, *, partial: bool) -> tuple[dict, list[str]]:
    errors: list[str] = []
    data: dict[str, Any] = {}

    if not partial or "name" in payload:
        name = payload.get("name")
        if not isinstance(name, str) or len(name.strip()) < NAME_MIN_LENGTH:
            errors.append(f"Name must have at least {NAME_MIN_LENGTH} characters.")
        else:
            data["name"] = name.strip()

    if "description" in payload:
        description = payload.get("description")
        if description is not None and not isinstance(description, str):
            errors.append("description must be a string.")
        else:
            data["description"] = (description or "").strip() or None

    if not partial or "manager_id" in payload:
        manager_id = payload.get("manager_id")
        if not is_valid_id(manager_id):
            errors.append("manager_id is not a valid id.")
        data["manager_id"] = manager_id

    if not partial or "department" in payload:
        data["department"] = normalize_choice(payload.get("department"), DEPARTMENTS)
        if not data["department"]:
            errors.append(f"Invalid department. Must be one of: {', '.join(DEPARTMENTS)}")

    if "status" in payload or not partial:
        raw = payload.get("status")
        data["status"] = normalize_choice(raw, TEAM_STATUSES) if raw is not None else "ACTIVE"
        if not data["status"]:
            errors.append(f"Invalid status. Must be one of: {', '.join(TEAM_STATUSES)}")

    if "member_ids" in payload or not partial:
        member_ids = payload.get("member_ids") or []
        if not isinstance(member_ids, list) or not all(is_valid_id(m) for m in member_ids):
            errors.append("member_ids must be a list of valid ids.")
        else:
            data["member_ids"] = list(dict.fromkeys(member_ids))
    return data, errors


def _set_members(team: Team, manager_id: str, member_ids: list[str], now: datetime) -> None:
    """
    Replace the membership list. The manager always leads; existing members
    keep their role unless they were leading, new members join as MEMBER.
    """
    existing = {m.user_id: m for m in team.members}
    keep: list[TeamMember] = []
    for uid in [manager_id] + [m for m in member_ids if m != manager_id]:
        member = existing.get(uid)
        if member is None:
            member = TeamMember(user_id=uid, role=TEAM_MEMBER, joined_at=now)
        if uid == manager_id:
            member.role = TEAM_LEADER
        elif member.role == TEAM_LEADER:
            member.role = TEAM_MEMBER
        keep.append(member)
    team.members[:] = keep


def list_teams(s: Session, filters: dict[str, Any], *, page: int, limit: int) -> tuple[list[Team], int]:
    q = select(Team)
    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.where(or_(Team.name.ilike(like), Team.description.ilike(like)))
    department = normalize_choice(filters.get("department"), DEPARTMENTS)
    if department:
        q = q.where(Team.department == department)
    status = normalize_choice(filters.get("status"), TEAM_STATUSES)
    if status:
        q = q.where(Team.status == status)
    manager_id = (filters.get("manager_id") or "").strip()
    if manager_id:
        q = q.where(Team.manager_id == manager_id)

    total = s.scalar(select(func.count()).select_from(q.subquery())) or 0
    q = q.order_by(Team.name.asc(), Team.id.asc()).offset((page - 1) * limit).limit(limit)
    return list(s.scalars(q)), total


def create_team(s: Session, payload: dict, user: User) -> tuple[Team | None, PolicyError | None]:
    data, errors = validate_team_payload(payload, partial=False)
    if errors:
        return None, validation_failed(errors)

    if not get_user(s, data["manager_id"]):
        return None, not_found("Manager")
    member_ids = data["member_ids"]
    if len(get_users(s, member_ids)) != len(member_ids):
        return None, not_found("One or more members")

    now = datetime.utcnow()
    team = Team(
        name=data["name"],
        description=data.get("description"),
        manager_id=data["manager_id"],
        department=data["department"],
        status=data["status"],
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    _set_members(team, data["manager_id"], member_ids, now)
    s.add(team)
    s.flush()

    record_event(
        s,
        actor=user,
        action="team.create",
        entity_type="Team",
        entity_id=team.id,
        metadata={"name": team.name, "manager_id": team.manager_id, "member_count": len(team.members)},
    )
    logger.info("Team %s created by %s", team.id, user.id)
    return team, None


def _load_managed_team(s: Session, team_id: str, user: User) -> tuple[Team | None, PolicyError | None]:
    team = get_team(s, team_id)
    if not team:
        return None, not_found("Team")
    if not can_manage_team(team, actor_from_user(user)):
        return None, permission_denied("You do not have permission to change this team.")
    return team, None


def update_team(s: Session, team_id: str, payload: dict, user: User) -> tuple[Team | None, PolicyError | None]:
    team, err = _load_managed_team(s, team_id, user)
    if err:
        return None, err

    data, errors = validate_team_payload(payload, partial=True)
    if errors:
        return None, validation_failed(errors)

    if "manager_id" in data and not get_user(s, data["manager_id"]):
        return None, not_found("Manager")
    if "member_ids" in data and len(get_users(s, data["member_ids"])) != len(data["member_ids"]):
        return None, not_found("One or more members")

    now = datetime.utcnow()
    changes: dict[str, dict[str, Any]] = {}
    for key in ("name", "description", "department", "status", "manager_id"):
        if key in data and getattr(team, key) != data[key]:
            changes[key] = {"old": getattr(team, key), "new": data[key]}
            setattr(team, key, data[key])
    if "manager_id" in changes:
        team.manager = get_user(s, team.manager_id)

    if "member_ids" in data:
        _set_members(team, team.manager_id, data["member_ids"], now)
        changes["member_ids"] = {"new": team.member_ids}
    elif "manager_id" in changes:
        # Keep existing members, promote the new manager.
        _set_members(team, team.manager_id, team.member_ids, now)
    team.updated_at = now

    record_event(
        s,
        actor=user,
        action="team.update",
        entity_type="Team",
        entity_id=team.id,
        metadata={"changes": changes},
    )
    return team, None


def delete_team(s: Session, team_id: str, user: User) -> PolicyError | None:
    team, err = _load_managed_team(s, team_id, user)
    if err:
        return err
    record_event(
        s,
        actor=user,
        action="team.delete",
        entity_type="Team",
        entity_id=team.id,
        metadata={"name": team.name},
    )
    s.delete(team)
    return None


def add_member(s: Session, team_id: str, payload: dict, user: User) -> tuple[Team | None, PolicyError | None]:
    team, err = _load_managed_team(s, team_id, user)
    if err:
        return None, err

    member_id = payload.get("user_id")
    if not is_valid_id(member_id):
        return None, validation_failed("user_id is not a valid id.")
    raw_role = payload.get("role")
    role = normalize_choice(raw_role, TEAM_MEMBER_ROLES) if raw_role is not None else TEAM_MEMBER
    if not role or (role == TEAM_LEADER and member_id != team.manager_id):
        return None, validation_failed("Invalid member role.")
    member_user = get_user(s, member_id)
    if not member_user:
        return None, not_found("User")
    if member_id in team.member_ids:
        return None, validation_failed("User is already a member of this team.")

    team.members.append(TeamMember(user_id=member_id, role=role, joined_at=datetime.utcnow()))
    team.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="team.member_add",
        entity_type="Team",
        entity_id=team.id,
        metadata={"user_id": member_id, "role": role},
    )
    return team, None


def remove_member(s: Session, team_id: str, payload: dict, user: User) -> tuple[Team | None, PolicyError | None]:
    team, err = _load_managed_team(s, team_id, user)
    if err:
        return None, err

    member_id = payload.get("user_id")
    if not is_valid_id(member_id):
        return None, validation_failed("user_id is not a valid id.")
    if member_id == team.manager_id:
        return None, invalid_state("The team manager cannot be removed from the team.")
    member = next((m for m in team.members if m.user_id == member_id), None)
    if member is None:
        return None, not_found("Team member")

    team.members.remove(member)
    team.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="team.member_remove",
        entity_type="Team",
        entity_id=team.id,
        metadata={"user_id": member_id},
    )
    return team, None
